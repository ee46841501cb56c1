"""
Media service - create-or-merge, description management, batches and deletion.

Every public method returns a `Result` and never raises to callers.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ...adapters.db.sqlite import Sqlite
from ...config import INTERNAL_PREFIXES, PAGE_DEFAULT_LIMIT, PAGE_MAX_LIMIT
from ...shared import ErrorCode, Result, get_logger, is_valid_media_kind, log_success, utc_now_iso
from ...utils import parse_asset_id, parse_bool
from .batch import run_batch
from .deletion import DeletionGuard
from .locator import normalize_for_storage
from .models import Description, MediaAsset
from .reconcile import merge_new_texts, reconcile_descriptions
from .repository import MediaRepository
from .resolver import IdentityResolver

logger = get_logger(__name__)

# Conditional reconcile writes retried before reporting a conflict.
RECONCILE_ATTEMPTS = 8


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_size(value: Any) -> tuple[bool, Optional[int]]:
    """(valid, size); None and "" are valid and mean "not provided"."""
    if value is None or value == "":
        return True, None
    if isinstance(value, bool):
        return False, None
    if isinstance(value, int):
        return (value >= 0), (value if value >= 0 else None)
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return True, int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return True, int(value.strip())
    return False, None


def _coerce_texts(value: Any) -> Optional[List[Any]]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def _media_kind_of(data: Mapping[str, Any]) -> Any:
    kind = data.get("kind")
    return kind if kind not in (None, "") else data.get("type")


class MediaService:
    """Media asset operations over a `MediaRepository`."""

    def __init__(
        self,
        db: Sqlite,
        *,
        repository: Optional[MediaRepository] = None,
        deletion_guard: Optional[DeletionGuard] = None,
        internal_prefixes: Optional[Iterable[str]] = None,
        page_max_limit: int = PAGE_MAX_LIMIT,
    ):
        self.db = db
        self.repo = repository or MediaRepository(db)
        self._internal_prefixes = tuple(INTERNAL_PREFIXES if internal_prefixes is None else internal_prefixes)
        self.resolver = IdentityResolver(self.repo, self._internal_prefixes)
        self.deletion_guard = deletion_guard or DeletionGuard(internal_prefixes=self._internal_prefixes)
        self._page_max_limit = max(1, int(page_max_limit))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _load(self, asset_id: Any) -> Result[MediaAsset]:
        parsed = parse_asset_id(asset_id)
        if parsed is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "A valid media id is required")
        res = await self.repo.get(parsed)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to load media item")
        if res.data is None:
            return Result.Err(ErrorCode.NOT_FOUND, "Media item not found")
        return Result.Ok(res.data)

    async def get(self, asset_id: Any) -> Result[MediaAsset]:
        return await self._load(asset_id)

    async def find_by_url(self, locator: Any) -> Result[Optional[MediaAsset]]:
        """Resolve a locator in any supported form; Ok(None) when nothing matches."""
        return await self.resolver.resolve(locator)

    def _normalize_filters(self, filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        filters = filters or {}
        out: Dict[str, Any] = {}
        kind = _media_kind_of(filters)
        if kind:
            out["kind"] = str(kind)
        if filters.get("is_added_to_library") is not None:
            out["is_added_to_library"] = parse_bool(filters.get("is_added_to_library"), True)
        search = _clean_str(filters.get("search"))
        if search:
            out["search"] = search
        return out

    async def find(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        page: Any = 1,
        limit: Any = PAGE_DEFAULT_LIMIT,
    ) -> Result[List[MediaAsset]]:
        """Newest first; `page` >= 1 and `limit` clamped to [1, page max]."""
        try:
            page_num = max(1, int(page))
        except (TypeError, ValueError):
            page_num = 1
        try:
            page_size = int(limit)
        except (TypeError, ValueError):
            page_size = PAGE_DEFAULT_LIMIT
        page_size = max(1, min(self._page_max_limit, page_size))

        res = await self.repo.list(
            self._normalize_filters(filters),
            offset=(page_num - 1) * page_size,
            limit=page_size,
        )
        if not res.ok:
            return res
        return Result.Ok(res.data or [], page=page_num, limit=page_size)

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> Result[int]:
        return await self.repo.count(self._normalize_filters(filters))

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    async def _append_new_texts(self, asset: MediaAsset, texts: List[Any]) -> Result[int]:
        """
        Append each text not yet present on the asset; returns how many were stored.

        Every append is one atomic statement guarded on the stored texts, so
        concurrent merges into the same asset neither lose nor duplicate entries.
        """
        added = 0
        now = utc_now_iso()
        for text in merge_new_texts(asset.descriptions, texts):
            res = await self.repo.append_description(
                asset.id, Description.create(text, now=now), unless_text_exists=True
            )
            if not res.ok:
                return Result.Err(res.code, res.error or "Failed to append description")
            added += int(res.data or 0)
        return Result.Ok(added)

    async def _merge_into(
        self,
        asset: MediaAsset,
        *,
        filename: Optional[str],
        size: Optional[int],
        mimetype: Optional[str],
        texts: List[Any],
    ) -> Result[MediaAsset]:
        updates: Dict[str, Any] = {}
        if filename and filename != asset.filename:
            updates["filename"] = filename
        if size and size != asset.size:
            updates["size"] = size
        if mimetype and mimetype != asset.mimetype:
            updates["mimetype"] = mimetype
        if not asset.is_added_to_library:
            updates["is_added_to_library"] = True

        if updates:
            res = await self.repo.update(asset.id, updates)
            if not res.ok:
                return Result.Err(res.code, res.error or "Failed to merge media item")

        appended = await self._append_new_texts(asset, texts)
        if not appended.ok:
            return appended

        if not updates and not appended.data:
            return Result.Ok(asset, created=False, merged=False)

        reloaded = await self._load(asset.id)
        if not reloaded.ok:
            return reloaded
        logger.debug(
            "Merged %s and %d description(s) into media item %s", sorted(updates), appended.data, asset.id
        )
        return Result.Ok(reloaded.data, created=False, merged=True)

    async def create(self, data: Any) -> Result[MediaAsset]:
        """
        Create an asset, or merge into the existing asset with an equivalent locator.

        Args:
            data: {type|kind, url, filename?, size?, mimetype?, descriptions?: [text]}

        Returns:
            Result[MediaAsset] with `meta["created"]` telling insert from merge.
        """
        if not isinstance(data, Mapping):
            return Result.Err(ErrorCode.INVALID_INPUT, "Media data must be an object")

        kind = _media_kind_of(data)
        raw_url = data.get("url")
        if not kind or not _clean_str(raw_url):
            return Result.Err(ErrorCode.INVALID_INPUT, "Type and URL are required")
        if not is_valid_media_kind(kind):
            return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid media type: {kind}")

        url = normalize_for_storage(raw_url, self._internal_prefixes)
        if not url:
            return Result.Err(ErrorCode.INVALID_INPUT, "URL has no path component")

        size_ok, size = _coerce_size(data.get("size"))
        if not size_ok:
            return Result.Err(ErrorCode.INVALID_INPUT, "Size must be a non-negative integer")
        texts = _coerce_texts(data.get("descriptions"))
        if texts is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "Descriptions must be a list")
        filename = _clean_str(data.get("filename"))
        mimetype = _clean_str(data.get("mimetype"))

        found = await self.resolver.resolve(url)
        if not found.ok:
            return Result.Err(found.code, found.error or "Identity lookup failed")
        if found.data is not None:
            return await self._merge_into(found.data, filename=filename, size=size, mimetype=mimetype, texts=texts)

        now = utc_now_iso()
        asset = MediaAsset(
            url=url,
            kind=str(kind),
            filename=filename,
            size=size,
            mimetype=mimetype,
            descriptions=[Description.create(t, now=now) for t in merge_new_texts([], texts)],
            is_added_to_library=True,
            created_at=now,
            updated_at=now,
        )
        inserted = await self.repo.insert(asset)
        if inserted.ok:
            log_success(logger, f"Media item created: {url}")
            return Result.Ok(inserted.data, created=True)

        if not inserted.is_code(ErrorCode.CONFLICT):
            return inserted

        # Lost a race against a concurrent create of the same locator.
        logger.info("Concurrent create detected for %s, merging into existing record", url)
        again = await self.resolver.resolve(url)
        if not again.ok:
            return Result.Err(again.code, again.error or "Identity lookup failed")
        if again.data is None:
            return Result.Err(ErrorCode.CONFLICT, inserted.error or "Media URL already exists")
        return await self._merge_into(again.data, filename=filename, size=size, mimetype=mimetype, texts=texts)

    # ------------------------------------------------------------------
    # Generic update / delete
    # ------------------------------------------------------------------

    async def update(self, asset_id: Any, fields: Any) -> Result[MediaAsset]:
        """
        Update whitelisted fields: type/kind, url, filename, size, mimetype,
        is_added_to_library (only True is honoured). Unknown fields are ignored.
        """
        if not isinstance(fields, Mapping):
            return Result.Err(ErrorCode.INVALID_INPUT, "Update fields must be an object")
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        updates: Dict[str, Any] = {}
        kind = _media_kind_of(fields)
        if kind not in (None, ""):
            if not is_valid_media_kind(kind):
                return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid media type: {kind}")
            updates["kind"] = kind

        if "url" in fields:
            url = normalize_for_storage(fields.get("url"), self._internal_prefixes)
            if not url:
                return Result.Err(ErrorCode.INVALID_INPUT, "URL has no path component")
            if url != asset.url:
                clash = await self.resolver.resolve(url)
                if not clash.ok:
                    return Result.Err(clash.code, clash.error or "Identity lookup failed")
                if clash.data is not None and clash.data.id != asset.id:
                    return Result.Err(ErrorCode.CONFLICT, "Another media item already uses this URL")
                updates["url"] = url

        for key in ("filename", "mimetype"):
            if key in fields:
                updates[key] = _clean_str(fields.get(key))

        if "size" in fields:
            size_ok, size = _coerce_size(fields.get("size"))
            if not size_ok:
                return Result.Err(ErrorCode.INVALID_INPUT, "Size must be a non-negative integer")
            updates["size"] = size

        if "is_added_to_library" in fields and parse_bool(fields.get("is_added_to_library"), False):
            updates["is_added_to_library"] = True

        if not updates:
            return Result.Err(ErrorCode.INVALID_INPUT, "No valid fields to update")

        res = await self.repo.update(asset.id, updates)
        if not res.ok:
            if res.is_code(ErrorCode.CONFLICT):
                return Result.Err(ErrorCode.CONFLICT, "Another media item already uses this URL")
            return Result.Err(res.code, res.error or "Failed to update media item")
        return await self._load(asset.id)

    async def remove(self, asset_id: Any) -> Result[MediaAsset]:
        """
        Delete the record, then best-effort delete its backing file.

        The record deletion stands whatever happens to the file; the outcome is
        reported in `meta["file_removed"]` and `meta["file_warning"]`.
        """
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        deleted = await self.repo.delete(asset.id)
        if not deleted.ok:
            return Result.Err(deleted.code, deleted.error or "Failed to delete media item")
        if not deleted.data:
            return Result.Err(ErrorCode.NOT_FOUND, "Media item not found")

        meta: Dict[str, Any] = {"file_removed": False}
        if asset.url:
            removal = self.deletion_guard.remove_backing_file(asset.url)
            meta["file_removed"] = removal.ok
            if not removal.ok:
                meta["file_warning"] = removal.error
        else:
            meta["file_warning"] = "Media item has no URL"

        logger.info("Media item %s deleted (file_removed=%s)", asset.id, meta["file_removed"])
        return Result.Ok(asset, **meta)

    # ------------------------------------------------------------------
    # Descriptions
    # ------------------------------------------------------------------

    async def save_descriptions(self, asset_id: Any, desired: Any) -> Result[MediaAsset]:
        """
        Reconcile the asset's descriptions against `desired` ([{id?, text}])
        and persist the result in one write (no write when nothing changed).

        The write is conditional on the revision the diff was computed from; when
        another writer got in between, the diff is recomputed on fresh state.
        """
        if parse_asset_id(asset_id) is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "A valid media id is required")
        if not isinstance(desired, list):
            return Result.Err(ErrorCode.INVALID_INPUT, "Descriptions must be a list")

        for attempt in range(RECONCILE_ATTEMPTS):
            loaded = await self._load(asset_id)
            if not loaded.ok:
                return loaded
            asset = loaded.data

            plan = reconcile_descriptions(asset.descriptions, desired)
            if not plan.changed:
                return Result.Ok(asset, changed=False, **plan.summary())

            res = await self.repo.save_descriptions(asset.id, plan.descriptions, expected_revision=asset.revision)
            if not res.ok:
                return Result.Err(res.code, res.error or "Failed to save descriptions")
            if res.data:
                saved = await self._load(asset.id)
                if not saved.ok:
                    return saved
                return Result.Ok(saved.data, changed=True, **plan.summary())
            logger.debug("Descriptions of media item %s changed concurrently (attempt %d)", asset.id, attempt + 1)

        logger.warning(
            "Gave up reconciling descriptions of media item %s after %d attempts", asset_id, RECONCILE_ATTEMPTS
        )
        return Result.Err(ErrorCode.CONFLICT, "Descriptions changed concurrently, please retry")

    async def _after_description_edit(self, asset: MediaAsset, rowcount: int) -> Result[MediaAsset]:
        reloaded = await self._load(asset.id)
        if not reloaded.ok:
            return reloaded
        if not rowcount:
            # The entry went away between the load and the write.
            return Result.Err(ErrorCode.NOT_FOUND, "Description not found")
        return reloaded

    async def add_description(self, asset_id: Any, text: Any, *, dedupe: bool = False) -> Result[MediaAsset]:
        """Append one description; with `dedupe` an identical trimmed text is not added twice."""
        cleaned = str(text or "").strip() if isinstance(text, str) or text is None else ""
        if not cleaned:
            return Result.Err(ErrorCode.INVALID_INPUT, "Description text is required")
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        res = await self.repo.append_description(asset.id, Description.create(cleaned), unless_text_exists=dedupe)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to append description")
        reloaded = await self._load(asset.id)
        if not reloaded.ok:
            return reloaded
        return Result.Ok(reloaded.data, added=bool(res.data))

    async def update_description(self, asset_id: Any, description_id: Any, text: Any) -> Result[MediaAsset]:
        cleaned = str(text or "").strip() if isinstance(text, str) or text is None else ""
        if not cleaned:
            return Result.Err(ErrorCode.INVALID_INPUT, "Description text is required")
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        target = asset.find_description(description_id)
        if target is None:
            return Result.Err(ErrorCode.NOT_FOUND, "Description not found")
        if target.text == cleaned:
            return Result.Ok(asset)

        res = await self.repo.set_description_text(asset.id, target.id, cleaned)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update description")
        return await self._after_description_edit(asset, res.data)

    async def remove_description(self, asset_id: Any, description_id: Any) -> Result[MediaAsset]:
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        target = asset.find_description(description_id)
        if target is None:
            return Result.Err(ErrorCode.NOT_FOUND, "Description not found")
        res = await self.repo.remove_description(asset.id, target.id)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to remove description")
        return await self._after_description_edit(asset, res.data)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def batch_create(self, items: Any) -> Result[Dict[str, Any]]:
        """Items: {type, url, filename?, size?, mimetype?, descriptions?}; keyed by url."""

        def validate(item: Any) -> Optional[str]:
            if not isinstance(item, Mapping):
                return "Item must be an object"
            kind = _media_kind_of(item)
            if not kind or not _clean_str(item.get("url")):
                return "Type and URL are required"
            if not is_valid_media_kind(kind):
                return f"Invalid media type: {kind}"
            return None

        return await run_batch(
            items,
            key_of=lambda item: item.get("url"),
            validate=validate,
            operation=self.create,
            label="batch_create",
            on_success=lambda res: {"result": res.data, "created": bool(res.meta.get("created"))},
        )

    async def batch_save_descriptions(self, items: Any) -> Result[Dict[str, Any]]:
        """Items: {id, descriptions: [{id?, text}]}; keyed by id."""

        def validate(item: Any) -> Optional[str]:
            if not isinstance(item, Mapping):
                return "Item must be an object"
            if parse_asset_id(item.get("id")) is None:
                return "Media id is required"
            if not isinstance(item.get("descriptions"), list):
                return "Descriptions must be a list"
            return None

        return await run_batch(
            items,
            key_of=lambda item: item.get("id"),
            validate=validate,
            operation=lambda item: self.save_descriptions(item.get("id"), item.get("descriptions")),
            label="batch_save_descriptions",
            on_success=lambda res: {"result": res.data, "changed": bool(res.meta.get("changed"))},
        )

    async def _append_texts(self, asset_id: Any, texts: List[Any]) -> Result[MediaAsset]:
        loaded = await self._load(asset_id)
        if not loaded.ok:
            return loaded
        asset = loaded.data

        appended = await self._append_new_texts(asset, texts)
        if not appended.ok:
            return appended
        if not appended.data:
            return Result.Ok(asset, added_count=0)
        reloaded = await self._load(asset.id)
        if not reloaded.ok:
            return reloaded
        return Result.Ok(reloaded.data, added_count=appended.data)

    async def batch_add_descriptions(self, items: Any) -> Result[Dict[str, Any]]:
        """Items: {id, texts: [text]}; keyed by id. Only new, non-empty texts are appended."""

        def validate(item: Any) -> Optional[str]:
            if not isinstance(item, Mapping):
                return "Item must be an object"
            if parse_asset_id(item.get("id")) is None:
                return "Media id is required"
            texts = item.get("texts")
            if not isinstance(texts, list) or not texts:
                return "Texts must be a non-empty list"
            return None

        return await run_batch(
            items,
            key_of=lambda item: item.get("id"),
            validate=validate,
            operation=lambda item: self._append_texts(item.get("id"), item.get("texts")),
            label="batch_add_descriptions",
            on_success=lambda res: {"result": res.data, "added_count": int(res.meta.get("added_count") or 0)},
        )
