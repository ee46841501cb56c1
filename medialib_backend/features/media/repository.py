"""
Media repository over the SQLite adapter.

Every method returns a `Result`; a UNIQUE violation on `url` surfaces as
`ErrorCode.CONFLICT`, distinct from `ErrorCode.DB_ERROR`.
"""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ...adapters.db.sqlite import Sqlite
from ...shared import ErrorCode, Result, get_logger, utc_now_iso
from .models import Description, MediaAsset, descriptions_to_json
from .resolver import LocatorPredicate

logger = get_logger(__name__)

TABLE = "media_assets"

_UPDATABLE_COLUMNS = frozenset({
    "kind",
    "url",
    "filename",
    "size",
    "mimetype",
    "descriptions",
    "is_added_to_library",
})

# JSON path (e.g. `$[2]`) of the entry with a given id, correlated to the updated row.
_DESCRIPTION_PATH_SQL = (
    f"SELECT d.fullkey FROM json_each({TABLE}.descriptions) AS d "
    "WHERE json_extract(d.value, '$.id') = ? LIMIT 1"
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _build_where(filters: Optional[Mapping[str, Any]]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    filters = filters or {}

    kind = filters.get("kind")
    if kind:
        clauses.append("kind = ?")
        params.append(str(kind))

    if filters.get("is_added_to_library") is not None:
        clauses.append("is_added_to_library = ?")
        params.append(1 if filters.get("is_added_to_library") else 0)

    search = str(filters.get("search") or "").strip()
    if search:
        like = f"%{_escape_like(search)}%"
        clauses.append("(filename LIKE ? ESCAPE '\\' OR url LIKE ? ESCAPE '\\')")
        params.extend([like, like])

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


def _serialize_field(column: str, value: Any) -> Any:
    if column == "descriptions":
        return descriptions_to_json(list(value or []))
    if column == "is_added_to_library":
        return 1 if value else 0
    return value


class MediaRepository:
    """Persistence interface of the media feature."""

    def __init__(self, db: Sqlite):
        self.db = db

    async def find_one(self, predicates: Sequence[LocatorPredicate]) -> Result[Optional[MediaAsset]]:
        """Best-ranked asset matching any predicate, or Ok(None)."""
        if not predicates:
            return Result.Ok(None)

        case_parts: List[str] = []
        case_params: List[Any] = []
        where_parts: List[str] = []
        where_params: List[Any] = []
        for pred in predicates:
            op = "REGEXP" if pred.kind == "pattern" else "="
            case_parts.append(f"WHEN url {op} ? THEN {int(pred.rank)}")
            case_params.append(pred.value)
            where_parts.append(f"url {op} ?")
            where_params.append(pred.value)

        sql = (
            f"SELECT *, CASE {' '.join(case_parts)} END AS match_rank "
            f"FROM {TABLE} WHERE {' OR '.join(where_parts)} "
            "ORDER BY match_rank ASC, id ASC LIMIT 1"
        )
        res = await self.db.aquery_one(sql, tuple(case_params + where_params))
        if not res.ok:
            return Result.Err(res.code, res.error or "Identity lookup failed")
        if res.data is None:
            return Result.Ok(None)
        return Result.Ok(MediaAsset.from_row(res.data), match_rank=res.data.get("match_rank"))

    async def get(self, asset_id: int) -> Result[Optional[MediaAsset]]:
        res = await self.db.aquery_one(f"SELECT * FROM {TABLE} WHERE id = ?", (int(asset_id),))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to load media item")
        return Result.Ok(MediaAsset.from_row(res.data) if res.data else None)

    async def insert(self, asset: MediaAsset) -> Result[MediaAsset]:
        now = utc_now_iso()
        created_at = asset.created_at or now
        res = await self.db.aexecute(
            f"""
            INSERT INTO {TABLE}
                (kind, url, filename, size, mimetype, descriptions, is_added_to_library, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                asset.kind,
                asset.url,
                asset.filename,
                asset.size,
                asset.mimetype,
                descriptions_to_json(asset.descriptions),
                1 if asset.is_added_to_library else 0,
                created_at,
                asset.updated_at or created_at,
            ),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to insert media item")
        new_id = int(res.data)
        loaded = await self.get(new_id)
        if not loaded.ok or loaded.data is None:
            return Result.Err(ErrorCode.DB_ERROR, "Inserted media item could not be reloaded")
        return Result.Ok(loaded.data)

    async def update(
        self,
        asset_id: int,
        fields: Mapping[str, Any],
        *,
        expected_revision: Optional[int] = None,
    ) -> Result[int]:
        """
        Update whitelisted columns; `updated_at` and `revision` are always refreshed.

        With `expected_revision` the write only applies while the row is still at
        that revision. Returns the rowcount (0: missing row or lost race).
        """
        columns = [c for c in fields.keys() if c in _UPDATABLE_COLUMNS]
        unknown = [c for c in fields.keys() if c not in _UPDATABLE_COLUMNS]
        if unknown:
            logger.debug("Ignoring non-updatable columns: %s", unknown)
        if not columns:
            return Result.Err(ErrorCode.INVALID_INPUT, "No updatable fields")

        assignments = ", ".join(f"{c} = ?" for c in columns)
        params = [_serialize_field(c, fields[c]) for c in columns]
        params.extend([utc_now_iso(), int(asset_id)])
        sql = f"UPDATE {TABLE} SET {assignments}, revision = revision + 1, updated_at = ? WHERE id = ?"
        if expected_revision is not None:
            sql += " AND revision = ?"
            params.append(int(expected_revision))
        res = await self.db.aexecute(sql, tuple(params))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update media item")
        return Result.Ok(int(res.data or 0))

    async def save_descriptions(
        self,
        asset_id: int,
        descriptions: List[Description],
        *,
        expected_revision: Optional[int] = None,
    ) -> Result[int]:
        return await self.update(asset_id, {"descriptions": descriptions}, expected_revision=expected_revision)

    # Single-statement description edits. SQLite applies each UPDATE atomically,
    # so concurrent callers never overwrite each other's entries.

    async def append_description(
        self,
        asset_id: int,
        description: Description,
        *,
        unless_text_exists: bool = False,
    ) -> Result[int]:
        """
        Append one entry to the JSON array in place.

        With `unless_text_exists` nothing is written when an entry with the same
        trimmed text is already stored. Returns the rowcount.
        """
        sql = (
            f"UPDATE {TABLE} SET descriptions = json_insert(descriptions, '$[#]', json(?)), "
            "revision = revision + 1, updated_at = ? WHERE id = ?"
        )
        params: List[Any] = [json.dumps(description.to_dict(), ensure_ascii=False), utc_now_iso(), int(asset_id)]
        if unless_text_exists:
            sql += (
                f" AND NOT EXISTS (SELECT 1 FROM json_each({TABLE}.descriptions) AS d"
                " WHERE trim(json_extract(d.value, '$.text')) = ?)"
            )
            params.append(description.text.strip())
        res = await self.db.aexecute(sql, tuple(params))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to append description")
        return Result.Ok(int(res.data or 0))

    async def set_description_text(self, asset_id: int, description_id: str, text: str) -> Result[int]:
        """Replace the text of one entry in place. Returns the rowcount (0 when the entry is gone)."""
        res = await self.db.aexecute(
            f"UPDATE {TABLE} SET descriptions = json_set(descriptions, "
            f"({_DESCRIPTION_PATH_SQL}) || '.text', ?), "
            f"revision = revision + 1, updated_at = ? WHERE id = ? AND EXISTS ({_DESCRIPTION_PATH_SQL})",
            (str(description_id), text, utc_now_iso(), int(asset_id), str(description_id)),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update description")
        return Result.Ok(int(res.data or 0))

    async def remove_description(self, asset_id: int, description_id: str) -> Result[int]:
        """Drop one entry in place. Returns the rowcount (0 when the entry is gone)."""
        res = await self.db.aexecute(
            f"UPDATE {TABLE} SET descriptions = json_remove(descriptions, ({_DESCRIPTION_PATH_SQL})), "
            f"revision = revision + 1, updated_at = ? WHERE id = ? AND EXISTS ({_DESCRIPTION_PATH_SQL})",
            (str(description_id), utc_now_iso(), int(asset_id), str(description_id)),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to remove description")
        return Result.Ok(int(res.data or 0))

    async def delete(self, asset_id: int) -> Result[bool]:
        res = await self.db.aexecute(f"DELETE FROM {TABLE} WHERE id = ?", (int(asset_id),))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to delete media item")
        return Result.Ok(int(res.data or 0) > 0)

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> Result[int]:
        where, params = _build_where(filters)
        res = await self.db.aquery_one(f"SELECT COUNT(*) AS total FROM {TABLE} {where}", tuple(params))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to count media items")
        return Result.Ok(int((res.data or {}).get("total") or 0))

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Result[List[MediaAsset]]:
        """Newest first."""
        where, params = _build_where(filters)
        params.extend([int(limit), max(0, int(offset))])
        res = await self.db.aquery(
            f"SELECT * FROM {TABLE} {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            tuple(params),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to list media items")
        return Result.Ok([MediaAsset.from_row(row) for row in res.data or []])
