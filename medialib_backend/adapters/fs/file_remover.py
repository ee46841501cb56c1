"""
Sandboxed removal of files under a public root directory.

`safe_remove_file` never raises: every rejection and filesystem failure is
reported through `RemovalResult.error`.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ...config import UPLOADS_PREFIX
from ...path_utils import is_within_root, safe_rel_path
from ...shared import MEDIA_KINDS, get_logger, sanitize_error_message

logger = get_logger(__name__)

# Known upload categories: every media kind plus its plural ("image", "images", ...).
UPLOAD_CATEGORIES: frozenset[str] = frozenset(
    list(MEDIA_KINDS) + [f"{kind}s" for kind in MEDIA_KINDS]
)


@dataclass(frozen=True)
class RemovalResult:
    success: bool
    resolved_path: Optional[str] = None
    error: Optional[str] = None


def _check_layout(
    rel: Path,
    *,
    uploads_prefix: str,
    require_uploads_prefix: bool,
    require_category: bool,
) -> Optional[str]:
    parts = [p for p in rel.parts if p not in ("", ".")]
    if not parts:
        return "Empty path"

    if require_uploads_prefix:
        if parts[0].lower() != uploads_prefix.lower():
            return f"Path must be under '{uploads_prefix}/'"
        parts = parts[1:]

    if require_category:
        # At least the category segment and a file name must follow.
        if len(parts) < 2 or parts[0].lower() not in UPLOAD_CATEGORIES:
            return "Path is not under a known upload category"
    return None


def safe_remove_file(
    rel_path: str,
    root: str | Path,
    *,
    require_uploads_prefix: bool = True,
    require_category: bool = False,
    uploads_prefix: str = UPLOADS_PREFIX,
) -> RemovalResult:
    """
    Remove `rel_path` resolved against `root` if it passes every sandbox check.

    Args:
        rel_path: Root-relative path (no leading separator, no `..`).
        root: Sandbox root directory; must exist.
        require_uploads_prefix: First segment must equal `uploads_prefix`.
        require_category: Segment after the uploads prefix must be a known category.
        uploads_prefix: Name of the uploads directory under the root.

    Returns:
        RemovalResult with the resolved path on success or an error message.
    """
    raw = str(rel_path or "").strip()
    if not raw:
        return RemovalResult(False, error="Empty path")
    if "\x00" in raw:
        return RemovalResult(False, error="Path contains NUL byte")

    rel = safe_rel_path(raw)
    if rel is None:
        return RemovalResult(False, error="Absolute or traversing paths are not allowed")

    layout_error = _check_layout(
        rel,
        uploads_prefix=uploads_prefix,
        require_uploads_prefix=require_uploads_prefix,
        require_category=require_category,
    )
    if layout_error:
        return RemovalResult(False, error=layout_error)

    try:
        root_path = Path(root).expanduser().resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        return RemovalResult(False, error="Sandbox root does not exist")

    candidate = root_path / rel
    if not is_within_root(candidate, root_path) or candidate.resolve(strict=False) == root_path:
        return RemovalResult(False, error="Path escapes the sandbox root")

    resolved = candidate.resolve(strict=False)
    try:
        if not resolved.exists():
            return RemovalResult(False, resolved_path=str(resolved), error="File not found")
        if not resolved.is_file():
            return RemovalResult(False, resolved_path=str(resolved), error="Not a regular file")
        resolved.unlink()
    except OSError as exc:
        return RemovalResult(
            False,
            resolved_path=str(resolved),
            error=sanitize_error_message(exc, "Failed to delete file"),
        )

    logger.debug("Removed file: %s", resolved)
    return RemovalResult(True, resolved_path=str(resolved))
