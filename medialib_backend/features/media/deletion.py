"""
Deletion guard: best-effort removal of the file backing a deleted asset.

Record deletion never depends on the outcome; every failure is logged as a
warning and reported back to the caller.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from ...adapters.fs.file_remover import RemovalResult, safe_remove_file
from ...config import (
    DELETE_REQUIRE_CATEGORY,
    DELETE_REQUIRE_UPLOADS_PREFIX,
    INTERNAL_PREFIXES,
    PUBLIC_DIR,
    UPLOADS_PREFIX,
)
from ...shared import ErrorCode, Result, get_logger
from .locator import clean_file_path, extract_url_path

logger = get_logger(__name__)


class DeletionGuard:
    """Resolve an asset locator to a file under the public root and remove it."""

    def __init__(
        self,
        public_dir: str | Path = PUBLIC_DIR,
        *,
        require_uploads_prefix: bool = DELETE_REQUIRE_UPLOADS_PREFIX,
        require_category: bool = DELETE_REQUIRE_CATEGORY,
        uploads_prefix: str = UPLOADS_PREFIX,
        internal_prefixes: Optional[Iterable[str]] = None,
    ):
        self.public_dir = Path(public_dir)
        self.require_uploads_prefix = bool(require_uploads_prefix)
        self.require_category = bool(require_category)
        self.uploads_prefix = uploads_prefix
        self._internal_prefixes = tuple(INTERNAL_PREFIXES if internal_prefixes is None else internal_prefixes)

    def file_path_for(self, url: str) -> str:
        return clean_file_path(extract_url_path(url), self._internal_prefixes)

    def remove_backing_file(self, url: str) -> Result[RemovalResult]:
        """
        Remove the file behind `url`.

        Returns Ok(RemovalResult) when the file was removed, otherwise
        Err(DELETE_FAILED) carrying the RemovalResult in `meta["removal"]`.
        """
        rel_path = self.file_path_for(url)
        removal = safe_remove_file(
            rel_path,
            self.public_dir,
            require_uploads_prefix=self.require_uploads_prefix,
            require_category=self.require_category,
            uploads_prefix=self.uploads_prefix,
        )
        if removal.success:
            logger.info("File removed: %s", removal.resolved_path)
            return Result.Ok(removal)

        logger.warning("File removal skipped for %r: %s", url, removal.error)
        return Result.Err(ErrorCode.DELETE_FAILED, removal.error or "File removal failed", removal=removal)
