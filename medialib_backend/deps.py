"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from __future__ import annotations

from pathlib import Path

from .adapters.db.schema import migrate_schema
from .adapters.db.sqlite import Sqlite
from .config import (
    DB_MAX_CONNECTIONS,
    DB_QUERY_TIMEOUT,
    DB_TIMEOUT,
    INDEX_DB,
    PUBLIC_DIR,
    initialize_directories,
)
from .features.media import DeletionGuard, MediaService
from .shared import ErrorCode, Result, get_logger, log_success

logger = get_logger(__name__)


def _resolve_db_path(db_path: str | None) -> str:
    return db_path if db_path is not None else INDEX_DB


def _init_db_or_error(db_path: str) -> Result[Sqlite]:
    logger.info(f"Initializing database: {db_path}")
    try:
        return Result.Ok(
            Sqlite(
                db_path,
                max_connections=DB_MAX_CONNECTIONS,
                timeout=DB_TIMEOUT,
                query_timeout=DB_QUERY_TIMEOUT,
            )
        )
    except Exception as exc:
        logger.error("Failed to initialize database: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize database: {exc}")


async def _migrate_db_or_error(db: Sqlite) -> Result[bool]:
    migrate_result = await migrate_schema(db)
    if not migrate_result.ok:
        logger.error(f"Schema migration failed: {migrate_result.error}")
        return Result.Err(migrate_result.code or ErrorCode.DB_ERROR, f"Failed to initialize database: {migrate_result.error}")
    return Result.Ok(True)


async def build_services(db_path: str | None = None, public_dir: str | None = None) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        db_path: Path to SQLite database (default: from config.INDEX_DB)
        public_dir: Sandbox root for backing-file removal (default: config.PUBLIC_DIR)

    Returns:
        Result[dict] with "db" and "media"
    """
    logger.info("Building services...")
    db_path = _resolve_db_path(db_path)
    try:
        initialize_directories(db_path)
    except OSError as exc:
        logger.error("Failed to initialize directories: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize directories: {exc}")

    db_res = _init_db_or_error(db_path)
    if not db_res.ok or db_res.data is None:
        return Result.Err(db_res.code or ErrorCode.DB_ERROR, db_res.error or "Failed to initialize database")
    db = db_res.data

    migrate_result = await _migrate_db_or_error(db)
    if not migrate_result.ok:
        await db.aclose()
        return migrate_result  # type: ignore[return-value]

    public_root = Path(public_dir) if public_dir is not None else Path(PUBLIC_DIR)
    if not public_root.is_dir():
        logger.warning("Public directory does not exist yet: %s (file removal will be skipped)", public_root)

    media_service = MediaService(db, deletion_guard=DeletionGuard(public_root))

    services = {
        "db": db,
        "media": media_service,
    }
    log_success(logger, "All services initialized")
    return Result.Ok(services)
