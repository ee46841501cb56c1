"""
Database schema and migrations.
"""
import hashlib
import re
from typing import List

from ...shared import Result, get_logger, log_success

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 1
# Schema version history (high-level):
# 1: media_assets with descriptions stored as a JSON array

# Schema definition
SCHEMA_V1 = """
-- Metadata table for schema versioning
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Media assets; url is the canonical locator and the identity of the asset
CREATE TABLE IF NOT EXISTS media_assets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,  -- image, video, document, archive, text, other
    url TEXT NOT NULL UNIQUE,
    filename TEXT,
    size INTEGER,  -- File size in bytes
    mimetype TEXT,
    descriptions TEXT NOT NULL DEFAULT '[]',  -- JSON array of {id, text, created_at}
    is_added_to_library INTEGER NOT NULL DEFAULT 1,
    revision INTEGER NOT NULL DEFAULT 0,  -- bumped on every write
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_media_assets_kind ON media_assets(kind);
CREATE INDEX IF NOT EXISTS idx_media_assets_created_at ON media_assets(created_at);
CREATE INDEX IF NOT EXISTS idx_media_assets_library ON media_assets(is_added_to_library);
"""

_SAFE_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _is_safe_identifier(value: str) -> bool:
    return bool(value and isinstance(value, str) and _SAFE_IDENT_RE.match(value))


async def _get_table_columns(db, table_name: str) -> Result[List[str]]:
    if not _is_safe_identifier(table_name):
        return Result.Err("INVALID_INPUT", f"Invalid table name: {table_name}")
    result = await db.aquery(f"PRAGMA table_info('{table_name}')")
    if not result.ok:
        return Result.Err("DB_ERROR", f"Unable to inspect {table_name}: {result.error}")
    return Result.Ok([row["name"] for row in result.data or []])


async def table_has_column(db, table_name: str, column_name: str) -> bool:
    if not _is_safe_identifier(table_name) or not _is_safe_identifier(column_name):
        logger.warning("Invalid identifier in table_has_column: %s.%s", table_name, column_name)
        return False
    columns_result = await _get_table_columns(db, table_name)
    if not columns_result.ok:
        logger.warning(
            "Unable to determine columns for %s.%s: %s",
            table_name,
            column_name,
            columns_result.error
        )
        return False

    return column_name in (columns_result.data or [])


async def ensure_tables_exist(db) -> Result[bool]:
    logger.info("Ensuring tables exist...")
    result = await db.aexecutescript(SCHEMA_V1)
    if not result.ok:
        logger.error("Failed to ensure base tables: %s", result.error)
    return result


async def ensure_indexes(db) -> Result[bool]:
    logger.info("Ensuring indexes exist...")
    result = await db.aexecutescript(INDEXES)
    if not result.ok:
        logger.error("Failed to ensure indexes: %s", result.error)
    return result


def _schema_fingerprint() -> str:
    ddl = f"{SCHEMA_V1}\n{INDEXES}"
    normalized = "\n".join(line.strip() for line in ddl.splitlines() if line.strip())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


async def _ensure_schema_fingerprint(db) -> Result[bool]:
    fingerprint = _schema_fingerprint()
    existing = await db.aquery("SELECT value FROM metadata WHERE key = 'schema_ddl_hash'")
    if existing.ok and existing.data:
        current = (existing.data[0] or {}).get("value") or ""
        if current and current != fingerprint:
            logger.warning("Database schema fingerprint differs from expected")

    return await db.aexecute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_ddl_hash', ?)",
        (fingerprint,)
    )


async def _ensure_schema(db) -> Result[bool]:
    result = await ensure_tables_exist(db)
    if not result.ok:
        return result

    result = await ensure_indexes(db)
    if not result.ok:
        return result

    version_result = await db.aset_schema_version(CURRENT_SCHEMA_VERSION)
    if not version_result.ok:
        logger.error("Failed to set schema version: %s", version_result.error)
        return version_result

    fp_result = await _ensure_schema_fingerprint(db)
    if not fp_result.ok:
        logger.warning("Failed to store schema fingerprint: %s", fp_result.error)

    log_success(logger, f"Schema ensured (version {CURRENT_SCHEMA_VERSION})")
    return Result.Ok(True)


async def init_schema(db) -> Result[bool]:
    """
    Initialize the schema (useful for tests or first-time installs).
    """
    return await _ensure_schema(db)


async def migrate_schema(db) -> Result[bool]:
    """
    Bring the schema to the current version by ensuring the expected tables
    and indexes exist.

    Args:
        db: Sqlite instance

    Returns:
        Result with success boolean
    """
    current_version = await db.aget_schema_version()
    logger.info("Ensuring schema (current version %s -> target %s)", current_version, CURRENT_SCHEMA_VERSION)

    repair_result = await _ensure_schema(db)
    if not repair_result.ok:
        return repair_result

    final_version = await db.aget_schema_version()

    if current_version == final_version:
        logger.info("Schema already reported up to date (%s)", final_version)
    else:
        log_success(logger, f"Schema migrated from version {current_version} to {final_version}")

    return Result.Ok(True)
