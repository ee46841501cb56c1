"""
Configuration for the media library core.

Every value is read from the environment once at import time; invalid values
fall back to the default (or are clamped) with a warning.
"""
import os
import logging
from pathlib import Path

from .utils import env_bool, split_csv

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    for name in names:
        if name and name in os.environ:
            return env_bool(name, default)
    return default


def _env_path(default: Path, *names: str) -> Path:
    raw = _env_raw(*names)
    if raw is None:
        return default.resolve()
    try:
        return Path(raw).expanduser().resolve()
    except (OSError, RuntimeError):
        logger.warning("Failed to resolve %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default.resolve()


# Storage locations
DATA_DIR_PATH = _env_path(Path.cwd() / "data", "MLIB_DATA_DIR")
DATA_DIR = str(DATA_DIR_PATH)
INDEX_DB_PATH = _env_path(DATA_DIR_PATH / "media.sqlite", "MLIB_DB_PATH")
INDEX_DB = str(INDEX_DB_PATH)

# Sandbox root for backing-file removal
PUBLIC_DIR_PATH = _env_path(Path.cwd() / "public", "MLIB_PUBLIC_DIR")
PUBLIC_DIR = str(PUBLIC_DIR_PATH)

# Locator handling
UPLOADS_PREFIX = str(_env_raw("MLIB_UPLOADS_PREFIX", default="uploads") or "uploads").strip("/\\") or "uploads"
INTERNAL_PREFIXES = split_csv(_env_raw("MLIB_INTERNAL_PREFIXES", default="/api")) or ("/api",)

# Deletion guard policy
DELETE_REQUIRE_UPLOADS_PREFIX = _env_bool(True, "MLIB_DELETE_REQUIRE_UPLOADS_PREFIX")
DELETE_REQUIRE_CATEGORY = _env_bool(False, "MLIB_DELETE_REQUIRE_CATEGORY")

# Database tuning
DB_TIMEOUT = _env_float(30.0, "MLIB_DB_TIMEOUT", min_value=1.0, max_value=300.0)
DB_MAX_CONNECTIONS = _env_int(4, "MLIB_DB_MAX_CONNECTIONS", min_value=1, max_value=64)
DB_QUERY_TIMEOUT = _env_float(30.0, "MLIB_DB_QUERY_TIMEOUT", min_value=1.0, max_value=600.0)

# Listing
PAGE_DEFAULT_LIMIT = 10
PAGE_MAX_LIMIT = _env_int(100, "MLIB_PAGE_MAX_LIMIT", min_value=1, max_value=10_000)

DEBUG = _env_bool(False, "MLIB_DEBUG")


def initialize_directories(db_path: str | None = None) -> None:
    """Create the directory holding the SQLite index if it does not exist."""
    target = Path(db_path) if db_path else INDEX_DB_PATH
    parent = target.parent
    if str(parent) and not parent.exists():
        parent.mkdir(parents=True, exist_ok=True)
        logger.info("Created data directory: %s", parent)
