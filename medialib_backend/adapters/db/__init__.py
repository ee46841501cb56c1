"""Database adapter."""
from .schema import CURRENT_SCHEMA_VERSION, init_schema, migrate_schema, table_has_column
from .sqlite import Sqlite

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "Sqlite",
    "init_schema",
    "migrate_schema",
    "table_has_column",
]
