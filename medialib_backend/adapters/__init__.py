"""Infrastructure adapters: SQLite persistence and filesystem removal."""
