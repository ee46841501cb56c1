"""Filesystem adapter."""
from .file_remover import UPLOAD_CATEGORIES, RemovalResult, safe_remove_file

__all__ = ["UPLOAD_CATEGORIES", "RemovalResult", "safe_remove_file"]
