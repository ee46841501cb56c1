"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Literal

# Media kinds accepted by the library
MediaKind = Literal["image", "video", "document", "archive", "text", "other"]

MEDIA_KINDS: Final[tuple[MediaKind, ...]] = ("image", "video", "document", "archive", "text", "other")
DEFAULT_MEDIA_KIND: Final[MediaKind] = "image"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"

    # Identity
    CONFLICT = "CONFLICT"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"
    TIMEOUT = "TIMEOUT"

    # Operation errors
    OPERATION_FAILED = "OPERATION_FAILED"

    # Filesystem
    DELETE_FAILED = "DELETE_FAILED"


# File extensions by kind ("other" is the fallback and has no list)
EXTENSIONS: Final[dict[MediaKind, frozenset[str]]] = {
    "image": frozenset({
        ".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg", ".ico",
        ".tiff", ".tif", ".heic", ".heif", ".avif", ".jfif", ".jp2", ".jpx",
        ".j2k", ".j2c", ".psd", ".raw", ".cr2", ".nef", ".orf", ".sr2",
    }),
    "video": frozenset({".mp4", ".webm", ".ogg", ".mov", ".avi", ".wmv", ".flv", ".mkv"}),
    "document": frozenset({".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx"}),
    "archive": frozenset({".zip", ".rar", ".7z", ".tar", ".gz"}),
    "text": frozenset({".txt", ".csv", ".json", ".xml", ".md"}),
}


def _ext_of(filename: str) -> str:
    return os.path.splitext(str(filename or ""))[1].lower()


def classify_file(filename: str) -> MediaKind:
    """
    Classify file by extension.

    Args:
        filename: File name or path

    Returns:
        Media kind (image, video, document, archive, text, other)
    """
    ext = _ext_of(filename)
    if not ext:
        return "other"

    for kind, exts in EXTENSIONS.items():
        if ext in exts:
            return kind

    return "other"


def is_valid_media_kind(kind: object) -> bool:
    return isinstance(kind, str) and kind in MEDIA_KINDS


def validate_file_extension(filename: str, kind: str) -> bool:
    """True when `filename` carries an extension registered for `kind`."""
    if not filename or not kind:
        return False
    allowed = EXTENSIONS.get(kind)  # type: ignore[call-overload]
    return bool(allowed) and _ext_of(filename) in allowed
