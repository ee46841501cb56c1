"""Shared utilities for the media library core."""
from .errors import sanitize_error_message
from .log import get_logger, log_structured, log_success, request_id_var
from .result import Result
from .time import format_timestamp, ms, now, timer, utc_now_iso
from .types import (
    DEFAULT_MEDIA_KIND,
    MEDIA_KINDS,
    ErrorCode,
    MediaKind,
    classify_file,
    is_valid_media_kind,
    validate_file_extension,
)

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "request_id_var",
    "now",
    "ms",
    "format_timestamp",
    "utc_now_iso",
    "timer",
    "ErrorCode",
    "MediaKind",
    "MEDIA_KINDS",
    "DEFAULT_MEDIA_KIND",
    "classify_file",
    "is_valid_media_kind",
    "validate_file_extension",
    "sanitize_error_message",
]
