"""Backend-facing alias for shared utilities."""

from __future__ import annotations

from medialib_shared import (
    DEFAULT_MEDIA_KIND,
    MEDIA_KINDS,
    ErrorCode,
    MediaKind,
    Result,
    classify_file,
    format_timestamp,
    get_logger,
    is_valid_media_kind,
    log_structured,
    log_success,
    request_id_var,
    sanitize_error_message,
    timer,
    utc_now_iso,
)
from medialib_shared.types import EXTENSIONS

__all__ = [
    "DEFAULT_MEDIA_KIND",
    "EXTENSIONS",
    "MEDIA_KINDS",
    "ErrorCode",
    "MediaKind",
    "Result",
    "classify_file",
    "format_timestamp",
    "get_logger",
    "is_valid_media_kind",
    "log_structured",
    "log_success",
    "request_id_var",
    "sanitize_error_message",
    "timer",
    "utc_now_iso",
]
