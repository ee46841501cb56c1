"""
Tests for medialib_shared: result.py, types.py, errors.py, log.py, time.py.
"""
from __future__ import annotations

import json
import logging

from medialib_shared import errors as errors_mod
from medialib_shared import log as log_mod
from medialib_shared import time as time_mod
from medialib_shared import types as types_mod
from medialib_shared.result import Result
from medialib_shared.types import ErrorCode


# ─── result.py ─────────────────────────────────────────────────────────────


def test_result_err_accepts_enum_code():
    res = Result.Err(ErrorCode.NOT_FOUND, "missing", asset_id=3)
    assert not res.ok
    assert res.code == "NOT_FOUND"
    assert res.meta == {"asset_id": 3}
    assert res.is_code(ErrorCode.NOT_FOUND)
    assert res.is_code("NOT_FOUND")
    assert not res.is_code(ErrorCode.CONFLICT)


def test_result_ok_is_never_an_error_code():
    res = Result.Ok(1, created=True)
    assert res.ok and res.meta["created"] is True
    assert not res.is_code("OK")


def test_result_map_and_unwrap():
    assert Result.Ok(2).map(lambda x: x * 3).unwrap() == 6
    err = Result.Err("DB_ERROR", "boom")
    assert err.map(lambda x: x).unwrap_or(7) == 7
    try:
        err.unwrap()
    except ValueError as exc:
        assert "DB_ERROR" in str(exc)
    else:
        raise AssertionError("unwrap on error must raise")


# ─── types.py ──────────────────────────────────────────────────────────────


def test_classify_file_by_extension():
    assert types_mod.classify_file("photo.JPG") == "image"
    assert types_mod.classify_file("clip.mkv") == "video"
    assert types_mod.classify_file("report.pdf") == "document"
    assert types_mod.classify_file("bundle.7z") == "archive"
    assert types_mod.classify_file("notes.md") == "text"
    assert types_mod.classify_file("model.glb") == "other"
    assert types_mod.classify_file("noext") == "other"


def test_media_kind_validation():
    for kind in ("image", "video", "document", "archive", "text", "other"):
        assert types_mod.is_valid_media_kind(kind)
    assert not types_mod.is_valid_media_kind("audio")
    assert not types_mod.is_valid_media_kind(None)
    assert types_mod.DEFAULT_MEDIA_KIND == "image"


def test_validate_file_extension():
    assert types_mod.validate_file_extension("a.webp", "image")
    assert not types_mod.validate_file_extension("a.webp", "video")
    assert not types_mod.validate_file_extension("a.bin", "other")
    assert not types_mod.validate_file_extension("", "image")


# ─── errors.py ─────────────────────────────────────────────────────────────


def test_sanitize_error_message_masks_paths():
    msg = errors_mod.sanitize_error_message(OSError("cannot open /srv/data/secret.db"), "Failed")
    assert msg.startswith("Failed: ")
    assert "/srv/data" not in msg
    assert "[path]" in msg


def test_sanitize_error_message_masks_windows_paths():
    msg = errors_mod.sanitize_error_message("denied C:\\Users\\me\\file.txt", "Failed")
    assert "C:\\Users" not in msg


def test_sanitize_error_message_fallbacks():
    assert errors_mod.sanitize_error_message(None, "Nope") == "Nope"
    assert errors_mod.sanitize_error_message("", "Nope") == "Nope"
    assert errors_mod.sanitize_error_message(ValueError("x"), "") == "An error occurred: x"


# ─── log.py ────────────────────────────────────────────────────────────────


def test_get_logger_uses_medialib_namespace():
    logger = log_mod.get_logger("medialib_backend.features.media.service")
    assert logger.name == "medialib.features.media.service"
    assert any(isinstance(f, log_mod.CorrelationFilter) for f in logger.filters)
    assert len(logger.handlers) == 1
    # A second call must not stack handlers.
    log_mod.get_logger("medialib_backend.features.media.service")
    assert len(logger.handlers) == 1


def test_emoji_formatter_includes_request_id():
    token = log_mod.request_id_var.set("req-42")
    try:
        record = logging.LogRecord("medialib.x", logging.WARNING, __file__, 1, "hello", None, None)
        log_mod.CorrelationFilter().filter(record)
        text = log_mod.EmojiFormatter().format(record)
    finally:
        log_mod.request_id_var.reset(token)
    assert "[req-42]" in text
    assert "hello" in text
    assert "⚠️" in text


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_log_success_and_structured():
    logger = log_mod.get_logger("tests.capture")
    handler = _Capture()
    logger.addHandler(handler)
    try:
        log_mod.log_success(logger, "done")
        log_mod.log_structured(logger, logging.INFO, "batch", total=3)
    finally:
        logger.removeHandler(handler)
    assert handler.records[0].levelno == log_mod.SUCCESS_LEVEL
    payload = json.loads(handler.records[1].getMessage())
    assert payload["message"] == "batch"
    assert payload["context"] == {"total": 3}


# ─── time.py ───────────────────────────────────────────────────────────────


def test_format_timestamp_is_utc_iso():
    s = time_mod.format_timestamp(0.0)
    assert s == "1970-01-01T00:00:00.000Z"
    assert time_mod.utc_now_iso().endswith("Z")


def test_timer_without_logger(capsys):
    with time_mod.timer("myop"):
        pass
    captured = capsys.readouterr()
    assert "myop" in captured.out
