"""
Shared path normalization and safety helpers.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath, PureWindowsPath


def normalize_path(value: str) -> Path | None:
    if not value:
        return None
    if "\x00" in value:
        return None
    try:
        return Path(value).expanduser().resolve(strict=False)
    except (OSError, ValueError, RuntimeError):
        return None


def safe_rel_path(value: str | None) -> Path | None:
    """
    Validate a root-relative path.

    Returns `Path("")` for empty input and None when the value carries a NUL
    byte, a drive, an absolute root or a `..` segment (in either separator style).
    """
    if value is None:
        return Path("")
    raw = str(value).strip()
    if raw == "":
        return Path("")
    if "\x00" in raw:
        return None
    win = PureWindowsPath(raw)
    if win.drive or win.root:
        return None
    posix = PurePosixPath(raw.replace("\\", "/"))
    if posix.is_absolute():
        return None
    if any(part == ".." for part in posix.parts):
        return None
    try:
        return Path(*posix.parts) if posix.parts else Path("")
    except (OSError, ValueError):
        return None


def is_within_root(candidate: Path, root: Path) -> bool:
    """
    True when `candidate` resolves to `root` or a location beneath it.

    The root must exist; the candidate does not need to (symlinks on the
    existing part of its path are still resolved).
    """
    try:
        root_resolved = root.resolve(strict=True)
        cand_resolved = candidate.resolve(strict=False)
    except (OSError, RuntimeError, ValueError):
        return False
    try:
        return cand_resolved == root_resolved or cand_resolved.is_relative_to(root_resolved)
    except AttributeError:
        try:
            common = os.path.commonpath([str(cand_resolved), str(root_resolved)])
            return os.path.normcase(common) == os.path.normcase(str(root_resolved))
        except ValueError:
            return False
