"""
Locator normalization.

A locator is the external-facing identifier of an asset (a URL or a path).
Every helper here is pure: no I/O, no exceptions, empty input gives empty output.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

from ...config import INTERNAL_PREFIXES

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_HTTP_HOST_RE = re.compile(r"^https?://[^/]+", re.IGNORECASE)
_SCHEME_HOST_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://[^/?#]*")
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def _prefixes(internal_prefixes: Optional[Iterable[str]]) -> List[str]:
    source = INTERNAL_PREFIXES if internal_prefixes is None else internal_prefixes
    out: List[str] = []
    for p in source:
        cleaned = str(p or "").strip().strip("/")
        if cleaned:
            out.append("/" + cleaned)
    return out


def _drop_query(value: str) -> str:
    for sep in ("?", "#"):
        idx = value.find(sep)
        if idx != -1:
            value = value[:idx]
    return value


def _strip_scheme_host(value: str) -> str:
    if not _SCHEME_RE.match(value):
        return value
    try:
        return urlsplit(value).path
    except ValueError:
        return _SCHEME_HOST_RE.sub("", value)


def _strip_internal_prefix(value: str, prefixes: List[str]) -> str:
    """Remove the first internal prefix that forms a whole leading segment."""
    leading = value.startswith("/")
    body = value if leading else "/" + value
    for prefix in prefixes:
        if body == prefix or body.startswith(prefix + "/"):
            body = body[len(prefix):]
            break
    else:
        return value
    return body if leading else body.lstrip("/")


def normalize_locator(raw: object, internal_prefixes: Optional[Iterable[str]] = None) -> str:
    """
    Lookup form of a locator.

    Strips whitespace, unifies separators, drops scheme/host, query and
    fragment, collapses repeated `/` and strips internal routing prefixes.
    The presence or absence of a leading `/` is preserved.
    """
    value = str(raw or "").strip()
    if not value:
        return ""
    value = value.replace("\\", "/")
    value = _strip_scheme_host(value)
    value = _drop_query(value)
    value = _MULTI_SLASH_RE.sub("/", value)
    value = _strip_internal_prefix(value, _prefixes(internal_prefixes))
    if value == "/":
        return ""
    return value


def normalize_for_storage(raw: object, internal_prefixes: Optional[Iterable[str]] = None) -> str:
    """Canonical storage form: the lookup form with exactly one leading `/`."""
    value = normalize_locator(raw, internal_prefixes)
    if not value:
        return ""
    return "/" + value.lstrip("/")


def locator_variants(raw: object, internal_prefixes: Optional[Iterable[str]] = None) -> List[str]:
    """
    Ordered, de-duplicated lookup candidates.

    canonical form, with leading `/`, without leading `/`, original string.
    """
    if raw is None or not str(raw).strip():
        return []
    canonical = normalize_locator(raw, internal_prefixes)
    candidates = [canonical]
    if canonical:
        candidates.append("/" + canonical.lstrip("/"))
        candidates.append(canonical.lstrip("/"))
    candidates.append(str(raw))

    seen: set[str] = set()
    out: List[str] = []
    for c in candidates:
        if c and c not in seen:
            seen.add(c)
            out.append(c)
    return out


def extract_url_path(locator: object) -> str:
    """
    Path component of an `http(s)://` URL.

    When the URL cannot be parsed the scheme and host are stripped by pattern;
    anything that is not an http(s) URL is returned unchanged.
    """
    value = str(locator or "")
    if not _HTTP_RE.match(value):
        return value
    try:
        return urlsplit(value).path
    except ValueError:
        return _HTTP_HOST_RE.sub("", value)


def clean_file_path(path: object, internal_prefixes: Optional[Iterable[str]] = None) -> str:
    """Root-relative file path: internal prefix and query removed, no leading `/`."""
    value = str(path or "").strip()
    if not value:
        return ""
    value = value.replace("\\", "/")
    value = _drop_query(value)
    value = _MULTI_SLASH_RE.sub("/", value)
    value = _strip_internal_prefix(value, _prefixes(internal_prefixes))
    return value.lstrip("/")
