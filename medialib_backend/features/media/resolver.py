"""
Identity resolution: find the asset a locator refers to.

All candidate predicates are sent to the repository in one ranked query;
exact predicates outrank the tolerant pattern and ties go to the lowest id.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional

from ...config import INTERNAL_PREFIXES
from ...shared import Result, get_logger
from .locator import locator_variants, normalize_locator
from .models import MediaAsset

logger = get_logger(__name__)

PredicateKind = Literal["exact", "pattern"]


@dataclass(frozen=True)
class LocatorPredicate:
    kind: PredicateKind
    value: str
    rank: int


def build_identity_pattern(normalized: str, internal_prefixes: Optional[Iterable[str]] = None) -> str:
    """
    Anchored, case-insensitive pattern for the legacy forms of one locator.

    Tolerated differences: optional `scheme://host`, optional internal routing
    prefix, optional leading `/`, optional query/fragment and letter case.
    """
    path = str(normalized or "").lstrip("/")
    if not path:
        return ""
    source = INTERNAL_PREFIXES if internal_prefixes is None else internal_prefixes
    prefixes = [re.escape(str(p).strip().strip("/")) for p in source if str(p or "").strip().strip("/")]
    prefix_part = f"(?:(?:{'|'.join(prefixes)})/+)?" if prefixes else ""
    return (
        r"(?i)^(?:[a-z][a-z0-9+.\-]*://[^/]+)?"
        r"/*"
        f"{prefix_part}"
        f"{re.escape(path)}"
        r"(?:[?#].*)?$"
    )


def build_predicates(locator: object, internal_prefixes: Optional[Iterable[str]] = None) -> List[LocatorPredicate]:
    """
    Ranked predicates for one locator.

    rank 0: the original string, then each normalizer variant, then the pattern.
    """
    raw = str(locator or "")
    if not raw.strip():
        return []

    predicates: List[LocatorPredicate] = []
    seen: set[str] = set()
    for candidate in [raw, *locator_variants(raw, internal_prefixes)]:
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        predicates.append(LocatorPredicate("exact", candidate, len(predicates)))

    pattern = build_identity_pattern(normalize_locator(raw, internal_prefixes), internal_prefixes)
    if pattern:
        predicates.append(LocatorPredicate("pattern", pattern, len(predicates)))
    return predicates


class IdentityResolver:
    """Resolve a locator against a repository exposing `find_one(predicates)`."""

    def __init__(self, repository, internal_prefixes: Optional[Iterable[str]] = None):
        self._repo = repository
        self._internal_prefixes = tuple(INTERNAL_PREFIXES if internal_prefixes is None else internal_prefixes)

    async def resolve(self, locator: object) -> Result[Optional[MediaAsset]]:
        predicates = build_predicates(locator, self._internal_prefixes)
        if not predicates:
            return Result.Ok(None)
        res = await self._repo.find_one(predicates)
        if res.ok and res.data is not None:
            logger.debug("Locator %r resolved to asset %s (%s)", locator, res.data.id, res.data.url)
        return res
