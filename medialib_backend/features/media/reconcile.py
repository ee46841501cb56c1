"""
Description reconciliation.

`reconcile_descriptions` diffs an asset's current descriptions against a
desired list and returns the resulting list plus counters. It is pure: the
caller decides whether to persist (only when `plan.changed`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ...shared import utc_now_iso
from .models import Description, new_description_id


@dataclass(frozen=True)
class ReconcilePlan:
    descriptions: List[Description] = field(default_factory=list)
    kept: int = 0
    updated: int = 0
    removed: int = 0
    added: int = 0
    changed: bool = False

    def summary(self) -> Dict[str, int]:
        return {
            "kept": self.kept,
            "updated": self.updated,
            "removed": self.removed,
            "added": self.added,
        }


def _desired_entry(entry: Any) -> tuple[Optional[str], str]:
    """(id or None, trimmed text) for a desired entry given as a mapping or a plain string."""
    if isinstance(entry, str):
        return None, entry.strip()
    if isinstance(entry, Description):
        return entry.id, entry.text.strip()
    if isinstance(entry, Mapping):
        raw_id = entry.get("id")
        desc_id = str(raw_id).strip() if raw_id is not None else ""
        return (desc_id or None), str(entry.get("text") or "").strip()
    return None, ""


def reconcile_descriptions(
    current: Sequence[Description],
    desired: Sequence[Any],
    *,
    now: Optional[str] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> ReconcilePlan:
    """
    Diff `current` against `desired`.

    - desired entries with empty (trimmed) text are dropped
    - current entries whose id is not among the desired ids are removed
    - retained entries keep their position; their text is replaced when it differs
    - desired entries without id are appended as new descriptions, in order
    - desired ids unknown to `current` are ignored
    """
    make_id = id_factory or new_description_id
    timestamp = now or utc_now_iso()

    identified: Dict[str, str] = {}
    fresh_texts: List[str] = []
    for entry in desired:
        desc_id, text = _desired_entry(entry)
        if not text:
            continue
        if desc_id is None:
            fresh_texts.append(text)
        else:
            identified.setdefault(desc_id, text)

    retained: List[Description] = []
    kept = updated = removed = 0
    normalized = False
    for desc in current:
        target = identified.get(str(desc.id))
        if target is None:
            removed += 1
            continue
        current_text = desc.text.strip()
        if current_text != desc.text:
            normalized = True
        if target != current_text:
            updated += 1
            retained.append(Description(id=desc.id, text=target, created_at=desc.created_at))
        else:
            kept += 1
            retained.append(Description(id=desc.id, text=current_text, created_at=desc.created_at))

    existing_ids = {d.id for d in retained}
    added_entries: List[Description] = []
    for text in fresh_texts:
        new_id = make_id()
        if new_id in existing_ids:
            new_id = new_description_id()
        existing_ids.add(new_id)
        added_entries.append(Description(id=new_id, text=text, created_at=timestamp))

    return ReconcilePlan(
        descriptions=retained + added_entries,
        kept=kept,
        updated=updated,
        removed=removed,
        added=len(added_entries),
        changed=bool(updated or removed or added_entries or normalized),
    )


def merge_new_texts(current: Sequence[Description], texts: Sequence[Any]) -> List[str]:
    """
    Trimmed texts from `texts` that are not already present verbatim in
    `current` and not repeated within `texts`. Accepts strings or `{text}` mappings.
    """
    present = {d.text.strip() for d in current}
    out: List[str] = []
    for entry in texts or []:
        _, text = _desired_entry(entry)
        if not text or text in present:
            continue
        present.add(text)
        out.append(text)
    return out
