"""
Media asset aggregate and its description value type.

Descriptions are owned by the asset: they are persisted as a JSON array in the
asset row and only change through the asset's operations.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from ...shared import DEFAULT_MEDIA_KIND, get_logger, utc_now_iso

logger = get_logger(__name__)

DESCRIPTION_ID_LEN = 24


def new_description_id() -> str:
    """24-character lowercase hex id, unique within its asset."""
    return uuid4().hex[:DESCRIPTION_ID_LEN]


@dataclass(frozen=True)
class Description:
    id: str
    text: str
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["Description"]:
        if not isinstance(data, Mapping):
            return None
        desc_id = str(data.get("id") or "").strip()
        if not desc_id:
            return None
        return cls(
            id=desc_id,
            text=str(data.get("text") or ""),
            created_at=str(data.get("created_at") or ""),
        )

    @classmethod
    def create(cls, text: str, *, now: Optional[str] = None, desc_id: Optional[str] = None) -> "Description":
        return cls(id=desc_id or new_description_id(), text=text, created_at=now or utc_now_iso())


def descriptions_to_json(descriptions: List[Description]) -> str:
    return json.dumps([d.to_dict() for d in descriptions], ensure_ascii=False)


def descriptions_from_json(raw: Any) -> List[Description]:
    if raw is None or raw == "":
        return []
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except (TypeError, ValueError):
        logger.warning("Unreadable descriptions payload, treating as empty")
        return []
    if not isinstance(data, list):
        return []
    out: List[Description] = []
    for item in data:
        desc = Description.from_dict(item)
        if desc is not None:
            out.append(desc)
    return out


@dataclass
class MediaAsset:
    """One media asset row."""
    url: str
    kind: str = DEFAULT_MEDIA_KIND
    id: Optional[int] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    mimetype: Optional[str] = None
    descriptions: List[Description] = field(default_factory=list)
    is_added_to_library: bool = True
    revision: int = 0
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MediaAsset":
        size = row.get("size")
        return cls(
            id=int(row["id"]) if row.get("id") is not None else None,
            kind=str(row.get("kind") or DEFAULT_MEDIA_KIND),
            url=str(row.get("url") or ""),
            filename=row.get("filename"),
            size=int(size) if size is not None else None,
            mimetype=row.get("mimetype"),
            descriptions=descriptions_from_json(row.get("descriptions")),
            is_added_to_library=bool(row.get("is_added_to_library")),
            revision=int(row.get("revision") or 0),
            created_at=str(row.get("created_at") or ""),
            updated_at=str(row.get("updated_at") or ""),
        )

    def description_texts(self) -> List[str]:
        return [d.text for d in self.descriptions]

    def find_description(self, description_id: Any) -> Optional[Description]:
        wanted = str(description_id or "").strip()
        if not wanted:
            return None
        for desc in self.descriptions:
            if desc.id == wanted:
                return desc
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "url": self.url,
            "filename": self.filename,
            "size": self.size,
            "mimetype": self.mimetype,
            "descriptions": [d.to_dict() for d in self.descriptions],
            "is_added_to_library": self.is_added_to_library,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
