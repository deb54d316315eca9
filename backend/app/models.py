from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class ChecklistItem:
    id: str
    text: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "completed": self.completed}


@dataclass
class InspectionSection:
    title: str
    items: List[ChecklistItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "items": [item.to_dict() for item in self.items]}


@dataclass
class InspectionRecord:
    id: str
    unit_number: str
    inspector_name: str
    date: str
    signature_image: Optional[str]
    duration_seconds: int
    sections: Dict[str, InspectionSection]


PERSISTED_KEYS = ("id", "unitNumber", "inspectorName", "signature", "date", "duration", "checklist")


@dataclass
class PersistedInspection:
    """One entry of the stored inspection history.

    ``checklist`` keeps the stored JSON value as-is, whatever its shape;
    ``extra`` carries keys written by other tools so a rewrite preserves them.
    Fields that were missing or of the wrong type are ``None``.
    """

    id: str
    unit_number: Optional[str]
    inspector_name: Optional[str]
    signature: Optional[str]
    date: Optional[str]
    duration: Optional[int]
    checklist: Any
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "unitNumber": self.unit_number,
            "inspectorName": self.inspector_name,
            "signature": self.signature,
            "date": self.date,
            "duration": self.duration,
            "checklist": self.checklist,
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedInspection":
        duration = data.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration < 0:
            duration = None
        return cls(
            id=str(data["id"]),
            unit_number=_string_or_none(data.get("unitNumber")),
            inspector_name=_string_or_none(data.get("inspectorName")),
            signature=_string_or_none(data.get("signature")),
            date=_string_or_none(data.get("date")),
            duration=int(duration) if duration is not None else None,
            checklist=data.get("checklist"),
            extra={key: value for key, value in data.items() if key not in PERSISTED_KEYS},
        )


def _string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class ChecklistShape(str, Enum):
    SECTION_MAP = "section_map"
    SECTION_ARRAY = "section_array"
    FLAT_ITEMS = "flat_items"


@dataclass
class RawSection:
    section_id: Optional[str]
    title: Any
    items: List[Any]


@dataclass
class SectionMap:
    sections: List[RawSection]
    shape: ChecklistShape = ChecklistShape.SECTION_MAP


@dataclass
class SectionArray:
    sections: List[RawSection]
    shape: ChecklistShape = ChecklistShape.SECTION_ARRAY


@dataclass
class FlatItemList:
    items: List[Any]
    shape: ChecklistShape = ChecklistShape.FLAT_ITEMS


NormalizedChecklist = Union[SectionMap, SectionArray, FlatItemList]


@dataclass
class SaveStatus:
    saveable: bool
    message: str


@dataclass
class HistoryEntry:
    id: str
    unit_number: str
    inspector_name: str
    date: str
    duration: int
    completed_items: int
    total_items: int
    has_signature: bool
