from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Iterator, Optional, Tuple

from .catalog import CHECKLIST_CATALOG, Catalog, default_sections, generate_id, sign_off_ids
from .models import ChecklistItem, InspectionRecord, InspectionSection, PersistedInspection

logger = logging.getLogger(__name__)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"

MISSING_NAME = "Please enter your name"
MISSING_UNIT = "Please enter the unit number"
MISSING_SIGNATURE = "Please sign the inspection form"
MISSING_COMPLETED_ITEM = "Please complete at least one checklist item"


def create_default(catalog: Catalog = CHECKLIST_CATALOG, now: Optional[datetime] = None) -> InspectionRecord:
    return InspectionRecord(
        id=generate_id(),
        unit_number="",
        inspector_name="",
        date=format_timestamp(now or _utcnow()),
        signature_image=None,
        duration_seconds=0,
        sections=default_sections(catalog),
    )


def reset(catalog: Catalog = CHECKLIST_CATALOG) -> InspectionRecord:
    return create_default(catalog)


def copy_record(record: InspectionRecord) -> InspectionRecord:
    return copy.deepcopy(record)


def find_item(
    record: InspectionRecord,
    section_id: str,
    item_id: str,
    catalog: Catalog = CHECKLIST_CATALOG,
) -> Optional[ChecklistItem]:
    if section_id in sign_off_ids(catalog):
        logger.error("Section %s is the sign-off block and has no checklist items", section_id)
        return None
    section = record.sections.get(section_id)
    if section is None:
        logger.error("Section not found: %s", section_id)
        return None
    for item in section.items:
        if item.id == item_id:
            return item
    logger.error("Item %s not found in section %s", item_id, section_id)
    return None


def toggle_item(
    record: InspectionRecord,
    section_id: str,
    item_id: str,
    catalog: Catalog = CHECKLIST_CATALOG,
) -> None:
    item = find_item(record, section_id, item_id, catalog)
    if item is not None:
        item.completed = not item.completed


def set_item_completed(
    record: InspectionRecord,
    section_id: str,
    item_id: str,
    completed: bool,
    catalog: Catalog = CHECKLIST_CATALOG,
) -> bool:
    item = find_item(record, section_id, item_id, catalog)
    if item is None:
        return False
    item.completed = completed
    return True


def checklist_sections(
    record: InspectionRecord,
    catalog: Catalog = CHECKLIST_CATALOG,
) -> Iterator[Tuple[str, InspectionSection]]:
    """Sections holding checkable items; the sign-off block is left out."""
    skipped = sign_off_ids(catalog)
    for section_id, section in record.sections.items():
        if section_id not in skipped:
            yield section_id, section


def completed_count(record: InspectionRecord, catalog: Catalog = CHECKLIST_CATALOG) -> int:
    return sum(1 for _, section in checklist_sections(record, catalog) for item in section.items if item.completed)


def total_count(record: InspectionRecord, catalog: Catalog = CHECKLIST_CATALOG) -> int:
    return sum(len(section.items) for _, section in checklist_sections(record, catalog))


def missing_requirement(record: InspectionRecord, catalog: Catalog = CHECKLIST_CATALOG) -> Optional[str]:
    """Return the most relevant reason the record cannot be saved yet."""
    if not record.inspector_name.strip():
        return MISSING_NAME
    if not record.unit_number.strip():
        return MISSING_UNIT
    if not record.signature_image:
        return MISSING_SIGNATURE
    if completed_count(record, catalog) == 0:
        return MISSING_COMPLETED_ITEM
    return None


def is_saveable(record: InspectionRecord, catalog: Catalog = CHECKLIST_CATALOG) -> bool:
    return missing_requirement(record, catalog) is None


def snapshot(
    record: InspectionRecord,
    *,
    duration_seconds: int,
    now: Optional[datetime] = None,
) -> PersistedInspection:
    """Freeze the live record into a new history entry.

    The entry always gets a fresh id; re-saving a loaded inspection appends a
    second entry instead of replacing the first.
    """
    return PersistedInspection(
        id=generate_id(),
        unit_number=record.unit_number.strip(),
        inspector_name=record.inspector_name.strip(),
        signature=record.signature_image,
        date=format_timestamp(now or _utcnow()),
        duration=max(0, int(duration_seconds)),
        checklist={section_id: section.to_dict() for section_id, section in record.sections.items()},
    )


def format_duration(seconds: int) -> str:
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_timestamp(value: datetime) -> str:
    """Format like JavaScript's ``Date.toISOString`` (UTC, milliseconds)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return f"{value.strftime(ISO_FORMAT)}.{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
