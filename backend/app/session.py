from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from . import inspection
from .catalog import CHECKLIST_CATALOG, Catalog, sign_off_ids
from .models import HistoryEntry, InspectionRecord, PersistedInspection, SaveStatus
from .reconcile import checklist_items, reconcile
from .signature import DataUriSignature, SignatureCapture
from .store import InspectionStore
from .timer import InspectionTimer

logger = logging.getLogger(__name__)

READY_TO_SAVE = "Save inspection"


class ValidationError(ValueError):
    """Raised when the live inspection is missing something required to save."""


@dataclass
class InspectionSession:
    """Owns the live inspection of one form and everything that edits it.

    All handlers go through this object; the catalog and store are shared,
    the record, timer and signature belong to the session alone.
    """

    store: InspectionStore
    catalog: Catalog = CHECKLIST_CATALOG
    timer: InspectionTimer = field(default_factory=InspectionTimer)
    signature: SignatureCapture = field(default_factory=DataUriSignature)
    record: InspectionRecord = field(init=False)

    def __post_init__(self) -> None:
        self.record = inspection.create_default(self.catalog)

    # Editing --------------------------------------------------------------------
    def toggle_item(self, section_id: str, item_id: str) -> None:
        self.timer.notify_interaction()
        inspection.toggle_item(self.record, section_id, item_id, self.catalog)

    def set_item_completed(self, section_id: str, item_id: str, completed: bool) -> bool:
        self.timer.notify_interaction()
        return inspection.set_item_completed(self.record, section_id, item_id, completed, self.catalog)

    def update_details(self, *, unit_number: Optional[str] = None, inspector_name: Optional[str] = None) -> None:
        self.timer.notify_interaction()
        if unit_number is not None:
            self.record.unit_number = unit_number
        if inspector_name is not None:
            self.record.inspector_name = inspector_name

    def set_signature(self, data_uri: str) -> None:
        self.signature.import_image(data_uri)
        self.record.signature_image = self.signature.export_image()
        self.timer.notify_interaction()

    def clear_signature(self) -> None:
        self.signature.clear()
        self.record.signature_image = None

    def status(self) -> SaveStatus:
        problem = inspection.missing_requirement(self.record, self.catalog)
        if problem:
            return SaveStatus(saveable=False, message=problem)
        return SaveStatus(saveable=True, message=READY_TO_SAVE)

    # Lifecycle ------------------------------------------------------------------
    def save(self, now: Optional[datetime] = None) -> PersistedInspection:
        was_running = self.timer.is_running
        elapsed = self.timer.pause()
        problem = inspection.missing_requirement(self.record, self.catalog)
        if problem:
            if was_running:
                self.timer.resume()
            raise ValidationError(problem)
        entry = inspection.snapshot(self.record, duration_seconds=elapsed, now=now)
        self.store.append(entry)
        logger.info("Inspection for unit %s saved as %s", entry.unit_number, entry.id)
        self._start_fresh()
        return entry

    def new_inspection(self, *, confirmed: bool) -> bool:
        if not confirmed:
            return False
        self._start_fresh()
        return True

    def load(self, entry_id: str, *, confirmed: bool) -> bool:
        if not confirmed:
            return False
        entry = self.store.get(entry_id)
        if entry is None:
            raise LookupError("Inspection not found")
        record = reconcile(self.catalog, self.record, entry)
        self.signature.clear()
        if record.signature_image:
            try:
                self.signature.import_image(record.signature_image)
            except ValueError:
                logger.warning("Stored signature for %s could not be restored", entry_id)
                record.signature_image = None
        self.record = record
        if record.duration_seconds > 0:
            self.timer.restore(record.duration_seconds)
        else:
            self.timer.reset()
        logger.info("Loaded inspection %s for editing", entry_id)
        return True

    def delete(self, entry_id: str, *, confirmed: bool) -> bool:
        if not confirmed:
            return False
        return self.store.delete_by_id(entry_id)

    def reset_storage(self, *, confirmed: bool) -> bool:
        if not confirmed:
            return False
        self.store.clear()
        return True

    # History --------------------------------------------------------------------
    def history(self) -> List[HistoryEntry]:
        return [summarize(entry, self.catalog) for entry in self.store.list()]

    def _start_fresh(self) -> None:
        self.record = inspection.reset(self.catalog)
        self.signature.clear()
        self.timer.reset()


def summarize(entry: PersistedInspection, catalog: Catalog = CHECKLIST_CATALOG) -> HistoryEntry:
    items = checklist_items(entry.checklist, skip_sections=sign_off_ids(catalog))
    return HistoryEntry(
        id=entry.id,
        unit_number=entry.unit_number or "",
        inspector_name=entry.inspector_name or "",
        date=entry.date or "",
        duration=entry.duration or 0,
        completed_items=sum(1 for item in items if item.completed),
        total_items=len(items),
        has_signature=bool(entry.signature),
    )
