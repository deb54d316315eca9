from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .catalog import CHECKLIST_CATALOG, Catalog
from .export import export_inspections_workbook
from .models import HistoryEntry, PersistedInspection
from .session import InspectionSession, summarize
from .storage import LocalStorage
from .store import STORAGE_KEY, InspectionStore
from .timer import InspectionTimer

logger = logging.getLogger(__name__)


@dataclass
class TruckCheckApp:
    storage: LocalStorage
    store: InspectionStore
    catalog: Catalog = CHECKLIST_CATALOG

    @classmethod
    def create(
        cls,
        storage_path: Path,
        *,
        catalog: Catalog = CHECKLIST_CATALOG,
        key: str = STORAGE_KEY,
    ) -> "TruckCheckApp":
        storage = LocalStorage(storage_path)
        storage.initialize()
        store = InspectionStore(storage, key=key)
        return cls(storage=storage, store=store, catalog=catalog)

    def new_session(self, timer: Optional[InspectionTimer] = None) -> InspectionSession:
        return InspectionSession(store=self.store, catalog=self.catalog, timer=timer or InspectionTimer())

    # History operations
    def history(self) -> List[HistoryEntry]:
        return [summarize(entry, self.catalog) for entry in self.store.list()]

    def list_inspections(self) -> List[PersistedInspection]:
        return self.store.list()

    def get_inspection(self, inspection_id: str) -> PersistedInspection:
        entry = self.store.get(inspection_id)
        if entry is None:
            raise LookupError("Inspection not found")
        return entry

    def delete_inspection(self, inspection_id: str) -> bool:
        return self.store.delete_by_id(inspection_id)

    def export_workbook(self, generated_at: Optional[datetime] = None) -> tuple[str, bytes]:
        return export_inspections_workbook(self.store.list(), generated_at=generated_at, catalog=self.catalog)

    def export_json(self) -> str:
        return self.store.export_json()

    def import_json(self, text: str, *, replace: bool = False) -> int:
        added = self.store.import_json(text, replace=replace)
        logger.info("Imported %d inspections", added)
        return added


if __name__ == "__main__":  # pragma: no cover - manual interaction helper
    logging.basicConfig(level=logging.INFO)
    app = TruckCheckApp.create(Path("truck_check.db"))
    print("Truck Check App ready.")
    print(f"{len(app.list_inspections())} saved inspections in {app.storage.path}")
    print("Use this module within Python to interact with services programmatically.")
