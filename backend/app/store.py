from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from .inspection import parse_timestamp
from .models import PersistedInspection
from .storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "truckCheckInspections"


def dumps(value: Any) -> str:
    """Serialize the way ``JSON.stringify`` does: compact, key order kept."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass
class InspectionStore:
    """Append-only inspection history kept in a single storage slot."""

    storage: LocalStorage
    key: str = STORAGE_KEY

    def list(self) -> List[PersistedInspection]:
        entries = [PersistedInspection.from_dict(raw) for raw in self._read_valid()]
        # sorted() is stable, so equal dates keep insertion order.
        return sorted(entries, key=lambda entry: _sort_key(entry.date), reverse=True)

    def get(self, entry_id: str) -> Optional[PersistedInspection]:
        for raw in self._read_valid():
            if raw["id"] == entry_id:
                return PersistedInspection.from_dict(raw)
        return None

    def append(self, entry: PersistedInspection) -> None:
        entries = self._read_raw()
        if entries is None:
            entries = []
        entries.append(entry.to_dict())
        self._write(entries)
        logger.info("Stored inspection %s (%d entries)", entry.id, len(entries))

    def delete_by_id(self, entry_id: str) -> bool:
        entries = self._read_raw()
        if not entries:
            return False
        remaining = [raw for raw in entries if not (isinstance(raw, dict) and raw.get("id") == entry_id)]
        if len(remaining) == len(entries):
            logger.warning("Inspection %s not found; nothing deleted", entry_id)
            return False
        self._write(remaining)
        logger.info("Deleted inspection %s", entry_id)
        return True

    def clear(self) -> None:
        self.storage.remove_item(self.key)
        logger.info("Cleared inspection history slot %s", self.key)

    def export_json(self) -> str:
        return self.storage.get_item(self.key) or "[]"

    def import_json(self, text: str, *, replace: bool = False) -> int:
        try:
            incoming = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError("Import data is not valid JSON") from exc
        if not isinstance(incoming, list):
            raise ValueError("Import data must be a JSON array of inspections")
        entries = [] if replace else (self._read_raw() or [])
        known = {raw.get("id") for raw in entries if isinstance(raw, dict)}
        added = 0
        for raw in incoming:
            if not _is_valid_entry(raw):
                logger.warning("Skipping malformed imported entry: %r", raw)
                continue
            if raw["id"] in known:
                continue
            entries.append(raw)
            known.add(raw["id"])
            added += 1
        self._write(entries)
        return added

    def _read_raw(self) -> Optional[List[Any]]:
        stored = self.storage.get_item(self.key)
        if stored is None or not stored.strip():
            return None
        try:
            parsed = json.loads(stored)
        except json.JSONDecodeError:
            logger.warning("Stored inspections in %s are not valid JSON; ignoring them", self.key)
            return None
        if not isinstance(parsed, list):
            logger.warning("Stored inspections in %s are not a JSON array; ignoring them", self.key)
            return None
        return parsed

    def _read_valid(self) -> List[dict]:
        valid: List[dict] = []
        for raw in self._read_raw() or []:
            if _is_valid_entry(raw):
                valid.append(raw)
            else:
                logger.warning("Skipping malformed stored inspection: %r", raw)
        return valid

    def _write(self, entries: List[Any]) -> None:
        self.storage.set_item(self.key, dumps(entries))


def _is_valid_entry(raw: Any) -> bool:
    return isinstance(raw, dict) and isinstance(raw.get("id"), str) and bool(raw["id"])


def _sort_key(value: Optional[str]) -> datetime:
    parsed = parse_timestamp(value) if value else None
    return parsed or datetime.min
