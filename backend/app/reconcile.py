"""Rebuild a complete live inspection from a stored history entry.

Stored checklists come in three shapes, detected up front by
:func:`detect_shape`:

* a mapping of section id to ``{"title", "items"}`` (current),
* an array of section objects each carrying its own ``id``,
* a flat array of items without sections (oldest).

Sections named by the catalog take their stored items as they are. Items that
cannot be placed by section (flat lists, sections unknown to the catalog) are
matched into the sections still holding defaults, by exact id, then by id
suffix, then by label text. Every catalog section ends up present exactly once.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Any, Dict, List, Optional, Set, Tuple

from .catalog import Catalog, ChecklistSection, default_items
from .models import (
    ChecklistItem,
    FlatItemList,
    InspectionRecord,
    InspectionSection,
    NormalizedChecklist,
    PersistedInspection,
    RawSection,
    SectionArray,
    SectionMap,
)

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "data:image/"
_IGNORED_SECTION_KEYS = {"undefined", "null", ""}


def detect_shape(raw: Any) -> Optional[NormalizedChecklist]:
    if isinstance(raw, dict):
        if isinstance(raw.get("items"), list) and not any(_is_section(value) for value in raw.values()):
            return FlatItemList(items=list(raw["items"]))
        sections: List[RawSection] = []
        for section_id, section in raw.items():
            if section_id in _IGNORED_SECTION_KEYS or not isinstance(section, dict):
                logger.warning("Ignoring malformed checklist section %r", section_id)
                continue
            sections.append(RawSection(section_id, section.get("title"), _list_or_empty(section.get("items"))))
        return SectionMap(sections=sections)
    if isinstance(raw, list):
        if any(_is_section(value) for value in raw):
            sections = []
            for section in raw:
                if not isinstance(section, dict):
                    logger.warning("Ignoring malformed checklist section %r", section)
                    continue
                section_id = section.get("id") if isinstance(section.get("id"), str) else None
                sections.append(RawSection(section_id, section.get("title"), _list_or_empty(section.get("items"))))
            return SectionArray(sections=sections)
        return FlatItemList(items=list(raw))
    if raw is not None:
        logger.warning("Unrecognised checklist data of type %s", type(raw).__name__)
    return None


def reconcile(catalog: Catalog, live: InspectionRecord, persisted: PersistedInspection) -> InspectionRecord:
    normalized = detect_shape(persisted.checklist)
    catalog_sections = {section.id: section for section in catalog}
    loaded: Dict[str, InspectionSection] = {}
    titles: Dict[str, str] = {}
    seen: Set[str] = set()
    orphans: List[Any] = []

    if isinstance(normalized, (SectionMap, SectionArray)):
        for raw_section in normalized.sections:
            section_id = raw_section.section_id
            if section_id is None or section_id not in catalog_sections:
                logger.warning("Section %r is not in the catalog; matching its items by id and text", section_id)
                orphans.extend(raw_section.items)
                continue
            if section_id in seen:
                logger.warning("Duplicate section %s in stored checklist; keeping the first", section_id)
                continue
            seen.add(section_id)
            if isinstance(raw_section.title, str) and raw_section.title.strip():
                titles[section_id] = raw_section.title
            items = clean_items(section_id, raw_section.items)
            if items:
                loaded[section_id] = InspectionSection(
                    title=titles.get(section_id, catalog_sections[section_id].title),
                    items=items,
                )
            else:
                logger.info("Section %s has no stored items; using catalog defaults", section_id)
    elif isinstance(normalized, FlatItemList):
        orphans = normalized.items

    backfilled: Dict[str, InspectionSection] = {}
    for section in catalog:
        if section.id not in loaded:
            backfilled[section.id] = _default_section(section, titles.get(section.id))
    if orphans:
        _place_orphans(orphans, [(section.id, backfilled[section.id]) for section in catalog if section.id in backfilled])

    sections = {section.id: loaded.get(section.id) or backfilled[section.id] for section in catalog}
    return InspectionRecord(
        id=persisted.id or live.id,
        unit_number=persisted.unit_number if persisted.unit_number is not None else live.unit_number,
        inspector_name=persisted.inspector_name if persisted.inspector_name is not None else live.inspector_name,
        date=persisted.date if persisted.date is not None else live.date,
        signature_image=_valid_signature(persisted.signature, live.signature_image),
        duration_seconds=persisted.duration if persisted.duration is not None else live.duration_seconds,
        sections=sections,
    )


def checklist_items(raw: Any, skip_sections: AbstractSet[str] = frozenset()) -> List[ChecklistItem]:
    """Flatten any accepted checklist shape into a single list of items.

    Sections named in ``skip_sections`` are left out; flat lists carry no
    section ids and are returned whole.
    """
    normalized = detect_shape(raw)
    if normalized is None:
        return []
    if isinstance(normalized, FlatItemList):
        return clean_items("item", normalized.items)
    items: List[ChecklistItem] = []
    for index, raw_section in enumerate(normalized.sections):
        if raw_section.section_id in skip_sections:
            continue
        items.extend(clean_items(raw_section.section_id or f"section-{index}", raw_section.items))
    return items


def clean_items(section_id: str, raw_items: List[Any]) -> List[ChecklistItem]:
    items: List[ChecklistItem] = []
    seen: Set[str] = set()
    for index, raw in enumerate(raw_items):
        if isinstance(raw, str):
            raw = {"text": raw}
        if not isinstance(raw, dict):
            continue
        item_id = raw.get("id")
        if not isinstance(item_id, str) or not item_id or item_id in seen:
            item_id = _synthesize_id(section_id, index, seen)
        seen.add(item_id)
        text = raw.get("text")
        items.append(
            ChecklistItem(
                id=item_id,
                text=text if isinstance(text, str) else "",
                completed=bool(raw.get("completed")),
            )
        )
    return items


def _synthesize_id(section_id: str, index: int, taken: Set[str]) -> str:
    candidate = f"{section_id}-item-{index}"
    suffix = 1
    while candidate in taken:
        candidate = f"{section_id}-item-{index}-{suffix}"
        suffix += 1
    return candidate


def _place_orphans(orphans: List[Any], targets: List[Tuple[str, InspectionSection]]) -> None:
    claimed: Set[Tuple[str, int]] = set()
    by_id = dict(targets)
    for raw in orphans:
        if isinstance(raw, str):
            raw = {"text": raw}
        if not isinstance(raw, dict):
            continue
        match = _match_orphan(raw, targets, claimed)
        if match is None:
            logger.warning("Could not place stored item %r; dropping it", raw.get("text") or raw.get("id"))
            continue
        claimed.add(match)
        section_id, index = match
        item = by_id[section_id].items[index]
        item.completed = bool(raw.get("completed"))
        text = raw.get("text")
        if isinstance(text, str) and text.strip():
            item.text = text


def _match_orphan(
    raw: Dict[str, Any],
    targets: List[Tuple[str, InspectionSection]],
    claimed: Set[Tuple[str, int]],
) -> Optional[Tuple[str, int]]:
    item_id = raw.get("id") if isinstance(raw.get("id"), str) else ""
    text = raw.get("text").strip() if isinstance(raw.get("text"), str) else ""
    matchers = []
    if item_id:
        matchers.append(lambda item: item.id == item_id)
        matchers.append(lambda item: item_id.endswith("-" + item.id))
    if text:
        matchers.append(lambda item: item.text.strip() == text)
    for matches in matchers:
        for section_id, section in targets:
            for index, item in enumerate(section.items):
                if (section_id, index) not in claimed and matches(item):
                    return section_id, index
    return None


def _default_section(section: ChecklistSection, title: Optional[str]) -> InspectionSection:
    return InspectionSection(title=title or section.title, items=default_items(section))


def _valid_signature(candidate: Optional[str], fallback: Optional[str]) -> Optional[str]:
    if candidate and candidate.startswith(SIGNATURE_PREFIX):
        return candidate
    return fallback


def _is_section(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("items"), list)


def _list_or_empty(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []
