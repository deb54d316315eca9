from __future__ import annotations

import io
from collections import Counter
from datetime import datetime, timezone
from typing import AbstractSet, Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .catalog import CHECKLIST_CATALOG, Catalog, sign_off_ids
from .inspection import format_duration, parse_timestamp
from .models import FlatItemList, PersistedInspection
from .reconcile import checklist_items, clean_items, detect_shape


def export_inspections_workbook(
    entries: Iterable[PersistedInspection],
    *,
    generated_at: Optional[datetime] = None,
    catalog: Catalog = CHECKLIST_CATALOG,
) -> tuple[str, bytes]:
    inspections = list(entries)
    now = generated_at or datetime.now(timezone.utc)
    skipped = sign_off_ids(catalog)

    workbook = Workbook()
    summary_ws = workbook.active
    summary_ws.title = "Summary"

    title_font = Font(size=16, bold=True, color="8B1A1A")
    header_font = Font(bold=True, color="1F2A24")
    muted_font = Font(color="5B6657")

    summary_ws["A1"] = "Truck check history"
    summary_ws["A1"].font = title_font
    summary_ws.merge_cells("A1:E1")
    summary_ws["A2"] = now.strftime("Created %Y-%m-%d %H:%M UTC")
    summary_ws["A2"].font = muted_font
    summary_ws.merge_cells("A2:E2")

    total = len(inspections)
    dates = [parsed for parsed in (parse_timestamp(entry.date) for entry in inspections if entry.date) if parsed]
    latest = max(dates, default=None)
    unique_units = len({entry.unit_number for entry in inspections if entry.unit_number})
    durations = [entry.duration for entry in inspections if entry.duration]
    average_duration = format_duration(sum(durations) // len(durations)) if durations else "00:00:00"
    unsigned = sum(1 for entry in inspections if not entry.signature)

    summary_ws["A4"], summary_ws["B4"] = "Metric", "Value"
    summary_ws["A4"].font = header_font
    summary_ws["B4"].font = header_font

    metrics = [
        ("Total inspections", total),
        ("Latest inspection", latest.strftime("%Y-%m-%d %H:%M") if latest else "-"),
        ("Unique units", unique_units),
        ("Average duration", average_duration),
        ("Unsigned inspections", unsigned),
    ]
    for index, (label, value) in enumerate(metrics, start=5):
        summary_ws.cell(row=index, column=1, value=label)
        summary_ws.cell(row=index, column=2, value=value)

    inspector_counts = Counter(entry.inspector_name for entry in inspections if entry.inspector_name)
    if inspector_counts:
        summary_ws["D4"] = "Most active inspectors"
        summary_ws["D4"].font = header_font
        summary_ws["E4"] = "Inspections"
        summary_ws["E4"].font = header_font
        for offset, (name, count) in enumerate(inspector_counts.most_common(3), start=5):
            summary_ws.cell(row=offset, column=4, value=name)
            summary_ws.cell(row=offset, column=5, value=count)

    for column, width in [(1, 26), (2, 22), (4, 28), (5, 14)]:
        summary_ws.column_dimensions[get_column_letter(column)].width = width

    detail_ws = workbook.create_sheet("Inspections")
    detail_headers = [
        "Inspection ID",
        "Saved (UTC)",
        "Unit",
        "Inspector",
        "Duration",
        "Completed items",
        "Total items",
        "Signed",
        "Missing items",
    ]
    detail_ws.append(detail_headers)
    _style_header(detail_ws, header_font)

    items_ws = workbook.create_sheet("Items")
    items_ws.append(["Inspection ID", "Unit", "Section", "Item", "Completed"])
    _style_header(items_ws, header_font)

    attention = PatternFill(start_color="FDECEA", end_color="FDECEA", fill_type="solid")
    for entry in inspections:
        items = checklist_items(entry.checklist, skip_sections=skipped)
        completed = [item for item in items if item.completed]
        missing = [item.text for item in items if not item.completed and item.text]
        saved = parse_timestamp(entry.date) if entry.date else None
        detail_ws.append(
            [
                entry.id,
                saved.strftime("%Y-%m-%d %H:%M") if saved else entry.date or "",
                entry.unit_number or "",
                entry.inspector_name or "",
                format_duration(entry.duration or 0),
                len(completed),
                len(items),
                "Yes" if entry.signature else "No",
                ", ".join(missing),
            ]
        )
        if not entry.signature:
            for cell in detail_ws[detail_ws.max_row]:
                cell.fill = attention

        for section_title, item in _items_by_section(entry, skipped):
            items_ws.append(
                [
                    entry.id,
                    entry.unit_number or "",
                    section_title,
                    item.text,
                    "Yes" if item.completed else "No",
                ]
            )

    for sheet in (detail_ws, items_ws):
        sheet.auto_filter.ref = sheet.dimensions
        sheet.freeze_panes = "A2"
        _fit_columns(sheet)

    timestamp = now.strftime("%Y%m%d-%H%M%S")
    filename = f"truck-check-export-{timestamp}.xlsx"
    buffer = io.BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    return filename, buffer.getvalue()


def _items_by_section(entry: PersistedInspection, skipped: AbstractSet[str]):
    normalized = detect_shape(entry.checklist)
    if normalized is None:
        return []
    if isinstance(normalized, FlatItemList):
        return [("", item) for item in clean_items("item", normalized.items)]
    rows = []
    for raw_section in normalized.sections:
        if raw_section.section_id in skipped:
            continue
        title = raw_section.title if isinstance(raw_section.title, str) else raw_section.section_id or ""
        for item in clean_items(raw_section.section_id or "section", raw_section.items):
            rows.append((title, item))
    return rows


def _style_header(sheet, font: Font) -> None:
    for cell in sheet[1]:
        cell.font = font
        cell.alignment = Alignment(horizontal="center")


def _fit_columns(sheet) -> None:
    for column_index in range(1, sheet.max_column + 1):
        column_letter = get_column_letter(column_index)
        max_length = max(
            (len(str(sheet.cell(row=row, column=column_index).value or "")) for row in range(1, sheet.max_row + 1)),
            default=10,
        )
        sheet.column_dimensions[column_letter].width = min(max(12, max_length + 2), 60)
