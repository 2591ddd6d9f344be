"""Writers for the cleaned data, rules config and prioritization artifacts."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from data_alchemist.prioritization import excel_rows
from data_alchemist.shared import is_blank

CLEAN_CSV_TEMPLATE = "{entity}-clean-data.csv"
RULES_CONFIG_NAME = "rules-config.json"
PRIORITIZATION_CONFIG_NAME = "prioritization-config.json"
PRIORITIZED_CSV_TEMPLATE = "{entity}-prioritized.csv"
PRIORITIZATION_WORKBOOK_NAME = "prioritization.xlsx"

SHEET_COLORS = {
    "clients": "1565C0",
    "workers": "4CAF50",
    "tasks": "F57C00",
    "summary": "6A1B9A",
}
COLLECTION_ENTITIES = (("clients", "client"), ("workers", "worker"), ("tasks", "task"))


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, text: str) -> Path:
    ensure_parent(path)
    path.write_text(text, encoding="utf-8")
    return path


def write_json(path: Path, payload: Any) -> Path:
    return write_text(path, json_dumps(payload) + "\n")


# ══════════════════════════════════════════════════════════════════════════
# CSV
# ══════════════════════════════════════════════════════════════════════════

def _csv_cell(value: Any) -> Any:
    if is_blank(value):
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def rows_to_csv(rows: list[dict[str, Any]], rename: dict[str, str] | None = None) -> str:
    """
    Serialize rows with the first row's keys as columns. ``rename`` maps a key
    to the header label written for it; keys it does not name keep their own
    name. Values are quoted only when they hold a delimiter, quote or newline.
    """
    if not rows:
        return ""
    headers = list(rows[0].keys())
    rename = rename or {}
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([rename.get(header, header) for header in headers])
    for row in rows:
        writer.writerow([_csv_cell(row.get(header)) for header in headers])
    return buffer.getvalue()


def write_clean_csv(rows: list[dict[str, Any]], path: Path, rename: dict[str, str] | None = None) -> Path:
    return write_text(path, rows_to_csv(rows, rename))


def clean_csv_name(entity: str) -> str:
    return CLEAN_CSV_TEMPLATE.format(entity=entity)


# ══════════════════════════════════════════════════════════════════════════
# WORKBOOK
# ══════════════════════════════════════════════════════════════════════════

def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen first row, column widths."""
    fill = _header_fill(header_color)
    font = _header_font()
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def _append_table(ws, headers: list[str], rows: list[list], header_color: str) -> None:
    ws.append(headers)
    for row in rows:
        ws.append(row)
    _style_sheet(ws, _infer_col_widths([headers, *rows]), header_color)


def write_prioritization_workbook(sheets: dict[str, Any], path: Path) -> Path:
    """One sheet per non-empty entity collection plus a Summary sheet."""
    wb = openpyxl.Workbook()
    summary = wb.active
    summary.title = "Summary"

    prioritization = sheets["prioritization"]
    summary_rows = [
        ["Profile", prioritization["Profile"]],
        ["Description", prioritization["Description"]],
        ["ConsistencyRatio", prioritization["ConsistencyRatio"]],
        ["GeneratedAt", prioritization["GeneratedAt"]],
    ]
    _append_table(summary, ["Field", "Value"], summary_rows, SHEET_COLORS["summary"])

    criteria = prioritization["Criteria"]
    if criteria:
        criteria_sheet = wb.create_sheet("Criteria")
        headers = list(criteria[0].keys())
        _append_table(criteria_sheet, headers, [[c[h] for h in headers] for c in criteria], SHEET_COLORS["summary"])

    for collection, _entity in COLLECTION_ENTITIES:
        rows = sheets.get(collection) or []
        if not rows:
            continue
        ws = wb.create_sheet(collection.capitalize())
        headers = list(rows[0].keys())
        values = [["" if row[h] is None else row[h] for h in headers] for row in rows]
        _append_table(ws, headers, values, SHEET_COLORS[collection])

    ensure_parent(path)
    wb.save(path)
    return path


# ══════════════════════════════════════════════════════════════════════════
# BUNDLES
# ══════════════════════════════════════════════════════════════════════════

def write_rules_config(config: dict[str, Any], output_dir: Path) -> Path:
    return write_json(output_dir / RULES_CONFIG_NAME, config)


def write_prioritization_bundle(export: dict[str, Any], output_dir: Path) -> dict[str, str]:
    """
    Write prioritization-config.json, one prioritized CSV per loaded entity
    and the styled workbook. Returns output name -> path.
    """
    outputs = {"prioritization_config": str(write_json(output_dir / PRIORITIZATION_CONFIG_NAME, export))}
    sheets = excel_rows(export)
    for collection, entity in COLLECTION_ENTITIES:
        if sheets.get(collection):
            path = write_text(output_dir / PRIORITIZED_CSV_TEMPLATE.format(entity=entity), rows_to_csv(sheets[collection]))
            outputs[f"{entity}_prioritized_csv"] = str(path)
    workbook = write_prioritization_workbook(sheets, output_dir / PRIORITIZATION_WORKBOOK_NAME)
    outputs["prioritization_workbook"] = str(workbook)
    return outputs
