from __future__ import annotations

from datetime import datetime
from pathlib import Path

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from roster_doctor.loader import backup_sheet_name

HEADER_GREEN = "4CAF50"
HEADER_RED = "E53935"
HEADER_BLUE = "1565C0"
HEADER_ORANGE = "EF6C00"

# Accent fills keyed by the value of a report's kind column
KIND_FILLS = {
    "Created": PatternFill("solid", fgColor="E2EFDA"),    # soft green
    "Updated": PatternFill("solid", fgColor="FFF2CC"),    # soft yellow
    "Deleted": PatternFill("solid", fgColor="FCE4D6"),    # soft orange
    "Duplicate": PatternFill("solid", fgColor="F8CBAD"),
    "Mismatch": PatternFill("solid", fgColor="F8CBAD"),
    "Exact": PatternFill("solid", fgColor="F8CBAD"),
    "Partial": PatternFill("solid", fgColor="FFF2CC"),
}


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_sheet(ws, col_widths: list[int], header_color: str, header_rows: int = 1) -> None:
    """Apply bold header, color, frozen header rows, and column widths."""
    fill = _header_fill(header_color)
    font = _header_font()
    for row in ws.iter_rows(min_row=1, max_row=header_rows):
        for cell in row:
            cell.font = font
            cell.fill = fill
            cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = f"A{header_rows + 1}"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    columns = max(len(row) for row in rows[: sample + 1])
    widths = [min_width] * columns
    for row in rows[: sample + 1]:
        for i, val in enumerate(row):
            longest = max((len(line) for line in str(val).split("\n")), default=0)
            widths[i] = max(widths[i], min(max_width, longest + 2))
    return widths


def _wrap_multiline(ws, first_row: int) -> None:
    for row in ws.iter_rows(min_row=first_row):
        for cell in row:
            if isinstance(cell.value, str) and "\n" in cell.value:
                cell.alignment = Alignment(wrap_text=True, vertical="top")


def _fill_sheet(ws, headers: list[str], rows: list[list], header_color: str, kind_column: int | None) -> None:
    ws.append(headers)
    for row in rows:
        ws.append(list(row))
        if kind_column is not None and kind_column < len(row):
            fill = KIND_FILLS.get(str(row[kind_column]))
            if fill is not None:
                ws.cell(ws.max_row, kind_column + 1).fill = fill
    _style_sheet(ws, _infer_col_widths([headers, *rows]), header_color)
    _wrap_multiline(ws, 2)


def write_csv(path: Path, headers: list[str], rows: list[list]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    width = len(headers)
    frame = pd.DataFrame([list(row)[:width] + [""] * (width - len(row)) for row in rows], columns=headers)
    # Excel on Windows needs the BOM to open Japanese headers correctly
    frame.to_csv(path, index=False, encoding="utf-8-sig")


def write_report(
    path: Path,
    headers: list[str],
    rows: list[list],
    *,
    sheet_title: str,
    header_color: str = HEADER_BLUE,
    kind_column: int | None = None,
) -> Path:
    """Write one report table as .csv (pandas) or a styled .xlsx sheet."""
    if path.suffix.lower() == ".csv":
        write_csv(path, headers, rows)
        return path

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title
    _fill_sheet(ws, headers, rows, header_color, kind_column)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def write_stage_workbook(path: Path, stages: list[tuple[str, list[list[str]], list[list[str]]]]) -> Path:
    """One sheet per transfer stage: (sheet name, header rows, data rows)."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, header_rows, rows in stages:
        ws = wb.create_sheet(name)
        for header in header_rows:
            ws.append(list(header))
        for row in rows:
            ws.append(list(row))
        _style_sheet(ws, _infer_col_widths([*header_rows, *rows]), HEADER_GREEN, header_rows=max(len(header_rows), 1))
        _wrap_multiline(ws, len(header_rows) + 1)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def rewrite_sheet_with_backup(
    source_path: Path,
    output_path: Path,
    sheet_name: str,
    header_rows: list[list[str]],
    rows: list[list[str]],
    *,
    now: datetime | None = None,
) -> str:
    """Copy `sheet_name` to a dated backup tab, then replace its contents.

    Returns the backup sheet name. Other sheets are kept as they are.
    """
    wb = openpyxl.load_workbook(source_path, keep_vba=source_path.suffix.lower() == ".xlsm")
    try:
        if sheet_name not in wb.sheetnames:
            raise ValueError(f"Sheet '{sheet_name}' not found. Available: {wb.sheetnames}")
        ws = wb[sheet_name]
        backup = wb.copy_worksheet(ws)
        backup.title = backup_sheet_name(sheet_name, now)

        ws.delete_rows(1, ws.max_row)
        # append() keeps counting from the deleted rows, so place cells explicitly
        for row_idx, row in enumerate([*header_rows, *rows], start=1):
            for col_idx, value in enumerate(row, start=1):
                ws.cell(row=row_idx, column=col_idx, value=value)
        _wrap_multiline(ws, len(header_rows) + 1)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)
        return backup.title
    finally:
        wb.close()
