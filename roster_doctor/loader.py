"""
loader.py — read roster sheets into plain rows of display strings

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods and public spreadsheet URLs.

Public API:
    result = load_rows("path/to/roster.xlsx", sheet_name="5.設定上書き")
    rows   = result["rows"]

Result dict keys:
    rows              — list of rows, each a list of str; first row is the header
    source            — the path or URL that was read
    detected_format   — "csv", "xlsx", ...
    detected_encoding — encoding name for text files; None for workbooks
    delimiter         — delimiter char for text files; None otherwise
    sheet_name        — sheet that was read for workbooks; None otherwise
    sheet_names       — all sheet names for workbooks; None otherwise
    warnings          — list of warning strings
"""

from __future__ import annotations

import csv
import io
import re
import tempfile
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

import chardet
import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string

from roster_doctor.remote import fetch_remote_source, is_remote

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
MODERN_WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
EXCEL_FORMATS = MODERN_WORKBOOK_FORMATS | {".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS

BACKUP_STAMP_FORMAT = "%y%m%d-%H%M"
BACKUP_STAMP_RE = re.compile(r"^\d{6}-\d{4}$")
A1_RANGE_RE = re.compile(r"^([A-Za-z]{1,3})?(\d+)?(?::([A-Za-z]{1,3})?(\d+)?)?$")


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "utf-8"
    if detected.lower() in {"ascii", "utf-8-sig"}:
        return "utf-8"
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Tries UTF-8, then CP932 (Excel exports from Japanese Windows), then the
    detected encoding, falling back to replacement characters. Also strips a
    leading BOM and embedded null bytes.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", "cp932", preferred_encoding):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("utf-8", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer CSV delimiter from sample lines.

    Uses csv.Sniffer first; falls back to the candidate giving the most
    consistent column count.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in [",", ";", "\t", "|"]:
        widths = [len(row) for row in csv.reader(io.StringIO(sample), delimiter=delim) if row]
        if len(widths) < 2:
            continue
        mode_width, mode_count = Counter(widths).most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(widths)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# RANGES AND BACKUPS
# ══════════════════════════════════════════════════════════════════════════════

def parse_range(cell_range: str) -> tuple[Optional[int], Optional[int], Optional[int], Optional[int]]:
    """
    1-based (min_col, min_row, max_col, max_row) of an A1-style range.

    Half-open ranges such as ``B21:L`` are accepted; missing parts come back
    as None.
    """
    match = A1_RANGE_RE.match(cell_range.strip().replace("$", ""))
    if not match or not any(match.groups()):
        raise ValueError(f"Invalid cell range: {cell_range!r}")
    min_col, min_row, max_col, max_row = match.groups()
    return (
        column_index_from_string(min_col.upper()) if min_col else None,
        int(min_row) if min_row else None,
        column_index_from_string(max_col.upper()) if max_col else None,
        int(max_row) if max_row else None,
    )


def range_start_row(cell_range: str) -> int:
    """First row of an A1-style range such as ``B21:L``."""
    return parse_range(cell_range)[1] or 1


def range_start_col(cell_range: str) -> int:
    return parse_range(cell_range)[0] or 1


def slice_range(rows: list[list[str]], cell_range: str) -> list[list[str]]:
    """Cut an A1-style range out of `rows`; open ends run to the sheet edge."""
    min_col, min_row, max_col, max_row = parse_range(cell_range)
    first_row = (min_row or 1) - 1
    first_col = (min_col or 1) - 1
    block = rows[first_row:max_row]
    return [row[first_col:max_col] for row in block]


def backup_sheet_name(base: str, now: Optional[datetime] = None) -> str:
    return f"{base}{(now or datetime.now()).strftime(BACKUP_STAMP_FORMAT)}"


def latest_backup_sheet(names: list[str], base: str) -> Optional[str]:
    """Newest ``<base><yyMMdd-HHmm>`` sheet name, or None when there is none."""
    backups = [
        name for name in names
        if name.startswith(base) and BACKUP_STAMP_RE.match(name[len(base):])
    ]
    if not backups:
        return None
    return sorted(backups, reverse=True)[0]


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _display_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _trim_trailing_blank_rows(rows: list[list[str]]) -> list[list[str]]:
    while rows and not any(cell.strip() for cell in rows[-1]):
        rows.pop()
    return rows


def _load_text(path: Path, suffix: str) -> dict:
    raw = path.read_bytes()
    enc = _detect_encoding(raw)
    text = _read_text_safely(raw, enc)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)

    try:
        rows = [list(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)]
    except csv.Error as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    return {
        "rows":              _trim_trailing_blank_rows(rows),
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": enc,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          [],
    }


def _choose_sheet(
    all_sheets: list[str],
    sheet_name: Optional[str],
    warnings: list[str],
    default_sheet: Optional[str] = None,
) -> str:
    if not all_sheets:
        raise ValueError("Workbook has no sheets.")
    if sheet_name is None:
        if default_sheet in all_sheets:
            return default_sheet
        chosen = all_sheets[0]
        if len(all_sheets) > 1:
            warnings.append(
                f"Multiple sheets found ({len(all_sheets)} total); "
                f"used '{chosen}'. Pass a sheet name to pick another."
            )
        return chosen
    if sheet_name not in all_sheets:
        raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
    return sheet_name


def _load_openpyxl(path: Path, suffix: str, sheet_name: Optional[str], default_sheet: Optional[str] = None) -> dict:
    """Read .xlsx/.xlsm cell values from A1 so row numbers match the sheet."""
    warnings: list[str] = []
    try:
        workbook = load_workbook(path, data_only=True, keep_vba=suffix == ".xlsm")
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    try:
        all_sheets = list(workbook.sheetnames)
        chosen = _choose_sheet(all_sheets, sheet_name, warnings, default_sheet)
        sheet = workbook[chosen]
        rows = [
            [_display_text(value) for value in row]
            for row in sheet.iter_rows(min_row=1, min_col=1, values_only=True)
        ]
    finally:
        workbook.close()

    return {
        "rows":              _trim_trailing_blank_rows(rows),
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        chosen,
        "sheet_names":       all_sheets,
        "warnings":          warnings,
    }


def _load_pandas(path: Path, suffix: str, sheet_name: Optional[str], default_sheet: Optional[str] = None) -> dict:
    """Read legacy .xls (xlrd) and .ods (odfpy) workbooks through pandas."""
    engine = None
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd — run: pip install xlrd")
    if suffix in ODS_FORMATS:
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy — run: pip install odfpy")
        engine = "odf"

    warnings: list[str] = []
    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            all_sheets = [str(name) for name in xf.sheet_names]
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    chosen = _choose_sheet(all_sheets, sheet_name, warnings, default_sheet)
    try:
        df = pd.read_excel(path, sheet_name=chosen, header=None, dtype=str, engine=engine)
    except Exception as exc:
        raise ValueError(f"Could not load sheet '{chosen}': {exc}") from exc

    rows = df.fillna("").astype(str).values.tolist()
    return {
        "rows":              _trim_trailing_blank_rows(rows),
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        chosen,
        "sheet_names":       all_sheets,
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════════

def load_rows(
    source: str | Path,
    sheet_name: Optional[str] = None,
    cell_range: Optional[str] = None,
    *,
    default_sheet: Optional[str] = None,
) -> dict:
    """
    Load a local file or public URL into rows of strings.

    `sheet_name` must exist when given. Otherwise `default_sheet` is used
    when the workbook has it, and the first sheet when it does not.

    Raises:
        FileNotFoundError  — local path does not exist
        ValueError         — unsupported format or unparseable content
        ImportError        — optional dependency (xlrd / odfpy) missing
    """
    if is_remote(source):
        with tempfile.TemporaryDirectory(prefix="roster-doctor-") as folder:
            local = fetch_remote_source(str(source), Path(folder))
            result = load_rows(local, sheet_name=sheet_name, cell_range=cell_range, default_sheet=default_sheet)
        result["source"] = str(source)
        return result

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in TEXT_FORMATS:
        result = _load_text(path, suffix)
    elif suffix in MODERN_WORKBOOK_FORMATS:
        result = _load_openpyxl(path, suffix, sheet_name, default_sheet)
    elif suffix in EXCEL_FORMATS | ODS_FORMATS:
        result = _load_pandas(path, suffix, sheet_name, default_sheet)
    else:
        raise ValueError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(ALL_FORMATS))}"
        )

    if cell_range:
        result["rows"] = slice_range(result["rows"], cell_range)
    result["source"] = str(path)
    return result
