"""Four-stage cleanup of the raw recipient export.

Stage 1 projects source columns onto the target layout, stage 2 drops
empty rows, stage 3 folds continuation rows into their team and stage 4
drops teams with nobody to send to.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from openpyxl.utils import column_index_from_string

from roster_doctor.core.normalization import cell_text

logger = logging.getLogger(__name__)

COLUMN_LETTERS_RE = re.compile(r"^[A-Z]{1,3}$")
DATE_PATTERNS = [
    (re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?:[ T]\d{1,2}:\d{2}(?::\d{2})?)?$"), ("year", "month", "day")),
    (re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$"), ("month", "day", "year")),
    (re.compile(r"^(\d{4})(\d{2})(\d{2})$"), ("year", "month", "day")),
]
DECIMAL_RE = re.compile(r"^-?\d+\.\d+$")


@dataclass(frozen=True)
class MappingRule:
    source_column: str
    target_column: str
    source_index: int
    target_index: int
    description: str = ""


@dataclass(frozen=True)
class TransferResult:
    transformed: list[list[str]]
    without_blanks: list[list[str]]
    consolidated: list[list[str]]
    cleaned: list[list[str]]

    def stage_counts(self) -> dict[str, int]:
        return {
            "transformed": len(self.transformed),
            "without_blanks": len(self.without_blanks),
            "consolidated": len(self.consolidated),
            "cleaned": len(self.cleaned),
        }


def column_index(letters: str) -> int:
    """Zero-based index of a column letter such as ``A`` or ``AB``; -1 if invalid."""
    letters = letters.strip().upper()
    if not COLUMN_LETTERS_RE.match(letters):
        return -1
    try:
        return column_index_from_string(letters) - 1
    except ValueError:
        return -1


def parse_mapping_rules(rows: list[list]) -> list[MappingRule]:
    rules: list[MappingRule] = []
    for offset, row in enumerate(rows, start=1):
        source = cell_text(row, 0).strip().upper()
        target = cell_text(row, 1).strip().upper()
        description = cell_text(row, 2).strip()
        if not source or not target:
            continue
        source_index = column_index(source)
        target_index = column_index(target)
        if source_index == -1 or target_index == -1:
            logger.warning("Invalid column mapping at row %d: %s -> %s", offset, source, target)
            continue
        rules.append(MappingRule(source, target, source_index, target_index, description))
    return rules


def find_rule(rules: list[MappingRule], label: str) -> MappingRule | None:
    return next((rule for rule in rules if label in rule.description), None)


def _has_content(row: list) -> bool:
    return any(re.sub(r"\s", "", cell_text(row, idx)) for idx in range(len(row)))


def format_date(value: str) -> str | None:
    text = value.strip()
    for pattern, order in DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        parts = dict(zip(order, (int(group) for group in match.groups())))
        try:
            return datetime(parts["year"], parts["month"], parts["day"]).strftime("%Y/%m/%d")
        except ValueError:
            return None
    return None


def format_number(value: str) -> str | None:
    text = value.strip()
    if not DECIMAL_RE.match(text):
        return None
    rounded = f"{round(float(text), 2):.2f}"
    return rounded.rstrip("0").rstrip(".")


def format_cell(value: str) -> str:
    if not value:
        return value
    return format_date(value) or format_number(value) or value


def transform_rows(rows: list[list], rules: list[MappingRule]) -> list[list[str]]:
    if not rows:
        return []
    if not rules:
        logger.warning("No column mapping rules found; nothing to transform.")
        return []

    width = max(rule.target_index for rule in rules) + 1
    transformed: list[list[str]] = []
    for row in rows:
        if not any(cell_text(row, idx) for idx in range(len(row))):
            continue
        target = [""] * width
        for rule in rules:
            if rule.source_index < len(row):
                target[rule.target_index] = format_cell(cell_text(row, rule.source_index))
        if _has_content(target):
            transformed.append(target)
    logger.debug("Transformed %d rows using %d mapping rules", len(transformed), len(rules))
    return transformed


def transform_headers(header_rows: list[list], rules: list[MappingRule]) -> list[list[str]]:
    """Project header rows like data rows, falling back to the rule description."""
    if not rules:
        return []
    width = max(rule.target_index for rule in rules) + 1
    projected: list[list[str]] = []
    for row in header_rows:
        target = [""] * width
        for rule in rules:
            target[rule.target_index] = cell_text(row, rule.source_index).strip() or rule.description
        projected.append(target)
    return projected


def remove_blank_rows(rows: list[list]) -> list[list[str]]:
    return [list(row) for row in rows if _has_content(row)]


def _merge_team(group: list[list[str]]) -> list[str]:
    merged = list(group[0])
    for row in group[1:]:
        if len(row) > len(merged):
            merged.extend([""] * (len(row) - len(merged)))
        for idx in range(len(row)):
            cell = cell_text(row, idx).strip()
            if not cell:
                continue
            existing = cell_text(merged, idx).strip()
            if "@" in cell:
                if not existing:
                    merged[idx] = cell
                elif cell not in [line.strip() for line in existing.split("\n")]:
                    merged[idx] = existing + "\n" + cell
            elif not existing:
                merged[idx] = cell
    return merged


def consolidate_team_rows(rows: list[list]) -> list[list[str]]:
    """Fold rows with a blank first column into the team row above them.

    Addresses (cells containing ``@``) from continuation rows are appended on
    a new line unless already listed. Other cells only fill gaps. Leading
    continuation rows with no team above them are dropped.
    """
    groups: list[list[list[str]]] = []
    for row in rows:
        if cell_text(row, 0).strip():
            groups.append([list(row)])
        elif groups:
            groups[-1].append(list(row))
    return [_merge_team(group) for group in groups]


def drop_rows_without_recipients(rows: list[list], to_index: int, cc_index: int) -> list[list[str]]:
    kept: list[list[str]] = []
    for row in rows:
        team = cell_text(row, 0).strip()
        if not team:
            continue
        if cell_text(row, to_index).strip() or cell_text(row, cc_index).strip():
            kept.append(list(row))
        else:
            logger.debug("Dropping team %r without TO/CC recipients", team)
    return kept


def run_transfer(rows: list[list], rules: list[MappingRule]) -> TransferResult:
    transformed = transform_rows(rows, rules)
    without_blanks = remove_blank_rows(transformed)
    consolidated = consolidate_team_rows(without_blanks)

    to_rule = find_rule(rules, "To")
    cc_rule = find_rule(rules, "CC")
    if to_rule is None or cc_rule is None:
        logger.warning("To/CC mapping rules not found; recipient filtering skipped.")
        cleaned = [list(row) for row in consolidated]
    else:
        cleaned = drop_rows_without_recipients(consolidated, to_rule.target_index, cc_rule.target_index)
    return TransferResult(transformed, without_blanks, consolidated, cleaned)
