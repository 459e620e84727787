from __future__ import annotations

from dataclasses import dataclass

from roster_doctor.config import OPTIONAL_FIELDS, ColumnContract
from roster_doctor.core.normalization import cell_text, normalize_key, was_cleaned
from roster_doctor.core.shared import CLEANED_CC, CLEANED_TO, KeyedDataset, Record
from roster_doctor.errors import MissingColumnError


@dataclass(frozen=True)
class ColumnIndex:
    team_name: int
    to: int
    cc: int
    optional: dict[str, int | None]


def header_positions(headers: list) -> dict[str, int]:
    """First position of every non-empty header label, matched exactly."""
    positions: dict[str, int] = {}
    for idx, header in enumerate(headers):
        label = "" if header is None else str(header)
        if label and label not in positions:
            positions[label] = idx
    return positions


def resolve_columns(headers: list, contract: ColumnContract, *, source: str | None = None) -> ColumnIndex:
    positions = header_positions(headers)
    missing = [label for label in contract.mandatory.values() if label not in positions]
    if missing:
        raise MissingColumnError(missing, source=source)
    return ColumnIndex(
        team_name=positions[contract.team_name],
        to=positions[contract.to],
        cc=positions[contract.cc],
        optional={name: positions.get(label) for name, label in contract.optional.items()},
    )


def extract_keyed_dataset(rows: list[list], contract: ColumnContract, *, source: str | None = None) -> KeyedDataset:
    """Build a KeyedDataset from a header row plus data rows.

    Blank team names are skipped. The returned records carry their 1-based
    sheet row and note whether normalization removed hidden characters from
    the TO or CC cell. When a name repeats, the later row wins. Input without
    a header row raises MissingColumnError.
    """
    if not rows:
        raise MissingColumnError(list(contract.mandatory.values()), source=source)

    index = resolve_columns(rows[0], contract, source=source)
    records: list[Record] = []
    for offset, row in enumerate(rows[1:], start=2):
        team_name = normalize_key(cell_text(row, index.team_name))
        if not team_name:
            continue

        raw_to = cell_text(row, index.to)
        raw_cc = cell_text(row, index.cc)
        to = normalize_key(raw_to)
        cc = normalize_key(raw_cc)
        cleaned = []
        if was_cleaned(raw_to, to):
            cleaned.append(CLEANED_TO)
        if was_cleaned(raw_cc, cc):
            cleaned.append(CLEANED_CC)

        optional = {name: normalize_key(cell_text(row, index.optional[name])) for name in OPTIONAL_FIELDS}
        records.append(
            Record(
                team_name=team_name,
                to=to,
                cc=cc,
                cleaned_columns=tuple(cleaned),
                row_number=offset,
                **optional,
            )
        )
    return KeyedDataset(records)
