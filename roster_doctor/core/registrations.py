from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from roster_doctor.config import ColumnContract
from roster_doctor.core.extractor import header_positions
from roster_doctor.core.normalization import cell_text
from roster_doctor.core.shared import MasterEntry, NewRegistration
from roster_doctor.errors import MissingColumnError


@dataclass(frozen=True)
class RegistrationBatch:
    records: list[NewRegistration] = field(default_factory=list)
    last_order_number: str = ""
    last_team_name: str = ""
    found_previous: bool = True


def sheet_row(start_row: int, position: int) -> int:
    """Absolute sheet row of a 1-based position inside a block starting at `start_row`."""
    return start_row + position - 1


def find_header_index(header_row: list, labels: Iterable[str]) -> int:
    labels = [label for label in labels if label]
    for idx, header in enumerate(header_row):
        text = "" if header is None else str(header)
        if any(label in text for label in labels):
            return idx
    return -1


def master_entries(rows: list[list], contract: ColumnContract) -> list[MasterEntry]:
    """Team names of the master sheet with their 1-based sheet rows."""
    if not rows:
        return []
    name_idx = header_positions(rows[0]).get(contract.team_name)
    if name_idx is None:
        return []
    entries: list[MasterEntry] = []
    for row_number, row in enumerate(rows[1:], start=2):
        name = cell_text(row, name_idx).strip()
        if name:
            entries.append(MasterEntry(name=name, row=row_number))
    return entries


def select_new_registrations(
    header_row: list,
    data_rows: list[list],
    data_start_row: int,
    last_order_number: str,
    contract: ColumnContract,
    *,
    team_name_labels: Iterable[str] = ("チーム名", "Team Name"),
    source: str | None = None,
) -> RegistrationBatch:
    """Registrations that come after the last processed order number.

    The procurement sheet is ordered by time, so every row after the one
    holding `last_order_number` is new. With no previous order number every
    row is new. When the previous order number is no longer on the sheet
    nothing is collected and `found_previous` is False.
    """
    team_idx = find_header_index(header_row, [contract.team_name, *team_name_labels])
    order_idx = find_header_index(header_row, [contract.order_number])
    missing = []
    if team_idx == -1:
        missing.append(contract.team_name)
    if order_idx == -1:
        missing.append(contract.order_number)
    if missing:
        raise MissingColumnError(missing, source=source)

    previous = (last_order_number or "").strip()
    collecting = not previous
    records: list[NewRegistration] = []
    latest_order = previous
    latest_team = ""
    for offset, row in enumerate(data_rows):
        team_name = cell_text(row, team_idx).strip()
        order_number = cell_text(row, order_idx).strip()
        if not team_name and not order_number:
            continue
        if not collecting:
            collecting = order_number == previous
            continue
        if not team_name:
            continue
        records.append(NewRegistration(team_name, data_start_row + offset, order_number))
        if order_number:
            latest_order = order_number
            latest_team = team_name
    return RegistrationBatch(records, latest_order, latest_team, collecting)
