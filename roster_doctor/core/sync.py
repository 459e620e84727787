from __future__ import annotations

from dataclasses import astuple, dataclass

from roster_doctor.config import ColumnContract, SourceColumns
from roster_doctor.core.extractor import header_positions
from roster_doctor.core.normalization import cell_text
from roster_doctor.errors import MissingColumnError


@dataclass(frozen=True)
class SyncResult:
    header_rows: list[list[str]]
    rows: list[list[str]]
    updated: int = 0
    appended: int = 0
    deleted: int = 0

    @property
    def stats(self) -> dict[str, int]:
        return {"updated": self.updated, "appended": self.appended, "deleted": self.deleted}


def _require(headers: list, labels: list[str], source: str) -> dict[str, int]:
    positions = header_positions(headers)
    missing = [label for label in labels if label not in positions]
    if missing:
        raise MissingColumnError(missing, source=source)
    return {label: positions[label] for label in labels}


def sync_recipients(
    source_rows: list[list],
    target_rows: list[list],
    source_columns: SourceColumns,
    contract: ColumnContract,
    target_header_rows: int = 2,
) -> SyncResult:
    """Rebuild the settings rows so their TO/CC match the cleaned list.

    The cleaned list decides which teams exist and who receives their
    report. Existing target rows keep their order and any other cells.
    Teams only in the cleaned list are appended at the end.
    """
    if not source_rows:
        raise MissingColumnError(list(astuple(source_columns)), source="source")
    if not target_rows:
        raise MissingColumnError(list(contract.mandatory.values()), source="target")

    src = _require(source_rows[0], [source_columns.team_name, source_columns.to, source_columns.cc], "source")
    tgt = _require(target_rows[0], [contract.team_name, contract.to, contract.cc], "target")
    s_team, s_to, s_cc = (src[source_columns.team_name], src[source_columns.to], src[source_columns.cc])
    t_team, t_to, t_cc = (tgt[contract.team_name], tgt[contract.to], tgt[contract.cc])

    recipients: dict[str, tuple[str, str]] = {}
    for row in source_rows[1:]:
        team = cell_text(row, s_team).strip()
        if team:
            recipients[team] = (cell_text(row, s_to), cell_text(row, s_cc))

    width = len(target_rows[0])
    existing: dict[str, list[str]] = {}
    for row in target_rows[target_header_rows:]:
        team = cell_text(row, t_team).strip()
        if team:
            padded = [cell_text(row, idx) for idx in range(max(width, len(row)))]
            existing[team] = padded

    rows: list[list[str]] = []
    updated = deleted = appended = 0
    for team, row in existing.items():
        if team not in recipients:
            deleted += 1
            continue
        to, cc = recipients[team]
        if row[t_to] != to or row[t_cc] != cc:
            row[t_to] = to
            row[t_cc] = cc
            updated += 1
        rows.append(row)

    for team, (to, cc) in recipients.items():
        if team in existing:
            continue
        row = [""] * width
        row[t_team] = team
        row[t_to] = to
        row[t_cc] = cc
        rows.append(row)
        appended += 1

    header_rows = [[cell_text(row, idx) for idx in range(len(row))] for row in target_rows[:target_header_rows]]
    return SyncResult(header_rows, rows, updated, appended, deleted)
