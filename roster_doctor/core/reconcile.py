from __future__ import annotations

from dataclasses import dataclass, field

from roster_doctor.config import ColumnContract
from roster_doctor.core.differ import diff_datasets
from roster_doctor.core.extractor import extract_keyed_dataset
from roster_doctor.core.shared import ChangeKind, ChangeRecord, KeyedDataset
from roster_doctor.core.validation import find_duplicate_rows, find_invalid_emails


@dataclass(frozen=True)
class ReconciliationReport:
    duplicates: list[list[str]] = field(default_factory=list)
    mismatches: list[list[str]] = field(default_factory=list)
    changes: list[ChangeRecord] = field(default_factory=list)

    def rows(self) -> list[list[str]]:
        return [
            *self.duplicates,
            *self.mismatches,
            *(change.to_report_row() for change in self.changes),
        ]

    def counts(self) -> dict[str, int]:
        counts = {
            "duplicates": len(self.duplicates),
            "mismatches": len(self.mismatches),
        }
        for kind in ChangeKind:
            counts[kind.value.lower()] = sum(1 for change in self.changes if change.kind is kind)
        return counts

    @property
    def has_findings(self) -> bool:
        return bool(self.duplicates or self.mismatches or self.changes)


def reconcile(
    current_rows: list[list],
    baseline_rows: list[list] | None,
    contract: ColumnContract,
) -> ReconciliationReport:
    """Duplicate, address and change checks of the current roster against its baseline.

    `baseline_rows=None` means there is no baseline yet and every team is
    Created. An empty current sheet raises MissingColumnError.
    """
    current = extract_keyed_dataset(current_rows, contract, source="current")
    if baseline_rows is None:
        baseline = KeyedDataset()
    else:
        baseline = extract_keyed_dataset(baseline_rows, contract, source="baseline")
    return ReconciliationReport(
        duplicates=find_duplicate_rows(current_rows, contract, source="current"),
        mismatches=find_invalid_emails(current),
        changes=diff_datasets(current, baseline, contract),
    )
