from __future__ import annotations

from roster_doctor.config import OPTIONAL_FIELDS, ColumnContract
from roster_doctor.core.shared import (
    REMARK_AUTO_CLEANED,
    REMARK_FIELD_CHANGED,
    ChangeKind,
    ChangeRecord,
    KeyedDataset,
    Record,
)

UPDATED_REMARK_JOIN = "\n"


def cleaned_remark(record: Record) -> str:
    if not record.cleaned_columns:
        return ""
    return REMARK_AUTO_CLEANED.format(columns=", ".join(record.cleaned_columns))


def _changed_optional_fields(current: Record, baseline: Record) -> list[str]:
    return [name for name in OPTIONAL_FIELDS if getattr(current, name) != getattr(baseline, name)]


def diff_record(key: str, current: Record, baseline: Record, contract: ColumnContract) -> ChangeRecord | None:
    changed_optional = _changed_optional_fields(current, baseline)
    recipients_changed = current.to != baseline.to or current.cc != baseline.cc
    if not recipients_changed and not changed_optional:
        return None

    remarks = []
    note = cleaned_remark(current)
    if note:
        remarks.append(note)
    remarks.extend(REMARK_FIELD_CHANGED.format(label=contract.label_for(name)) for name in changed_optional)

    # Both recipients cleared with nothing else touched reads as a withdrawal.
    if not current.to and not current.cc and not changed_optional:
        kind = ChangeKind.DELETED
    else:
        kind = ChangeKind.UPDATED
    return ChangeRecord(key, current.to, current.cc, kind, UPDATED_REMARK_JOIN.join(remarks))


def diff_datasets(current: KeyedDataset, baseline: KeyedDataset, contract: ColumnContract) -> list[ChangeRecord]:
    """Classify every key of current and baseline as Created, Updated or Deleted.

    Keys whose fields all match are left out. Keys only present in the
    baseline come last, as Deleted with blank recipients.
    """
    changes: list[ChangeRecord] = []
    for key, record in current.items():
        if key not in baseline:
            remark = cleaned_remark(record)
            changes.append(ChangeRecord(key, record.to, record.cc, ChangeKind.CREATED, remark))
            continue
        change = diff_record(key, record, baseline[key], contract)
        if change is not None:
            changes.append(change)

    for key in baseline:
        if key not in current:
            changes.append(ChangeRecord(key, "", "", ChangeKind.DELETED))
    return changes
