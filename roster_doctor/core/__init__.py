"""Reconciliation and duplicate-detection engine.

Everything in this package works on in-memory rows and returns plain
values. Reading and writing files is left to the callers.
"""

from roster_doctor.core.differ import diff_datasets
from roster_doctor.core.extractor import ColumnIndex, extract_keyed_dataset, resolve_columns
from roster_doctor.core.matching import find_master_collisions, match_registrations
from roster_doctor.core.normalization import normalize_key
from roster_doctor.core.reconcile import ReconciliationReport, reconcile
from roster_doctor.core.registrations import (
    RegistrationBatch,
    find_header_index,
    master_entries,
    select_new_registrations,
    sheet_row,
)
from roster_doctor.core.shared import (
    ChangeKind,
    ChangeRecord,
    KeyedDataset,
    MasterCollision,
    MasterEntry,
    MatchResult,
    MatchType,
    NewRegistration,
    Record,
)
from roster_doctor.core.sync import SyncResult, sync_recipients
from roster_doctor.core.transform import (
    MappingRule,
    TransferResult,
    parse_mapping_rules,
    run_transfer,
    transform_headers,
)
from roster_doctor.core.validation import are_emails_valid, find_duplicate_rows, find_invalid_emails

__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "ColumnIndex",
    "KeyedDataset",
    "MappingRule",
    "MasterCollision",
    "MasterEntry",
    "MatchResult",
    "MatchType",
    "NewRegistration",
    "Record",
    "ReconciliationReport",
    "RegistrationBatch",
    "SyncResult",
    "TransferResult",
    "are_emails_valid",
    "diff_datasets",
    "extract_keyed_dataset",
    "find_duplicate_rows",
    "find_header_index",
    "find_invalid_emails",
    "find_master_collisions",
    "master_entries",
    "match_registrations",
    "normalize_key",
    "parse_mapping_rules",
    "reconcile",
    "resolve_columns",
    "run_transfer",
    "select_new_registrations",
    "sheet_row",
    "sync_recipients",
    "transform_headers",
]
