"""Duplicate detection of new registrations against the master registry.

Two passes live here. `find_master_collisions` is the strict membership
check used while importing a batch: it only answers "is this name already in
the master". `match_registrations` is the reviewer-facing report that also
surfaces substring overlaps and groups repeated findings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import reduce

from roster_doctor.core.normalization import cell_text, normalize_key
from roster_doctor.core.shared import (
    KeyedDataset,
    MasterCollision,
    MasterEntry,
    MasterMatch,
    MatchResult,
    MatchType,
    NewRegistration,
)
from roster_doctor.errors import InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_HEADER_LABELS = ("チーム名", "Team Name")

GroupKey = tuple[MatchType, str]
Finding = tuple[MatchType, str, int, MasterMatch]


def _validate_index(team_name_index: object) -> int:
    if isinstance(team_name_index, bool) or not isinstance(team_name_index, int):
        raise InvalidInputError(f"Team name column index must be an integer, got {team_name_index!r}")
    if team_name_index < 0:
        raise InvalidInputError(f"Team name column index must not be negative, got {team_name_index}")
    return team_name_index


def find_master_collisions(
    rows: list[list],
    master: KeyedDataset,
    team_name_index: object,
    *,
    header_labels: Iterable[str] = DEFAULT_HEADER_LABELS,
) -> list[MasterCollision]:
    """Names in `rows` that already exist in `master`.

    Positions are 1-based within `rows`. A bad column index is logged and
    yields no collisions so a larger batch can carry on.
    """
    try:
        index = _validate_index(team_name_index)
    except InvalidInputError as exc:
        logger.warning("Skipping master collision check: %s", exc)
        return []

    labels = {normalize_key(label) for label in header_labels}
    collisions: list[MasterCollision] = []
    for position, row in enumerate(rows, start=1):
        if index >= len(row):
            continue
        name = normalize_key(cell_text(row, index))
        if not name or name in labels:
            continue
        if name in master:
            collisions.append(MasterCollision(team_name=name, position=position))
    return collisions


def classify(key: str, master_name: str) -> MatchType | None:
    if key == master_name:
        return MatchType.EXACT
    if master_name in key or key in master_name:
        return MatchType.PARTIAL
    return None


def _record_findings(record: NewRegistration, master: list[MasterEntry]) -> list[Finding]:
    key = normalize_key(record.team_name)
    if not key:
        return []

    exact: list[Finding] = []
    partial: list[Finding] = []
    for entry in master:
        name = normalize_key(entry.name)
        if not name:
            continue
        match_type = classify(key, name)
        if match_type is None:
            continue
        # the keyword is always the master name that matched
        finding = (match_type, key, record.position, MasterMatch(name, entry.row, name))
        (exact if match_type is MatchType.EXACT else partial).append(finding)
    return exact or partial


def _fold(groups: dict[GroupKey, MatchResult], finding: Finding) -> dict[GroupKey, MatchResult]:
    match_type, key, position, match = finding
    current = groups.get((match_type, key))
    if current is None:
        updated = MatchResult(match_type, key, (position,), (match,))
    else:
        positions = current.occurrence_positions
        if position not in positions:
            positions = positions + (position,)
        matches = current.matches
        if not any(existing.name == match.name and existing.row == match.row for existing in matches):
            matches = matches + (match,)
        updated = MatchResult(match_type, key, positions, matches)
    return {**groups, (match_type, key): updated}


def match_registrations(records: Iterable[NewRegistration], master: Iterable[MasterEntry]) -> list[MatchResult]:
    """Group exact and partial master matches per normalized registration name.

    Exact matches win over partial ones for the same record. Groups come
    back in the order they were first found.
    """
    master_entries = list(master)
    findings = [finding for record in records for finding in _record_findings(record, master_entries)]
    groups = reduce(_fold, findings, {})
    return list(groups.values())
