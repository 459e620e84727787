from __future__ import annotations

import re
from collections import Counter

from roster_doctor.config import ColumnContract
from roster_doctor.core.extractor import header_positions
from roster_doctor.core.normalization import cell_text
from roster_doctor.core.shared import (
    CLEANED_CC,
    CLEANED_TO,
    DUPLICATE_TAG,
    MISMATCH_TAG,
    REMARK_COUNT,
    REMARK_INVALID_JOIN,
    REMARK_INVALID_PREFIX,
    KeyedDataset,
)
from roster_doctor.errors import MissingColumnError

EMAIL_RE = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r"@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$",
    re.IGNORECASE,
)


def email_candidates(text: object) -> list[str]:
    if text is None:
        return []
    return [line.strip() for line in str(text).splitlines() if line.strip()]


def are_emails_valid(text: object) -> bool:
    """True when every non-blank line of `text` is a syntactically valid address."""
    return all(EMAIL_RE.match(candidate) for candidate in email_candidates(text))


def find_invalid_emails(dataset: KeyedDataset) -> list[list[str]]:
    rows: list[list[str]] = []
    for key, record in dataset.items():
        failed = []
        if not are_emails_valid(record.to):
            failed.append(CLEANED_TO)
        if not are_emails_valid(record.cc):
            failed.append(CLEANED_CC)
        if failed:
            remark = REMARK_INVALID_PREFIX + REMARK_INVALID_JOIN.join(failed)
            rows.append([key, record.to, record.cc, MISMATCH_TAG, remark])
    return rows


def find_duplicate_rows(rows: list[list], contract: ColumnContract, *, source: str | None = None) -> list[list[str]]:
    """One report row per team name that appears more than once.

    Works on the raw cells so the report shows the values as typed. The
    TO/CC shown are the ones from the first occurrence.
    """
    if not rows:
        raise MissingColumnError([contract.team_name], source=source)
    positions = header_positions(rows[0])
    if contract.team_name not in positions:
        raise MissingColumnError([contract.team_name], source=source)
    name_idx = positions[contract.team_name]
    to_idx = positions.get(contract.to)
    cc_idx = positions.get(contract.cc)

    data = rows[1:]
    counts = Counter(
        name for name in (cell_text(row, name_idx).strip() for row in data) if name
    )

    reported: set[str] = set()
    duplicates: list[list[str]] = []
    for row in data:
        name = cell_text(row, name_idx).strip()
        if not name or counts[name] < 2 or name in reported:
            continue
        reported.add(name)
        duplicates.append(
            [
                name,
                cell_text(row, to_idx),
                cell_text(row, cc_idx),
                DUPLICATE_TAG,
                REMARK_COUNT.format(count=counts[name]),
            ]
        )
    return duplicates
