from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum

from roster_doctor.core.normalization import normalize_key

CLEANED_TO = "TO"
CLEANED_CC = "CC"

DUPLICATE_TAG = "Duplicate"
MISMATCH_TAG = "Mismatch"

OCCURRENCE_SEPARATOR = " : "
MATCH_SEPARATOR = " / "

REMARK_COUNT = "{count}回出現"
REMARK_INVALID_PREFIX = "不適切："
REMARK_INVALID_JOIN = "、"
REMARK_AUTO_CLEANED = "※不可視文字を自動削除({columns})"
REMARK_FIELD_CHANGED = "列：{label}"

REPORT_HEADERS = ["チーム名", "送付先メアド(TO)の変更後", "送付先メアド(CC)の変更後", "変更の種類", "備考"]
DUPLICATE_REPORT_HEADERS = ["種別", "チーム名", "行番号", "重複対象(参考)", "マスタ合致行", "合致キーワード"]


class ChangeKind(str, Enum):
    CREATED = "Created"
    UPDATED = "Updated"
    DELETED = "Deleted"


class MatchType(str, Enum):
    EXACT = "Exact"
    PARTIAL = "Partial"


@dataclass(frozen=True)
class Record:
    team_name: str
    to: str = ""
    cc: str = ""
    period: str = ""
    start_time: str = ""
    end_time: str = ""
    holiday: str = ""
    cleaned_columns: tuple[str, ...] = ()
    row_number: int = 0


class KeyedDataset(Mapping):
    """Read-only mapping of normalized team name to Record.

    Keys are normalized once on the way in, and every lookup normalizes the
    probe the same way, so callers never re-normalize.
    """

    def __init__(self, records: Iterable[Record] | None = None) -> None:
        self._records: dict[str, Record] = {}
        for record in records or ():
            key = normalize_key(record.team_name)
            if key:
                self._records[key] = record

    def __getitem__(self, key: object) -> Record:
        return self._records[normalize_key(key)]

    def __contains__(self, key: object) -> bool:
        return normalize_key(key) in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"KeyedDataset({len(self)} records)"


@dataclass(frozen=True)
class MasterEntry:
    name: str
    row: int


@dataclass(frozen=True)
class NewRegistration:
    team_name: str
    position: int
    order_number: str = ""


@dataclass(frozen=True)
class MasterMatch:
    name: str
    row: int
    keyword: str


@dataclass(frozen=True)
class MatchResult:
    match_type: MatchType
    key: str
    occurrence_positions: tuple[int, ...]
    matches: tuple[MasterMatch, ...]

    @property
    def matched_targets(self) -> tuple[str, ...]:
        return tuple(match.name for match in self.matches)

    @property
    def matched_target_rows(self) -> tuple[str, ...]:
        return tuple(str(match.row) for match in self.matches)

    @property
    def matched_keywords(self) -> tuple[str, ...]:
        return tuple(match.keyword for match in self.matches)

    def to_report_row(self, row_format: str = "{row}") -> list[str]:
        return [
            self.match_type.value,
            self.key,
            OCCURRENCE_SEPARATOR.join(str(position) for position in self.occurrence_positions),
            MATCH_SEPARATOR.join(self.matched_targets),
            MATCH_SEPARATOR.join(row_format.format(row=match.row) for match in self.matches),
            MATCH_SEPARATOR.join(self.matched_keywords),
        ]


@dataclass(frozen=True)
class MasterCollision:
    team_name: str
    position: int


@dataclass(frozen=True)
class ChangeRecord:
    key: str
    to: str
    cc: str
    kind: ChangeKind
    remarks: str = ""

    def to_report_row(self) -> list[str]:
        return [self.key, self.to, self.cc, self.kind.value, self.remarks]
