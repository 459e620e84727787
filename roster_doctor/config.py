"""Column-name contract and run configuration.

Everything here is an immutable value that callers pass into each
operation. Nothing is read from module-level mutable state.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

SUPPORTED_CONFIG_SUFFIXES = {".json"}

OPTIONAL_FIELDS = ("period", "start_time", "end_time", "holiday")
TUPLE_FIELDS = ("transfer_stage_sheets", "team_name_header_labels")


@dataclass(frozen=True)
class ColumnContract:
    team_name: str = "チーム名"
    to: str = "送付先メアド(TO)"
    cc: str = "送付先メアド(CC)"
    period: str = "抽出期間(Nか月)"
    start_time: str = "開始時刻"
    end_time: str = "終了時刻"
    holiday: str = "土日祝日"
    order_number: str = "ブイキューブ発注番号"

    @property
    def mandatory(self) -> dict[str, str]:
        return {"team_name": self.team_name, "to": self.to, "cc": self.cc}

    @property
    def optional(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in OPTIONAL_FIELDS}

    def label_for(self, field_name: str) -> str:
        return getattr(self, field_name)


@dataclass(frozen=True)
class SourceColumns:
    """Headers of the cleaned recipient list that feeds `sync`."""

    team_name: str = "チーム名"
    to: str = "稼働率レポート送付先（To）"
    cc: str = "稼働率レポート送付先（CC）"


@dataclass(frozen=True)
class RosterConfig:
    columns: ColumnContract = field(default_factory=ColumnContract)
    source_columns: SourceColumns = field(default_factory=SourceColumns)
    settings_sheet: str = "5.設定上書き"
    results_sheet: str = "6.レポート設定結果"
    duplicate_report_sheet: str = "重複チェックレポート"
    cleaned_sheet: str = "4.To・CCなし行削除"
    transfer_stage_sheets: tuple[str, ...] = ("1.出力", "2.空白なし", "3.空白・複数行なし")
    transfer_header_range: str = "B18:L18"
    transfer_data_range: str = "B21:L"
    mapping_sheet: str | None = "マッピング設定"
    mapping_range: str = "A2:C100"
    registration_sheet: str | None = None
    registration_header_row: int = 18
    registration_data_range: str = "B21:L"
    team_name_header_labels: tuple[str, ...] = ("チーム名", "Team Name")
    target_header_rows: int = 2
    master_row_format: str = "{row}"
    notification_email: str | None = None


def _build_section(cls, payload: Any, section: str):
    if payload is None:
        return cls()
    if not isinstance(payload, dict):
        raise ValueError(f"Config section '{section}' must be a JSON object.")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"Unknown key(s) in config section '{section}': {', '.join(unknown)}")
    return cls(**payload)


def config_from_dict(payload: dict[str, Any]) -> RosterConfig:
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object.")
    known = {f.name for f in fields(RosterConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")

    values = dict(payload)
    values["columns"] = _build_section(ColumnContract, payload.get("columns"), "columns")
    values["source_columns"] = _build_section(SourceColumns, payload.get("source_columns"), "source_columns")
    for key in TUPLE_FIELDS:
        if key in values:
            labels = values[key]
            if not isinstance(labels, list) or not all(isinstance(item, str) for item in labels):
                raise ValueError(f"'{key}' must be a list of strings.")
            values[key] = tuple(labels)
    if len(values.get("transfer_stage_sheets", RosterConfig.transfer_stage_sheets)) != 3:
        raise ValueError("'transfer_stage_sheets' must name exactly 3 sheets.")
    for key in ("registration_header_row", "target_header_rows"):
        if key in values and (not isinstance(values[key], int) or values[key] < 1):
            raise ValueError(f"'{key}' must be a positive integer.")
    return replace(RosterConfig(), **values)


def config_to_dict(config: RosterConfig) -> dict[str, Any]:
    payload = asdict(config)
    for key in TUPLE_FIELDS:
        payload[key] = list(getattr(config, key))
    return payload


def load_config(path: Path | None) -> RosterConfig:
    if path is None:
        return RosterConfig()
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    if path.suffix.lower() not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError("Config must be a .json file.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not read config: {exc}") from exc
    return config_from_dict(payload)
