"""Processed-registration history for incremental duplicate checks.

The history file is a JSON list, newest entry first. Only the first entry
matters for the next run: its order number marks where the previous check
stopped.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class HistoryEntry:
    processed_on: str
    order_number: str
    team_name: str = ""


def read_history(path: Path) -> list[HistoryEntry]:
    if not path.exists():
        return []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not read history file {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError(f"History file {path} must contain a JSON list.")
    entries = []
    for item in payload:
        if not isinstance(item, dict) or "order_number" not in item:
            raise ValueError(f"Malformed history entry in {path}: {item!r}")
        entries.append(
            HistoryEntry(
                processed_on=str(item.get("processed_on", "")),
                order_number=str(item["order_number"]),
                team_name=str(item.get("team_name", "")),
            )
        )
    return entries


def last_order_number(path: Path) -> str:
    entries = read_history(path)
    return entries[0].order_number if entries else ""


def record_processed(path: Path, order_number: str, team_name: str = "", *, now: datetime | None = None) -> HistoryEntry:
    entry = HistoryEntry(
        processed_on=(now or datetime.now()).strftime("%Y/%m/%d %H:%M:%S"),
        order_number=order_number,
        team_name=team_name,
    )
    entries = [entry, *read_history(path)]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([asdict(item) for item in entries], indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return entry
