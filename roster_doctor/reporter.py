"""Human-readable text and JSON summaries for each CLI command."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roster_doctor import __version__ as TOOL_VERSION
from roster_doctor.core.reconcile import ReconciliationReport
from roster_doctor.core.registrations import RegistrationBatch
from roster_doctor.core.shared import MasterCollision, MatchResult
from roster_doctor.core.sync import SyncResult
from roster_doctor.core.transform import TransferResult

TOOL_NAME = "roster-doctor"

# Bump a command's version whenever its summary.json layout changes.
SUMMARY_VERSIONS = {
    "compare": "1.0.0",
    "check-duplicates": "1.0.0",
    "check-new": "1.0.0",
    "transfer": "1.0.0",
    "sync": "1.0.0",
}

NOTICE_SUBJECT = "新規登録チームの重複警告 ({count}件)"
NOTICE_INTRO = (
    "以下のチームは既にマスタ設定に存在します。"
    "場所違い（例：神田と浅草）などの可能性がありますので確認してください。"
)
NOTICE_LINE = "- {team_name} (行番号: {row})"
NOTICE_OUTRO = "確認をお願いします。"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def summary_contract(command: str) -> dict[str, str]:
    """Contract name and version stamped into a command's summary.json."""
    if command not in SUMMARY_VERSIONS:
        raise KeyError(f"No summary contract for command '{command}'")
    return {
        "name": "roster_doctor." + command.replace("-", "_"),
        "version": SUMMARY_VERSIONS[command],
    }


def structured_summary(
    command: str,
    *,
    input_path: str | Path,
    output_path: Path | None,
    metrics: dict[str, Any],
    warnings: list[str] | None = None,
    findings: int = 0,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    contract = summary_contract(command)
    warnings = list(warnings or [])
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "metrics": metrics,
        "run_summary": {
            "tool": TOOL_NAME,
            "command": command,
            "status": "findings" if findings else "ok",
            "findings": findings,
            "generated_at": utc_now_iso(),
            "warnings_count": len(warnings),
            "warnings": warnings,
        },
    }
    payload.update(extra or {})
    return payload


def render_compare_text(report: ReconciliationReport, input_path: str, output_path: Path | None) -> str:
    counts = report.counts()
    lines = [
        "roster-doctor compare",
        f"Input: {input_path}",
        f"Duplicates: {counts['duplicates']}",
        f"Invalid addresses: {counts['mismatches']}",
        f"Created: {counts['created']}",
        f"Updated: {counts['updated']}",
        f"Deleted: {counts['deleted']}",
    ]
    if output_path:
        lines.append(f"Report: {output_path}")
    return "\n".join(lines) + "\n"


def render_collisions_text(collisions: list[MasterCollision], rows: list[int], input_path: str) -> str:
    lines = [
        "roster-doctor check-duplicates",
        f"Input: {input_path}",
        f"Already in master: {len(collisions)}",
    ]
    lines.extend(f"- {item.team_name} (row {row})" for item, row in zip(collisions, rows))
    return "\n".join(lines) + "\n"


def render_notice(collisions: list[MasterCollision], rows: list[int]) -> tuple[str, str]:
    """Subject and body of the duplicate warning mail. Sending it is up to the caller."""
    subject = NOTICE_SUBJECT.format(count=len(collisions))
    lines = [NOTICE_INTRO, ""]
    lines.extend(NOTICE_LINE.format(team_name=item.team_name, row=row) for item, row in zip(collisions, rows))
    lines.extend(["", NOTICE_OUTRO])
    return subject, "\n".join(lines)


def render_check_new_text(batch: RegistrationBatch, results: list[MatchResult], input_path: str) -> str:
    lines = [
        "roster-doctor check-new",
        f"Input: {input_path}",
        f"New registrations: {len(batch.records)}",
        f"Duplicate groups: {len(results)}",
    ]
    if batch.last_order_number:
        lines.append(f"Last order number: {batch.last_order_number}")
    if not batch.found_previous:
        lines.append("Previous order number was not found on the sheet; nothing collected.")
    return "\n".join(lines) + "\n"


def render_transfer_text(result: TransferResult, input_path: str, output_path: Path) -> str:
    counts = result.stage_counts()
    return (
        "roster-doctor transfer\n"
        f"Input: {input_path}\n"
        f"Output: {output_path}\n"
        f"Stage 1 (mapped): {counts['transformed']}\n"
        f"Stage 2 (no blank rows): {counts['without_blanks']}\n"
        f"Stage 3 (consolidated): {counts['consolidated']}\n"
        f"Stage 4 (with recipients): {counts['cleaned']}\n"
    )


def render_sync_text(result: SyncResult, output_path: Path, backup_name: str | None) -> str:
    lines = [
        "roster-doctor sync",
        f"Output: {output_path}",
        f"Updated: {result.updated}",
        f"Appended: {result.appended}",
        f"Deleted: {result.deleted}",
    ]
    if backup_name:
        lines.append(f"Backup sheet: {backup_name}")
    return "\n".join(lines) + "\n"
