from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roster_doctor import __version__ as TOOL_VERSION
from roster_doctor import loader, reporter, workbook
from roster_doctor.config import RosterConfig, config_to_dict, load_config
from roster_doctor.core import (
    MatchType,
    extract_keyed_dataset,
    find_header_index,
    find_master_collisions,
    master_entries,
    match_registrations,
    parse_mapping_rules,
    reconcile,
    run_transfer,
    select_new_registrations,
    sheet_row,
    sync_recipients,
    transform_headers,
)
from roster_doctor.core.shared import DUPLICATE_REPORT_HEADERS, REPORT_HEADERS
from roster_doctor.errors import MissingColumnError
from roster_doctor.history import last_order_number, record_processed
from roster_doctor.remote import is_remote

REPORT_FORMATS = {"xlsx", "csv"}

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_FINDINGS = 3

DEFAULT_CONFIG_PATH = "roster-doctor.json"
DEFAULT_HISTORY_PATH = "roster-doctor-history.json"

logger = logging.getLogger(__name__)


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class RosterDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, force=True)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("ROSTER_DOCTOR_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def input_stem(source: str) -> str:
    if is_remote(source):
        return "remote"
    return Path(source).stem


def default_output_dir(source: str) -> Path:
    return Path.cwd() / "roster-doctor-output" / f"{input_stem(source)}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, source: str) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(source)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Path | None, default_path: Path, *, in_place: bool = False) -> Path:
    path = explicit or default_path
    if not in_place and path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, MissingColumnError):
        return EXIT_PARSE_FAILED
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def require_input(source: str) -> None:
    if not is_remote(source) and not Path(source).exists():
        raise CliError(f"File not found: {source}", EXIT_COMMAND_ERROR)


def load_run_config(args: argparse.Namespace) -> RosterConfig:
    path = getattr(args, "config", None)
    try:
        return load_config(Path(path) if path else None)
    except FileNotFoundError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def report_path_for(args: argparse.Namespace, out_dir: Path, name: str) -> Path:
    if getattr(args, "output", None):
        path = Path(args.output)
        if path.suffix.lower().lstrip(".") not in REPORT_FORMATS:
            raise CliError("Report output must end in .xlsx or .csv", EXIT_COMMAND_ERROR)
        return path
    return out_dir / f"{name}.{args.format}"


def emit_warnings(warnings: list[str], *, quiet: bool) -> None:
    for warning in warnings:
        emit_human(f"Warning: {warning}", quiet=quiet)


def add_common_arguments(parser: argparse.ArgumentParser, *, report: bool = True) -> None:
    parser.add_argument("--config", help="JSON config path")
    parser.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    if report:
        parser.add_argument("--output", help="Explicit report output path (.xlsx or .csv)")
        parser.add_argument("--format", choices=sorted(REPORT_FORMATS), default="xlsx", help="Report format")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logs")


def build_parser() -> argparse.ArgumentParser:
    parser = RosterDoctorArgumentParser(
        prog="roster-doctor",
        description="Reconcile team mail-recipient rosters and flag duplicate registrations.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compare = subparsers.add_parser("compare", help="Compare the settings sheet against its baseline.")
    compare.add_argument("input", help="Current roster (file path or public URL)")
    compare.add_argument("--sheet", dest="sheet_name", help="Sheet holding the current roster")
    compare.add_argument("--baseline", help="Baseline roster; defaults to the newest backup sheet of the input")
    compare.add_argument("--baseline-sheet", dest="baseline_sheet", help="Sheet of the baseline roster")
    add_common_arguments(compare)

    duplicates = subparsers.add_parser("check-duplicates", help="Flag registrations already present in the master.")
    duplicates.add_argument("input", help="Procurement sheet (file path or public URL)")
    duplicates.add_argument("--master", required=True, help="Workbook or file holding the master settings sheet")
    duplicates.add_argument("--sheet", dest="sheet_name", help="Procurement sheet name")
    duplicates.add_argument("--master-sheet", dest="master_sheet", help="Master sheet name")
    add_common_arguments(duplicates, report=False)

    check_new = subparsers.add_parser("check-new", help="Match registrations since the last run against the master.")
    check_new.add_argument("input", help="Procurement sheet (file path or public URL)")
    check_new.add_argument("--master", required=True, help="Workbook or file holding the master settings sheet")
    check_new.add_argument("--sheet", dest="sheet_name", help="Procurement sheet name")
    check_new.add_argument("--master-sheet", dest="master_sheet", help="Master sheet name")
    check_new.add_argument("--history", default=DEFAULT_HISTORY_PATH, help="Processed-order history JSON")
    check_new.add_argument("--no-record", action="store_true", help="Do not update the history file")
    add_common_arguments(check_new)

    transfer = subparsers.add_parser("transfer", help="Build the cleaned recipient list from the raw sheet.")
    transfer.add_argument("input", help="Raw source sheet (file path or public URL)")
    transfer.add_argument("--mapping", required=True, help="Column mapping rules (source letter, target letter, description)")
    transfer.add_argument("--sheet", dest="sheet_name", help="Source sheet name")
    transfer.add_argument("--mapping-sheet", dest="mapping_sheet", help="Mapping sheet name")
    add_common_arguments(transfer)

    sync = subparsers.add_parser("sync", help="Rewrite TO/CC of the settings sheet from the cleaned list.")
    sync.add_argument("input", help="Workbook (.xlsx/.xlsm) holding the settings sheet")
    sync.add_argument("--source", help="Cleaned recipient list; defaults to the cleaned sheet of the input")
    sync.add_argument("--source-sheet", dest="source_sheet", help="Sheet of the cleaned recipient list")
    sync.add_argument("--output", help="Explicit output workbook path")
    sync.add_argument("--in-place", action="store_true", help="Overwrite the input workbook")
    add_common_arguments(sync, report=False)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def finish(
    args: argparse.Namespace,
    summary: dict[str, Any],
    summary_path: Path,
    text: str,
    warnings: list[str],
) -> None:
    summary = remove_generated_at(summary)
    write_json(summary_path, summary)
    if args.json:
        maybe_emit_json_stdout(summary, True)
        return
    emit_warnings(warnings, quiet=args.quiet)
    emit_human(text.rstrip(), quiet=args.quiet)
    emit_human(f"Summary written: {summary_path}", quiet=args.quiet)


def run_compare(args: argparse.Namespace) -> int:
    try:
        require_input(args.input)
        config = load_run_config(args)
        out_dir = determine_output_dir(args, args.input)
        report_path = safe_output_path(None, report_path_for(args, out_dir, "report"))

        current = loader.load_rows(args.input, sheet_name=args.sheet_name, default_sheet=config.settings_sheet)
        warnings = list(current["warnings"])

        if args.baseline:
            require_input(args.baseline)
            baseline = loader.load_rows(
                args.baseline,
                sheet_name=args.baseline_sheet,
                default_sheet=current["sheet_name"] or config.settings_sheet,
            )
            baseline_rows = baseline["rows"]
            baseline_label = baseline["source"]
            warnings.extend(baseline["warnings"])
        else:
            backup = loader.latest_backup_sheet(current["sheet_names"] or [], current["sheet_name"] or "")
            if backup:
                baseline_rows = loader.load_rows(args.input, sheet_name=backup)["rows"]
                baseline_label = backup
            else:
                baseline_rows = None
                baseline_label = None
                warnings.append("No baseline found; every team is reported as Created.")

        report = reconcile(current["rows"], baseline_rows, config.columns)
        workbook.write_report(
            report_path,
            REPORT_HEADERS,
            report.rows(),
            sheet_title=config.results_sheet,
            kind_column=3,
        )
        counts = report.counts()
        summary = reporter.structured_summary(
            "compare",
            input_path=current["source"],
            output_path=report_path,
            metrics={**counts, "rows_reported": len(report.rows())},
            warnings=warnings,
            findings=len(report.rows()),
            extra={"baseline": baseline_label, "sheet_name": current["sheet_name"]},
        )
        finish(
            args,
            summary,
            out_dir / "summary.json",
            reporter.render_compare_text(report, current["source"], report_path),
            warnings,
        )
        return EXIT_FINDINGS if report.has_findings else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def load_master(args: argparse.Namespace, config: RosterConfig) -> dict:
    require_input(args.master)
    return loader.load_rows(args.master, sheet_name=args.master_sheet, default_sheet=config.settings_sheet)


def run_check_duplicates(args: argparse.Namespace) -> int:
    try:
        require_input(args.input)
        config = load_run_config(args)
        out_dir = determine_output_dir(args, args.input)
        notice_path = safe_output_path(None, out_dir / "notice.txt")

        procurement = loader.load_rows(args.input, sheet_name=args.sheet_name, default_sheet=config.registration_sheet)
        master = load_master(args, config)
        warnings = [*procurement["warnings"], *master["warnings"]]

        rows = procurement["rows"]
        header_row = rows[config.registration_header_row - 1] if len(rows) >= config.registration_header_row else []
        header_index = find_header_index(header_row, [config.columns.team_name, *config.team_name_header_labels])
        if header_index == -1:
            raise MissingColumnError([config.columns.team_name], source=procurement["source"])

        range_start_col = loader.range_start_col(config.registration_data_range)
        start_row = loader.range_start_row(config.registration_data_range)
        candidates = loader.slice_range(rows, config.registration_data_range)
        logger.debug("Team name column %d, data range starts at column %d", header_index + 1, range_start_col)

        master_dataset = extract_keyed_dataset(master["rows"], config.columns, source=master["source"])
        collisions = find_master_collisions(
            candidates,
            master_dataset,
            header_index - (range_start_col - 1),
            header_labels=config.team_name_header_labels,
        )
        sheet_rows = [sheet_row(start_row, item.position) for item in collisions]

        if collisions:
            subject, body = reporter.render_notice(collisions, sheet_rows)
            recipient = config.notification_email
            if not recipient:
                warnings.append("No notification_email configured; notice written without a recipient.")
            header = f"To: {recipient}\n" if recipient else ""
            write_text(notice_path, f"{header}Subject: {subject}\n\n{body}\n")

        summary = reporter.structured_summary(
            "check-duplicates",
            input_path=procurement["source"],
            output_path=notice_path if collisions else None,
            metrics={"candidates": len(candidates), "collisions": len(collisions)},
            warnings=warnings,
            findings=len(collisions),
            extra={
                "collisions": [
                    {"team_name": item.team_name, "row": row} for item, row in zip(collisions, sheet_rows)
                ],
            },
        )
        finish(
            args,
            summary,
            out_dir / "summary.json",
            reporter.render_collisions_text(collisions, sheet_rows, procurement["source"]),
            warnings,
        )
        return EXIT_FINDINGS if collisions else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_check_new(args: argparse.Namespace) -> int:
    try:
        require_input(args.input)
        config = load_run_config(args)
        out_dir = determine_output_dir(args, args.input)
        report_path = safe_output_path(None, report_path_for(args, out_dir, "duplicates"))
        history_path = Path(args.history)

        procurement = loader.load_rows(args.input, sheet_name=args.sheet_name, default_sheet=config.registration_sheet)
        master = load_master(args, config)
        warnings = [*procurement["warnings"], *master["warnings"]]

        rows = procurement["rows"]
        header_row = rows[config.registration_header_row - 1] if len(rows) >= config.registration_header_row else []
        start_row = loader.range_start_row(config.registration_data_range)
        previous = last_order_number(history_path)
        batch = select_new_registrations(
            header_row,
            rows[start_row - 1:],
            start_row,
            previous,
            config.columns,
            team_name_labels=config.team_name_header_labels,
            source=procurement["source"],
        )
        if not batch.found_previous:
            warnings.append(f"Last processed order number {previous!r} was not found; nothing collected.")

        results = match_registrations(batch.records, master_entries(master["rows"], config.columns))
        if results:
            workbook.write_report(
                report_path,
                DUPLICATE_REPORT_HEADERS,
                [result.to_report_row(config.master_row_format) for result in results],
                sheet_title=config.duplicate_report_sheet,
                header_color=workbook.HEADER_ORANGE,
                kind_column=0,
            )

        recorded = False
        if batch.records and batch.last_order_number and batch.last_team_name and not args.no_record:
            record_processed(history_path, batch.last_order_number, batch.last_team_name)
            recorded = True

        summary = reporter.structured_summary(
            "check-new",
            input_path=procurement["source"],
            output_path=report_path if results else None,
            metrics={
                "new_registrations": len(batch.records),
                "duplicate_groups": len(results),
                "exact": sum(1 for result in results if result.match_type is MatchType.EXACT),
                "partial": sum(1 for result in results if result.match_type is MatchType.PARTIAL),
            },
            warnings=warnings,
            findings=len(results),
            extra={
                "previous_order_number": previous,
                "last_order_number": batch.last_order_number,
                "history_updated": recorded,
            },
        )
        finish(
            args,
            summary,
            out_dir / "summary.json",
            reporter.render_check_new_text(batch, results, procurement["source"]),
            warnings,
        )
        return EXIT_FINDINGS if results else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_transfer_command(args: argparse.Namespace) -> int:
    try:
        require_input(args.input)
        require_input(args.mapping)
        config = load_run_config(args)
        out_dir = determine_output_dir(args, args.input)
        output_path = safe_output_path(None, report_path_for(args, out_dir, "transfer"))

        source = loader.load_rows(args.input, sheet_name=args.sheet_name, default_sheet=config.registration_sheet)
        mapping = loader.load_rows(
            args.mapping,
            sheet_name=args.mapping_sheet,
            cell_range=config.mapping_range,
            default_sheet=config.mapping_sheet,
        )
        warnings = [*source["warnings"], *mapping["warnings"]]

        rules = parse_mapping_rules(mapping["rows"])
        if not rules:
            raise CliError("No valid column mapping rules found.", EXIT_PARSE_FAILED)

        result = run_transfer(loader.slice_range(source["rows"], config.transfer_data_range), rules)
        headers = transform_headers(loader.slice_range(source["rows"], config.transfer_header_range), rules)

        if output_path.suffix.lower() == ".csv":
            header = headers[0] if headers else []
            workbook.write_csv(output_path, header, result.cleaned)
        else:
            stage_names = [*config.transfer_stage_sheets, config.cleaned_sheet]
            stage_rows = [result.transformed, result.without_blanks, result.consolidated, result.cleaned]
            workbook.write_stage_workbook(
                output_path,
                [(name, headers, rows) for name, rows in zip(stage_names, stage_rows)],
            )

        summary = reporter.structured_summary(
            "transfer",
            input_path=source["source"],
            output_path=output_path,
            metrics={**result.stage_counts(), "mapping_rules": len(rules)},
            warnings=warnings,
        )
        finish(
            args,
            summary,
            out_dir / "summary.json",
            reporter.render_transfer_text(result, source["source"], output_path),
            warnings,
        )
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_sync(args: argparse.Namespace) -> int:
    try:
        require_input(args.input)
        input_path = Path(args.input)
        if input_path.suffix.lower() not in loader.MODERN_WORKBOOK_FORMATS:
            raise CliError("sync rewrites a workbook in place; input must be .xlsx or .xlsm.", EXIT_COMMAND_ERROR)
        if args.in_place and args.output:
            raise CliError("Use either --output or --in-place, not both.", EXIT_COMMAND_ERROR)

        config = load_run_config(args)
        out_dir = determine_output_dir(args, args.input)
        if args.in_place:
            output_path = input_path
        else:
            default_path = out_dir / f"{input_path.stem}-synced{input_path.suffix}"
            output_path = safe_output_path(Path(args.output) if args.output else None, default_path)

        source_ref = args.source or args.input
        require_input(source_ref)
        source = loader.load_rows(
            source_ref,
            sheet_name=args.source_sheet or (None if args.source else config.cleaned_sheet),
            default_sheet=config.cleaned_sheet,
        )
        target = loader.load_rows(input_path, sheet_name=config.settings_sheet)
        warnings = [*source["warnings"], *target["warnings"]]

        result = sync_recipients(
            source["rows"],
            target["rows"],
            config.source_columns,
            config.columns,
            config.target_header_rows,
        )
        backup_name = workbook.rewrite_sheet_with_backup(
            input_path,
            output_path,
            config.settings_sheet,
            result.header_rows,
            result.rows,
        )

        summary = reporter.structured_summary(
            "sync",
            input_path=input_path,
            output_path=output_path,
            metrics=result.stats,
            warnings=warnings,
            extra={"backup_sheet": backup_name, "source": source["source"]},
        )
        finish(
            args,
            summary,
            out_dir / "summary.json",
            reporter.render_sync_text(result, output_path, backup_name),
            warnings,
        )
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json_dumps(config_to_dict(RosterConfig())) + "\n")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "compare":
            return run_compare(args)
        if args.command == "check-duplicates":
            return run_check_duplicates(args)
        if args.command == "check-new":
            return run_check_new(args)
        if args.command == "transfer":
            return run_transfer_command(args)
        if args.command == "sync":
            return run_sync(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
