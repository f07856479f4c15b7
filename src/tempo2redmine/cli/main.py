#!/usr/bin/env python3
"""Command line interface for tempo2redmine."""

import argparse
import asyncio
import logging
import time
from pathlib import Path

from ..config import Config
from ..export.csv_export import export_filename, export_missing_entries_csv
from ..factories.client_factory import ClientFactory
from ..history import History
from ..mapping.project_mappings import ProjectMappingStore
from ..services.reconciliation_service import ReconciliationRun
from ..utils.date_parser import format_period, parse_period
from ..utils.logging import StructuredLogger, setup_console_logging
from .progress import ModernCLI

logger = logging.getLogger(__name__)


def _load_config(args: argparse.Namespace, cli: ModernCLI, validate: bool = True) -> Config | None:
    try:
        config = Config(args.config, require_file=False)
    except (OSError, ValueError) as e:
        cli.show_error(f"Failed to load configuration: {e}")
        return None

    if not validate:
        return config

    is_valid, errors = config.validate()
    if not is_valid:
        StructuredLogger(config.sync["log_dir"]).log_validation_error(errors)
        cli.validate_config(errors)
        return None
    return config


def _reconcile(config: Config, args: argparse.Namespace, cli: ModernCLI) -> ReconciliationRun | None:
    try:
        start_date, end_date = parse_period(args.period)
    except ValueError as e:
        cli.show_error(str(e))
        return None

    period = format_period(start_date, end_date)
    strict = getattr(args, "strict", False) or None
    service = ClientFactory.create_reconciliation_service(
        config, structured_logger=StructuredLogger(config.sync["log_dir"])
    )

    cli.start_run(period, strict=bool(strict or service.strict))
    with cli.progress_spinner("Fetching Tempo worklogs and Redmine time entries..."):
        outcome = asyncio.run(service.reconcile(start_date, end_date, strict=strict))

    if not outcome.success:
        History(config.history_file).record_run("reconcile", False, period, error=outcome.error)
        cli.show_error(outcome.error)
        return None

    run = outcome.value
    cli.show_summary(run.result, period)
    cli.show_missing_table(run.result.missing_in_redmine)
    return run


def cmd_compare(config: Config, args: argparse.Namespace, cli: ModernCLI) -> int:
    run = _reconcile(config, args, cli)
    if run is None:
        return 1

    stats = run.result.stats
    History(config.history_file).record_run(
        "reconcile",
        True,
        format_period(run.result.start_date, run.result.end_date),
        worklog_total=stats.tempo_total,
        ledger_total=stats.redmine_total,
        missing=stats.missing,
        missing_hours=stats.missing_hours,
    )
    return 0


def cmd_fill(config: Config, args: argparse.Namespace, cli: ModernCLI) -> int:
    started = time.time()
    run = _reconcile(config, args, cli)
    if run is None:
        return 1
    if not run.result.missing_in_redmine:
        cli.show_success("Nothing to create")
        return 0

    count = len(run.result.missing_in_redmine)
    if not args.yes and not cli.ask_confirmation(f"Create {count} missing entries in Redmine?"):
        return 0

    report = asyncio.run(run.create_all(observer=cli.on_entry_state_change))
    cli.show_fill_report(report)

    stats = run.result.stats
    History(config.history_file).record_run(
        "fill",
        not report.failed,
        format_period(run.result.start_date, run.result.end_date),
        worklog_total=stats.tempo_total,
        ledger_total=stats.redmine_total,
        missing=stats.missing,
        missing_hours=stats.missing_hours,
        created=len(report.created),
        failed=len(report.failed),
        duration_seconds=time.time() - started,
        details=report.errors,
    )
    return 0 if not report.failed else 2


def cmd_export(config: Config, args: argparse.Namespace, cli: ModernCLI) -> int:
    run = _reconcile(config, args, cli)
    if run is None:
        return 1

    output = Path(args.output or export_filename(run.result.start_date))
    output.write_text(export_missing_entries_csv(run.result.missing_in_redmine), encoding="utf-8")
    cli.show_success(f"Exported {len(run.result.missing_in_redmine)} missing entries to {output}")
    return 0


def cmd_mappings(config: Config, args: argparse.Namespace, cli: ModernCLI) -> int:
    store = ProjectMappingStore(config.mappings_file)

    if args.action == "add":
        try:
            mapping = store.add_mapping(args.url, args.project, args.description or "")
        except ValueError as e:
            cli.show_error(str(e))
            return 1
        cli.show_success(f"Mapped {mapping.jira_url_prefix} to project {mapping.ledger_project_id}")
        return 0

    if args.action == "remove":
        if not store.remove_mapping(args.id):
            cli.show_error(f"Mapping {args.id} not found")
            return 1
        cli.show_success(f"Removed mapping {args.id}")
        return 0

    cli.show_mappings(store.list_mappings())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tempo2redmine",
        description="Reconcile Tempo worklogs with Redmine time entries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Compare the current month
    tempo2redmine compare

    # Compare a month and report hour discrepancies of partial matches
    tempo2redmine compare --period 2024-06 --strict

    # Create everything missing in Redmine without asking
    tempo2redmine fill --period last-month --yes

    # Map a Jira site to Redmine project 12
    tempo2redmine mappings add https://co.atlassian.net 12
        """,
    )
    parser.add_argument("--config", default="config.json", help="Config file (JSON or YAML)")
    parser.add_argument("--log-level", default="WARNING", help="Console log level")

    commands = parser.add_subparsers(dest="command", required=True)

    period_help = "YYYY-MM, YYYY-MM-DD, YYYY-MM-DD..YYYY-MM-DD or last-month (default: current month)"

    compare = commands.add_parser("compare", help="Show worklogs missing in Redmine")
    compare.add_argument("--period", help=period_help)
    compare.add_argument("--strict", action="store_true", help="Report partial matches as discrepancies")

    fill = commands.add_parser("fill", help="Create missing entries in Redmine")
    fill.add_argument("--period", help=period_help)
    fill.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    export = commands.add_parser("export", help="Export missing entries to CSV")
    export.add_argument("--period", help=period_help)
    export.add_argument("--output", "-o", help="Output file (default: missing-entries-YYYY-MM.csv)")

    mappings = commands.add_parser("mappings", help="Manage Jira URL to Redmine project mappings")
    actions = mappings.add_subparsers(dest="action")
    actions.add_parser("list", help="List mappings")
    add = actions.add_parser("add", help="Add a mapping")
    add.add_argument("url", help="Jira URL or URL prefix")
    add.add_argument("project", help="Redmine project ID")
    add.add_argument("--description", help="Free-text note")
    remove = actions.add_parser("remove", help="Remove a mapping")
    remove.add_argument("id", help="Mapping ID")

    serve = commands.add_parser("serve", help="Run the scheduled daemon and web API")
    serve.add_argument("--port", type=int, help="Web API port (default: web.port or 8080)")

    return parser


COMMANDS = {
    "compare": cmd_compare,
    "fill": cmd_fill,
    "export": cmd_export,
    "mappings": cmd_mappings,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cli = ModernCLI()

    if args.command == "serve":
        from ..main import serve

        setup_console_logging("INFO")
        serve(args.config, args.port)
        return 0

    setup_console_logging(args.log_level)
    cli.show_banner()

    config = _load_config(args, cli, validate=args.command != "mappings")
    if config is None:
        return 1
    return COMMANDS[args.command](config, args, cli)


if __name__ == "__main__":
    exit(main())
