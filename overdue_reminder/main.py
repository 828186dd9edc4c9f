"""Overdue Reminder -- Command Line Runner.

Runs the monthly overdue invoice reminder batch end to end:

    1. Load configuration (config.yaml or defaults)
    2. Open the invoice/customer/employee workbook
    3. Fetch overdue invoices, enrich them, group by customer
    4. Send one reminder per customer (SMTP, or the outbox on --dry-run)
    5. Print the run summary

Usage::

    # From the project root:
    python -m overdue_reminder.main

    # With a custom config or workbook:
    python -m overdue_reminder.main --config path/to/custom.yaml
    python -m overdue_reminder.main --workbook path/to/export.xlsx

    # Dry run, writing each reminder as an .eml file for review:
    python -m overdue_reminder.main --dry-run --eml-dir output/eml

    # Pretend today is another date:
    python -m overdue_reminder.main --as-of 2026-10-01 --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path

from .config import get_config
from .errors import BatchAborted
from .job import OverdueReminderJob
from .sources import WorkbookStore
from .transport import OutboxTransport, SMTPTransport

logger = logging.getLogger(__name__)


def _parse_as_of(value: str) -> datetime:
    try:
        return datetime.combine(date.fromisoformat(value), datetime.now().time())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"--as-of expects YYYY-MM-DD, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monthly overdue invoice reminder - one email per customer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m overdue_reminder.main\n"
            "  python -m overdue_reminder.main --workbook data/export.xlsx\n"
            "  python -m overdue_reminder.main --dry-run --eml-dir output/eml\n"
            "  python -m overdue_reminder.main --verbose\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: project root config.yaml)",
    )
    parser.add_argument(
        "--workbook",
        type=str,
        default=None,
        help="Path to the invoice/customer/employee XLSX export (overrides config)",
    )
    parser.add_argument(
        "--as-of",
        type=_parse_as_of,
        default=None,
        help="Run as if today were this date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not send; collect reminders in the outbox instead",
    )
    parser.add_argument(
        "--eml-dir",
        type=str,
        default=None,
        help="With --dry-run, write each reminder as an .eml file here (default: output.eml_dir)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 = run completed, 1 = error or aborted run).
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = get_config(args.config)

        workbook = Path(args.workbook) if args.workbook else config.data_files.resolve(
            config.data_files.workbook
        )
        if not workbook.exists():
            logger.error("Workbook not found: %s", workbook)
            return 1

        if args.dry_run:
            transport = OutboxTransport(
                args.eml_dir or config.output.resolve(config.output.eml_dir)
            )
        else:
            transport = SMTPTransport(config.smtp, fallback_email=config.fallback_sender.email)

        store = WorkbookStore(workbook)
        job = OverdueReminderJob(store, store, transport, config=config, now=args.as_of)
        summary = job.run()

    except BatchAborted as exc:
        logger.error("Run aborted: %s", exc)
        return 1
    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc)
        return 1
    except ValueError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    print()
    print(summary.summary())
    if args.dry_run and isinstance(transport, OutboxTransport) and transport.written:
        print(f"\n{len(transport.written)} .eml files written to {transport.eml_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
