"""
Command line interface for history cleanup.

Usage:
    python -m history_cleanup --status
    python -m history_cleanup --run --dry-run
    python -m history_cleanup --run --immediate
    python -m history_cleanup --report
    python -m history_cleanup --init-db --db-path /path/to/history.duckdb
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from datetime import datetime

from loguru import logger

from history_cleanup import __version__
from history_cleanup.cleanup.job import HistoryCleanupJob
from history_cleanup.data.history import HistoryStore
from history_cleanup.data.schema import create_tables
from history_cleanup.utils.clock import FrozenClock, system_clock
from history_cleanup.utils.config import get_config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="History Cleanup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Show batch window status:
    python -m history_cleanup --status

  Preview the next cleanup batch:
    python -m history_cleanup --run --dry-run --immediate

  Run a scheduled cleanup cycle:
    python -m history_cleanup --run

  Show cleanable historic batches per operation type:
    python -m history_cleanup --report
""",
    )

    # Action flags
    parser.add_argument("--status", action="store_true", help="Show batch window status")
    parser.add_argument("--run", action="store_true", help="Run one cleanup cycle")
    parser.add_argument(
        "--report",
        action="store_true",
        help="Show finished and cleanable historic batches per operation type",
    )
    parser.add_argument("--init-db", action="store_true", help="Create the history schema")

    # Options
    parser.add_argument("--dry-run", action="store_true", help="Select but do not delete")
    parser.add_argument(
        "--immediate",
        action="store_true",
        help="Run regardless of the batch window",
    )
    parser.add_argument("--db-path", type=str, help="History database path")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        metavar="TIMESTAMP",
        help="Evaluate as of this ISO timestamp instead of the current time",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress output except errors",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    if args.quiet:
        logger.remove()
        logger.add(sys.stderr, level="ERROR")

    clock = FrozenClock(args.now) if args.now else system_clock

    try:
        config = get_config()
        if args.db_path:
            config = replace(config, db_path=args.db_path)

        if args.status:
            window = config.batch_window(clock=clock)
            now = clock()
            print(f"Now: {now.isoformat()}")
            print(f"Batch window: {window}")
            if window.is_configured():
                print(f"Within window: {window.is_within(now)}")
                print(f"Next run: {window.next_run_at_or_after(now).isoformat()}")
            print(f"Batch size: {config.batch_size}")
            return 0

        elif args.init_db:
            create_tables(config.db_path)
            print("History schema created")
            return 0

        elif args.run:
            store = HistoryStore(config.db_path)
            job = HistoryCleanupJob(config, store, clock=clock, dry_run=args.dry_run)
            result = job.execute(immediate=args.immediate)
            if not result.within_window:
                print(f"Outside batch window, next run at {result.next_run.isoformat()}")
                return 0
            verb = "Would delete" if result.dry_run else "Deleted"
            print(f"{verb} {result.total_deleted} records")
            for kind, count in result.deleted.items():
                print(f"  {kind}: {count}")
            if result.next_run:
                print(f"Next run: {result.next_run.isoformat()}")
            return 0

        elif args.report:
            store = HistoryStore(config.db_path)
            report = store.get_cleanable_batch_report(config.batch_operation_ttls(), clock())
            if report.empty:
                print("No finished historic batches")
            else:
                print(report.to_string(index=False))
            return 0

        else:
            parser.print_help()
            return 0

    except Exception as e:
        logger.error(f"History cleanup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
