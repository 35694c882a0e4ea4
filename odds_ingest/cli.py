"""Command line entry point for running and maintaining odds ingestion.

Examples:
    odds-ingest fetch --league ALL
    odds-ingest fetch --league MLB,NBA --start 2025-08-15 --end 2025-08-16
    odds-ingest fetch --league MLB --test --verbose
    odds-ingest summary --league MLB
    odds-ingest show EVENT_ID --opening
    odds-ingest cleanup --days 30
"""

import argparse
import logging
import sys
from typing import Optional

import pandas as pd

from . import db
from .config import ConfigurationError, LEAGUES, RETENTION_DAYS, logger
from .ingest import run_pass


def _parse_leagues(value: str) -> list[str]:
    if value.strip().upper() == "ALL":
        return list(LEAGUES)
    return [part.strip().upper() for part in value.split(",") if part.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="odds-ingest",
        description="Fetch, consolidate and store sports odds.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Run one ingestion pass")
    fetch.add_argument("-l", "--league", default="ALL", help="ALL or comma-separated leagues (e.g. MLB,NBA)")
    fetch.add_argument("-s", "--start", default=None, help="Start date YYYY-MM-DD (default: today)")
    fetch.add_argument("-e", "--end", default=None, help="End date YYYY-MM-DD (default: today + 7 days)")
    fetch.add_argument("-t", "--test", action="store_true", help="Dry run: fetch and consolidate, skip writes")
    fetch.add_argument("--no-alt-lines", action="store_true", help="Do not request alternate lines")
    fetch.add_argument("--chunk-size", type=int, default=None, help="Rows per sink write")
    fetch.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Enable debug logging")

    subparsers.add_parser("init-db", help="Create the database schema")

    summary = subparsers.add_parser("summary", help="Show per-league row counts")
    summary.add_argument("-l", "--league", default=None, help="Restrict to one league")

    show = subparsers.add_parser("show", help="Print stored odds rows for one event")
    show.add_argument("event_id", help="Provider event ID")
    show.add_argument("--opening", action="store_true", help="Read the opening sink instead of current")

    cleanup = subparsers.add_parser("cleanup", help="Delete games older than N days and prune games without odds")
    cleanup.add_argument("--days", type=int, default=RETENTION_DAYS, help="Age threshold in days")

    return parser


def _run_fetch(args) -> int:
    kwargs = {
        "starts_after": args.start,
        "starts_before": args.end,
        "include_alt_lines": not args.no_alt_lines,
        "dry_run": args.test,
    }
    if args.chunk_size:
        kwargs["chunk_size"] = args.chunk_size

    try:
        result = run_pass(_parse_leagues(args.league), **kwargs)
    except (ConfigurationError, ValueError) as e:
        logger.error(str(e))
        return 1

    for league in result["leagues"]:
        status = "OK" if league["success"] else f"FAILED ({league['error']})"
        print(
            f"{league['league']:<24} {status:<10} events={league['events']} written={league['written']} "
            f"started={league['started']} no_odds={league['no_odds']} rows={league['rows']}"
        )
    totals = result["totals"]
    print(
        f"Totals: current {totals['current']['inserted']} inserted / {totals['current']['updated']} updated / "
        f"{totals['current']['skipped']} skipped; opening {totals['opening']['inserted']} inserted / "
        f"{totals['opening']['skipped']} skipped"
    )
    return 0 if result["success"] else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if args.command == "fetch":
        return _run_fetch(args)

    if args.command == "init-db":
        db.initialize_db()
        print("Database ready")
        return 0

    if args.command == "summary":
        db.initialize_db()
        counts = db.get_sink_counts(args.league)
        if counts.empty:
            print("No games stored")
        else:
            print(counts.to_string(index=False))
        return 0

    if args.command == "show":
        db.initialize_db()
        sink = db.SINK_OPENING if args.opening else db.SINK_CURRENT
        rows = db.get_odds_rows(args.event_id, sink)
        if not rows:
            print(f"No {sink} odds stored for {args.event_id}")
            return 1
        columns = ["oddid", "line", "bettypeid", "sideid", "bookodds", "fetched_at"]
        print(pd.DataFrame(rows, columns=columns).to_string(index=False))
        return 0

    if args.command == "cleanup":
        db.initialize_db()
        deleted = db.cleanup_old_data(args.days)
        pruned = db.prune_games_without_odds()
        print(f"Deleted {deleted} old games, pruned {pruned} games without odds")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
