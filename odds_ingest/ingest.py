"""Fetch pass orchestration: fetch, transform, gate, consolidate, write.

Each league pass uses a single fetched_at for every row it writes. Leagues
share no mutable state and run concurrently; within a pass events are
processed one after another and failures stay with the event or chunk that
caused them.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Optional

from . import db
from .config import (
    CHUNK_SIZE,
    MAX_LEAGUE_WORKERS,
    LEAGUES,
    logger,
    validate_config,
)
from .consolidator import consolidate_odds, consolidation_stats
from .lifecycle import ELIGIBLE, NO_ODDS, STARTED, evaluate_event, utc_now
from .odds_api import OddsAPIError, build_window, iter_events, resolve_league
from .transformer import transform_event
from .validation import validate_event_data
from .writer import write_dual

COUNT_KEYS = ("inserted", "updated", "skipped", "failed_rows")


def process_event(
    raw: dict,
    league: str,
    fetched_at: datetime,
    now: Optional[datetime] = None,
    chunk_size: int = CHUNK_SIZE,
    dry_run: bool = False,
) -> dict:
    """Run one raw event through the gate, the consolidator and both sinks.

    Args:
        raw: Raw event from the provider
        league: League key the event was fetched for
        fetched_at: Fetch timestamp shared by the whole pass
        now: Clock reading used by the lifecycle gate (default: fetched_at)
        chunk_size: Maximum rows per sink write
        dry_run: Consolidate but skip every database write

    Returns:
        Dict with event_id, outcome ('written', 'started', 'no_odds',
        'invalid' or 'dry_run'), rows and, when written, the per-sink reports
    """
    if now is None:
        now = fetched_at

    if not validate_event_data(raw):
        return {"event_id": None, "outcome": "invalid", "rows": 0}

    game, raw_odds = transform_event(raw, league)
    event_id = game["id"]
    matchup = f"{game['away_team_name']} @ {game['home_team_name']}"

    decision = evaluate_event(game, raw_odds, now)

    if decision == STARTED:
        logger.info(f"Skipping started game: {matchup} ({event_id})")
        return {"event_id": event_id, "outcome": "started", "rows": 0}

    rows = consolidate_odds(event_id, raw_odds, fetched_at) if decision == ELIGIBLE else []

    if decision == NO_ODDS or not rows:
        logger.info(f"Dropping {matchup} ({event_id}): no odds")
        if not dry_run and db.game_exists(event_id) and db.delete_game_if_no_odds(event_id, now):
            logger.info(f"Deleted dangling game {event_id} with no odds")
        return {"event_id": event_id, "outcome": "no_odds", "rows": 0}

    stats = consolidation_stats(raw_odds, rows)
    logger.debug(
        f"{event_id}: {stats['raw_entries']} raw odds -> {stats['consolidated_rows']} rows "
        f"({stats['reduction_pct']}% reduction)"
    )

    if dry_run:
        return {"event_id": event_id, "outcome": "dry_run", "rows": len(rows)}

    db.upsert_game(game, now)
    reports = write_dual(rows, chunk_size)

    return {
        "event_id": event_id,
        "outcome": "written",
        "rows": len(rows),
        "current": reports[db.SINK_CURRENT],
        "opening": reports[db.SINK_OPENING],
    }


def _league_totals(league_key: str) -> dict:
    counts = db.get_sink_counts(league_key)
    if counts.empty:
        return {"games": 0, "current_odds": 0, "opening_odds": 0}
    row = counts.iloc[0]
    return {
        "games": int(row["games"]),
        "current_odds": int(row["current_odds"]),
        "opening_odds": int(row["opening_odds"]),
    }


def _new_league_summary(league_key: str) -> dict:
    return {
        "league": league_key,
        "success": True,
        "error": None,
        "events": 0,
        "written": 0,
        "started": 0,
        "no_odds": 0,
        "invalid": 0,
        "failed": 0,
        "rows": 0,
        "current": {key: 0 for key in COUNT_KEYS},
        "opening": {key: 0 for key in COUNT_KEYS},
        "failed_chunks": [],
        "before": None,
        "after": None,
    }


def run_league_pass(
    league: str,
    starts_after: Optional[str] = None,
    starts_before: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
    include_alt_lines: bool = True,
    chunk_size: int = CHUNK_SIZE,
    dry_run: bool = False,
) -> dict:
    """Run one fetch pass for one league.

    Process Flow:
        1. Read the clock once; that reading is the fetched_at of every row
        2. Record before-totals for the league
        3. Page through in-window events from the provider
        4. Gate, consolidate and dual-write each event
        5. Record after-totals

    A page failure stops the league with the error recorded, but events
    already processed stay written. A failing event is logged and counted
    without affecting the rest.

    Args:
        league: League key (e.g., 'MLB')
        starts_after: ISO start date (default: today per clock)
        starts_before: ISO end date (default: today + lookahead)
        clock: Callable returning the current aware datetime
        include_alt_lines: Ask the provider for alternate lines
        chunk_size: Maximum rows per sink write
        dry_run: Fetch and consolidate without writing

    Returns:
        League summary dict (counts per outcome, per-sink write totals,
        failed chunks, before/after totals, success flag and error)
    """
    league_key, _ = resolve_league(league)
    fetched_at = clock()
    default_start, default_end = build_window(fetched_at.date())
    starts_after = starts_after or default_start
    starts_before = starts_before or default_end

    summary = _new_league_summary(league_key)
    logger.info(f"Fetching {league_key} events {starts_after} to {starts_before}")

    if not dry_run:
        db.initialize_db()
        summary["before"] = _league_totals(league_key)

    try:
        for raw in iter_events(league_key, starts_after, starts_before, include_alt_lines=include_alt_lines):
            summary["events"] += 1
            try:
                result = process_event(raw, league_key, fetched_at, clock(), chunk_size, dry_run)
            except Exception as e:
                event_id = raw.get("eventID") if isinstance(raw, dict) else None
                logger.error(f"Error processing event {event_id} in {league_key}: {e}", exc_info=True)
                summary["failed"] += 1
                continue

            outcome = result["outcome"]
            if outcome in ("written", "dry_run"):
                summary["written"] += 1
                summary["rows"] += result["rows"]
            else:
                summary[outcome] += 1

            for sink in (db.SINK_CURRENT, db.SINK_OPENING):
                report = result.get(sink)
                if not report:
                    continue
                for key in COUNT_KEYS:
                    summary[sink][key] += report[key]
                for failure in report["failed_chunks"]:
                    summary["failed_chunks"].append(dict(failure, sink=sink, event_id=result["event_id"]))
    except OddsAPIError as e:
        logger.error(f"API error for {league_key}: {e}", exc_info=True)
        summary["success"] = False
        summary["error"] = str(e)

    if not dry_run:
        summary["after"] = _league_totals(league_key)

    logger.info(
        f"{league_key} completed: {summary['written']} games written, "
        f"{summary['started']} skipped (started), {summary['no_odds']} dropped (no odds), "
        f"{summary['failed']} failed; current {summary['current']['inserted']} inserted / "
        f"{summary['current']['updated']} updated, opening {summary['opening']['inserted']} inserted"
    )
    return summary


def run_pass(
    leagues: Optional[list[str]] = None,
    starts_after: Optional[str] = None,
    starts_before: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
    include_alt_lines: bool = True,
    chunk_size: int = CHUNK_SIZE,
    dry_run: bool = False,
    max_workers: int = MAX_LEAGUE_WORKERS,
) -> dict:
    """Run a fetch pass for several leagues concurrently.

    Main entry point for scheduled ingestion.

    Args:
        leagues: League keys (default: every league in config.LEAGUES)
        starts_after: ISO start date for every league
        starts_before: ISO end date for every league
        clock: Callable returning the current aware datetime
        include_alt_lines: Ask the provider for alternate lines
        chunk_size: Maximum rows per sink write
        dry_run: Fetch and consolidate without writing
        max_workers: Leagues processed in parallel

    Returns:
        Dict with keys: leagues (list of league summaries), totals (summed
        counts), failed_leagues, success (True when at least one league
        completed without a transport error)

    Raises:
        ConfigurationError: If the API key is missing
        ValueError: If a league is not supported

    Examples:
        >>> result = run_pass(["MLB", "NFL"])
        >>> print(result["totals"]["current"]["inserted"])
    """
    validate_config()

    league_keys = [resolve_league(name)[0] for name in (leagues or list(LEAGUES))]
    if not dry_run:
        db.initialize_db()

    summaries = []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(league_keys)))) as pool:
        futures = {
            pool.submit(
                run_league_pass,
                league_key,
                starts_after,
                starts_before,
                clock,
                include_alt_lines,
                chunk_size,
                dry_run,
            ): league_key
            for league_key in league_keys
        }
        for future in as_completed(futures):
            league_key = futures[future]
            try:
                summaries.append(future.result())
            except Exception as e:
                logger.error(f"League pass for {league_key} failed: {e}", exc_info=True)
                failed = _new_league_summary(league_key)
                failed["success"] = False
                failed["error"] = str(e)
                summaries.append(failed)

    summaries.sort(key=lambda s: league_keys.index(s["league"]))

    totals = {
        "events": sum(s["events"] for s in summaries),
        "written": sum(s["written"] for s in summaries),
        "started": sum(s["started"] for s in summaries),
        "no_odds": sum(s["no_odds"] for s in summaries),
        "failed": sum(s["failed"] for s in summaries),
        "rows": sum(s["rows"] for s in summaries),
        "current": {key: sum(s["current"][key] for s in summaries) for key in COUNT_KEYS},
        "opening": {key: sum(s["opening"][key] for s in summaries) for key in COUNT_KEYS},
    }
    failed_leagues = [s["league"] for s in summaries if not s["success"]]

    logger.info(
        f"Pass complete: {len(summaries) - len(failed_leagues)}/{len(summaries)} leagues succeeded, "
        f"{totals['written']} games written, {totals['started']} skipped (started)"
    )

    return {
        "leagues": summaries,
        "totals": totals,
        "failed_leagues": failed_leagues,
        "success": not summaries or len(failed_leagues) < len(summaries),
    }
