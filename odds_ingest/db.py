"""Database connection and query management for the odds ingestion engine.

Two tables hold the same odds line shape with opposite conflict policies:
``odds`` keeps the newest snapshot per (eventid, oddid, line) and
``open_odds`` keeps the oldest. Both policies are enforced by a single
conditional ``INSERT ... ON CONFLICT DO UPDATE ... WHERE`` statement per
row, so concurrent passes converge no matter which write lands first.
"""

import os
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd

from .config import DATABASE_PATH, DB_TIMEOUT, logger

SINK_CURRENT = "current"
SINK_OPENING = "opening"

# sink -> (table, comparison an incoming snapshot must win to replace the stored one)
SINK_POLICIES = {
    SINK_CURRENT: ("odds", ">"),
    SINK_OPENING: ("open_odds", "<"),
}

ODDS_COLUMNS = (
    "eventid",
    "oddid",
    "line",
    "line_key",
    "marketname",
    "bettypeid",
    "sideid",
    "bookodds",
    "sportsbooks",
    "sportsbook",
    "fetched_at",
    "created_at",
    "updated_at",
)

# Columns replaced when an incoming snapshot wins; the current sink keeps created_at
_UPDATABLE_COLUMNS = (
    "line",
    "marketname",
    "bettypeid",
    "sideid",
    "bookodds",
    "sportsbooks",
    "sportsbook",
    "fetched_at",
    "updated_at",
)


def to_db_timestamp(value) -> Optional[str]:
    """Render a timestamp as fixed-width UTC ISO text.

    Every stored timestamp uses this format so that SQLite's text
    comparison orders them chronologically. Naive datetimes are taken as UTC.

    Examples:
        >>> to_db_timestamp(datetime(2025, 8, 14, 18, 0, tzinfo=timezone.utc))
        '2025-08-14T18:00:00.000000Z'
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _sink_table(sink: str) -> tuple[str, str]:
    if sink not in SINK_POLICIES:
        raise ValueError(f"Unknown sink: {sink}. Expected one of {', '.join(SINK_POLICIES)}")
    return SINK_POLICIES[sink]


def get_connection() -> sqlite3.Connection:
    """Create and return a database connection with row factory enabled.

    Foreign keys are switched on so deleting a game cascades to its odds.

    Returns:
        SQLite connection object with row_factory configured
    """
    directory = os.path.dirname(DATABASE_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(DATABASE_PATH, timeout=DB_TIMEOUT)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_db() -> None:
    """Initialize the database schema with all required tables and indexes.

    Creates the following tables if they don't exist:
    - games: One row per provider event
    - odds: Current odds, newest snapshot per (eventid, oddid, line_key)
    - open_odds: Opening odds, oldest snapshot per (eventid, oddid, line_key)

    line_key is the line text, or '' for markets without a line, so that a
    moneyline still has exactly one row per sink. This function is
    idempotent and safe to call multiple times.

    Examples:
        >>> initialize_db()  # Safe to call on first run
        >>> initialize_db()  # Safe to call again, no-op if tables exist
    """
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS games (
            id TEXT PRIMARY KEY,
            sport TEXT NOT NULL,
            league TEXT NOT NULL,
            home_team TEXT NOT NULL,
            away_team TEXT NOT NULL,
            home_team_name TEXT NOT NULL,
            away_team_name TEXT NOT NULL,
            game_time TEXT,
            status TEXT NOT NULL DEFAULT 'scheduled',
            home_score INTEGER,
            away_score INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    for table in ("odds", "open_odds"):
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                eventid TEXT NOT NULL,
                oddid TEXT NOT NULL,
                line TEXT,
                line_key TEXT NOT NULL DEFAULT '',
                marketname TEXT NOT NULL,
                bettypeid TEXT,
                sideid TEXT,
                bookodds INTEGER,
                sportsbooks TEXT NOT NULL DEFAULT '{{}}',
                sportsbook TEXT NOT NULL,
                fetched_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (eventid, oddid, line_key),
                FOREIGN KEY (eventid) REFERENCES games(id) ON DELETE CASCADE
            )
        """)
        cursor.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_event
            ON {table}(eventid)
        """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_games_league_time
        ON games(league, game_time)
    """)

    conn.commit()
    conn.close()


def upsert_game(game: dict, now: Optional[datetime] = None) -> None:
    """Insert a game or refresh its mutable fields.

    Re-fetching the same event updates status, score, names and start time
    and never creates a second row. created_at is preserved.

    Args:
        game: Canonical game record from transform_event
        now: Timestamp for created_at/updated_at (default: current time)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    stamp = to_db_timestamp(now)

    params = dict(game)
    params["game_time"] = to_db_timestamp(game.get("game_time"))
    params["created_at"] = stamp
    params["updated_at"] = stamp

    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO games
            (id, sport, league, home_team, away_team, home_team_name, away_team_name,
             game_time, status, home_score, away_score, created_at, updated_at)
            VALUES (:id, :sport, :league, :home_team, :away_team, :home_team_name, :away_team_name,
                    :game_time, :status, :home_score, :away_score, :created_at, :updated_at)
            ON CONFLICT(id) DO UPDATE SET
                sport = excluded.sport,
                league = excluded.league,
                home_team = excluded.home_team,
                away_team = excluded.away_team,
                home_team_name = excluded.home_team_name,
                away_team_name = excluded.away_team_name,
                game_time = excluded.game_time,
                status = excluded.status,
                home_score = excluded.home_score,
                away_score = excluded.away_score,
                updated_at = excluded.updated_at
            """,
            params,
        )
        conn.commit()
    finally:
        conn.close()


def _conditional_upsert_sql(sink: str) -> str:
    table, comparison = _sink_table(sink)
    columns = ", ".join(ODDS_COLUMNS)
    placeholders = ", ".join(f":{c}" for c in ODDS_COLUMNS)
    updatable = _UPDATABLE_COLUMNS
    if sink == SINK_OPENING:
        # An older snapshot replaces the row as if it had been inserted first
        updatable = updatable + ("created_at",)
    updates = ", ".join(f"{c} = excluded.{c}" for c in updatable)
    return (
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) "
        f"ON CONFLICT(eventid, oddid, line_key) DO UPDATE SET {updates} "
        f"WHERE excluded.fetched_at {comparison} {table}.fetched_at"
    )


def _prepare_row(row: dict) -> dict:
    prepared = {column: row.get(column) for column in ODDS_COLUMNS}
    if prepared["line_key"] is None:
        prepared["line_key"] = prepared["line"] if prepared["line"] is not None else ""
    if prepared["sportsbooks"] is None:
        prepared["sportsbooks"] = "{}"
    for column in ("fetched_at", "created_at", "updated_at"):
        prepared[column] = to_db_timestamp(prepared[column] or row.get("fetched_at"))
    return prepared


def upsert_odds_chunk(rows: list[dict], sink: str) -> dict:
    """Write one chunk of consolidated rows to a sink with its conflict policy.

    current: an existing row is replaced only by a strictly newer fetched_at.
    opening: an existing row is replaced only by a strictly older fetched_at,
    so the first price ever observed stays put; re-sending the same or a
    newer snapshot is a no-op.

    The whole chunk runs in one BEGIN IMMEDIATE transaction and each row is a
    single atomic conditional upsert, never a read-then-write.

    Args:
        rows: Consolidated odds rows (see consolidate_odds)
        sink: 'current' or 'opening'

    Returns:
        Dict with inserted, updated and skipped counts for the chunk

    Raises:
        ValueError: If sink is unknown
        sqlite3.Error: On any database failure; the chunk is rolled back
    """
    table, _ = _sink_table(sink)
    sql = _conditional_upsert_sql(sink)
    counts = {"inserted": 0, "updated": 0, "skipped": 0}

    if not rows:
        return counts

    conn = get_connection()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        for row in rows:
            params = _prepare_row(row)
            existed = conn.execute(
                f"SELECT 1 FROM {table} WHERE eventid = ? AND oddid = ? AND line_key = ?",
                (params["eventid"], params["oddid"], params["line_key"]),
            ).fetchone() is not None

            cursor = conn.execute(sql, params)

            if cursor.rowcount == 0:
                counts["skipped"] += 1
            elif existed:
                counts["updated"] += 1
            else:
                counts["inserted"] += 1
        conn.execute("COMMIT")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()

    return counts


def game_exists(event_id: str) -> bool:
    """Return True if a game row exists for the event."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT 1 FROM games WHERE id = ?", (event_id,)).fetchone()
    finally:
        conn.close()
    return row is not None


def count_odds_for_event(event_id: str, sink: str = SINK_CURRENT) -> int:
    """Count rows stored for one event in a sink."""
    table, _ = _sink_table(sink)
    conn = get_connection()
    try:
        row = conn.execute(
            f"SELECT COUNT(*) AS n FROM {table} WHERE eventid = ?", (event_id,)
        ).fetchone()
    finally:
        conn.close()
    return row["n"]


def get_odds_rows(event_id: str, sink: str = SINK_CURRENT) -> list[dict]:
    """Return every stored row for an event in a sink, ordered by key."""
    table, _ = _sink_table(sink)
    conn = get_connection()
    try:
        rows = conn.execute(
            f"SELECT * FROM {table} WHERE eventid = ? ORDER BY oddid, line_key",
            (event_id,),
        ).fetchall()
    finally:
        conn.close()
    return [dict(row) for row in rows]


def get_odds_row(
    event_id: str,
    oddid: str,
    line: Optional[str] = None,
    sink: str = SINK_CURRENT,
) -> Optional[dict]:
    """Fetch the single row for (event, oddid, line) from a sink.

    Examples:
        >>> row = get_odds_row("E1", "points-home-game-ml-home", None, "opening")
        >>> row["bookodds"] if row else None
        -150
    """
    table, _ = _sink_table(sink)
    line_key = line if line is not None else ""
    conn = get_connection()
    try:
        row = conn.execute(
            f"SELECT * FROM {table} WHERE eventid = ? AND oddid = ? AND line_key = ?",
            (event_id, oddid, line_key),
        ).fetchone()
    finally:
        conn.close()
    return dict(row) if row else None


def delete_game_if_no_odds(event_id: str, now: Optional[datetime] = None) -> bool:
    """Delete a game that has no odds in either sink and has not started.

    Args:
        event_id: Provider event ID
        now: Current time (default: now)

    Returns:
        True if a row was deleted
    """
    if now is None:
        now = datetime.now(timezone.utc)

    conn = get_connection()
    try:
        cursor = conn.execute(
            """
            DELETE FROM games
            WHERE id = ?
              AND (game_time IS NULL OR game_time > ?)
              AND NOT EXISTS (SELECT 1 FROM odds WHERE eventid = games.id)
              AND NOT EXISTS (SELECT 1 FROM open_odds WHERE eventid = games.id)
            """,
            (event_id, to_db_timestamp(now)),
        )
        deleted = cursor.rowcount
        conn.commit()
    finally:
        conn.close()

    return deleted > 0


def prune_games_without_odds(now: Optional[datetime] = None) -> int:
    """Delete every not-yet-started game that has no odds rows.

    Returns:
        Number of games deleted
    """
    if now is None:
        now = datetime.now(timezone.utc)

    conn = get_connection()
    try:
        cursor = conn.execute(
            """
            DELETE FROM games
            WHERE (game_time IS NULL OR game_time > ?)
              AND NOT EXISTS (SELECT 1 FROM odds WHERE eventid = games.id)
              AND NOT EXISTS (SELECT 1 FROM open_odds WHERE eventid = games.id)
            """,
            (to_db_timestamp(now),),
        )
        deleted = cursor.rowcount
        conn.commit()
    finally:
        conn.close()

    if deleted:
        logger.info(f"Pruned {deleted} games without odds")
    return deleted


def get_sink_counts(league: Optional[str] = None) -> pd.DataFrame:
    """Summarize games and odds rows per league for diagnostics.

    Used for before/after totals around a pass, so that missing or stale
    odds can be spotted per league.

    Args:
        league: Restrict to one league key (None returns all leagues)

    Returns:
        DataFrame with columns: league, games, current_odds, opening_odds.
        Empty DataFrame if the tables don't exist yet.

    Examples:
        >>> df = get_sink_counts("MLB")
        >>> int(df["current_odds"].sum())
        0
    """
    columns = ["league", "games", "current_odds", "opening_odds"]

    query = """
        SELECT
            g.league AS league,
            COUNT(*) AS games,
            COALESCE(SUM((SELECT COUNT(*) FROM odds o WHERE o.eventid = g.id)), 0) AS current_odds,
            COALESCE(SUM((SELECT COUNT(*) FROM open_odds p WHERE p.eventid = g.id)), 0) AS opening_odds
        FROM games g
    """
    params = []
    if league:
        query += " WHERE g.league = ?"
        params.append(league)
    query += " GROUP BY g.league ORDER BY g.league"

    conn = get_connection()
    try:
        rows = conn.execute(query, params).fetchall()
    except sqlite3.OperationalError as e:
        logger.error(f"Database operation failed in get_sink_counts: {e}", exc_info=True)
        return pd.DataFrame(columns=columns)
    finally:
        conn.close()

    return pd.DataFrame([dict(row) for row in rows], columns=columns)


def cleanup_old_data(days: int = 30, now: Optional[datetime] = None) -> int:
    """Remove games that started more than the given number of days ago.

    Their rows in both odds tables go with them through the cascade.

    Args:
        days: Age threshold in days (default: 30)
        now: Current time (default: now)

    Returns:
        Number of games deleted
    """
    if now is None:
        now = datetime.now(timezone.utc)
    cutoff = to_db_timestamp(now - timedelta(days=days))

    conn = get_connection()
    try:
        cursor = conn.execute(
            "DELETE FROM games WHERE game_time IS NOT NULL AND game_time < ?",
            (cutoff,),
        )
        deleted = cursor.rowcount
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Cleaned up {deleted} games older than {days} days")
    return deleted
