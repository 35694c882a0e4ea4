"""Normalize raw SportsGameOdds events into canonical game records."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from .config import LEAGUES, TEAM_NAME_ABBREVIATIONS, logger
from .type_safety import safe_int, truncate_string

STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in-progress"
STATUS_FINAL = "final"
STATUS_CANCELLED = "cancelled"

# Provider display strings, lowercased
STATUS_MAP = {
    "scheduled": STATUS_SCHEDULED,
    "upcoming": STATUS_SCHEDULED,
    "pre-game": STATUS_SCHEDULED,
    "pregame": STATUS_SCHEDULED,
    "delayed": STATUS_SCHEDULED,
    "live": STATUS_IN_PROGRESS,
    "started": STATUS_IN_PROGRESS,
    "in progress": STATUS_IN_PROGRESS,
    "in_progress": STATUS_IN_PROGRESS,
    "in-progress": STATUS_IN_PROGRESS,
    "halftime": STATUS_IN_PROGRESS,
    "half": STATUS_IN_PROGRESS,
    "final": STATUS_FINAL,
    "f": STATUS_FINAL,
    "ft": STATUS_FINAL,
    "final/ot": STATUS_FINAL,
    "completed": STATUS_FINAL,
    "ended": STATUS_FINAL,
    "cancelled": STATUS_CANCELLED,
    "canceled": STATUS_CANCELLED,
    "postponed": STATUS_CANCELLED,
    "abandoned": STATUS_CANCELLED,
}

_WHITESPACE = re.compile(r"\s+")
_NON_KEY_CHARS = re.compile(r"[^a-z0-9_]")


def normalize_team_name(name: Any) -> str:
    """Collapse repeated whitespace and trim a team name.

    Examples:
        >>> normalize_team_name("  New   York  Yankees ")
        'New York Yankees'
    """
    if name is None:
        return ""
    return _WHITESPACE.sub(" ", str(name)).strip()


def extract_team_name(team: Any, side: str) -> str:
    """Pick the best available name for one side of an event.

    Tries names.long, names.medium, names.short, then name. A missing name
    becomes "Unknown Home Team" / "Unknown Away Team" so the event survives.
    """
    fallback = f"Unknown {side.capitalize()} Team"
    if not isinstance(team, dict):
        return fallback

    names = team.get("names") if isinstance(team.get("names"), dict) else {}
    for candidate in (names.get("long"), names.get("medium"), names.get("short"), team.get("name")):
        cleaned = normalize_team_name(candidate)
        if cleaned:
            return cleaned

    logger.info(f"Missing {side} team name, using '{fallback}'")
    return fallback


def team_key(name: str) -> str:
    """Build the short lowercase key stored in home_team/away_team.

    Examples:
        >>> team_key("New York Yankees")
        'ny_yankees'
        >>> team_key("Unknown Home Team")
        'unknown'
    """
    if not name or name.startswith("Unknown "):
        return "unknown"
    short = TEAM_NAME_ABBREVIATIONS.get(name, name)
    key = _NON_KEY_CHARS.sub("", _WHITESPACE.sub("_", short.lower()))
    return key[:50] or "unknown"


def map_status(status: Any) -> str:
    """Map the provider status object onto scheduled/in-progress/final/cancelled.

    Boolean flags on the status object win over the display string. Unknown
    display strings fall back to scheduled so vocabulary drift upstream
    never blocks ingestion.

    Examples:
        >>> map_status({"displayShort": "Final"})
        'final'
        >>> map_status({"started": True, "ended": False})
        'in-progress'
        >>> map_status({"displayShort": "Rain Check"})
        'scheduled'
    """
    if isinstance(status, str):
        status = {"displayShort": status}
    if not isinstance(status, dict):
        return STATUS_SCHEDULED

    if status.get("cancelled"):
        return STATUS_CANCELLED
    if status.get("ended") or status.get("completed"):
        return STATUS_FINAL
    if status.get("live") or status.get("started"):
        return STATUS_IN_PROGRESS

    display = status.get("displayShort") or status.get("displayLong") or status.get("status")
    if not display:
        return STATUS_SCHEDULED

    mapped = STATUS_MAP.get(str(display).strip().lower())
    if mapped is None:
        logger.info(f"Unrecognized status '{display}', treating as scheduled")
        return STATUS_SCHEDULED
    return mapped


def parse_start_time(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 start time into an aware UTC datetime.

    Examples:
        >>> parse_start_time("2025-08-14T23:05:00.000Z").isoformat()
        '2025-08-14T23:05:00+00:00'
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Could not parse start time: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_score(value: Any) -> Optional[int]:
    """Scores are null until the provider reports them."""
    return safe_int(value, default=None)


def transform_event(raw: dict, league: Optional[str] = None) -> tuple[dict, dict]:
    """Convert one raw provider event into (game record, raw odds map).

    The odds map is returned untouched; consolidation happens later.

    Args:
        raw: Raw event from the events endpoint
        league: League key the event was fetched for (fallback for leagueID)

    Returns:
        Tuple of the canonical game dict (keys: id, sport, league, home_team,
        away_team, home_team_name, away_team_name, game_time, status,
        home_score, away_score) and the event's odds map

    Examples:
        >>> game, odds = transform_event({"eventID": "E1", "leagueID": "MLB", "odds": {}})
        >>> game["home_team_name"]
        'Unknown Home Team'
    """
    status = raw.get("status") if isinstance(raw.get("status"), dict) else {}
    teams = raw.get("teams") if isinstance(raw.get("teams"), dict) else {}
    home = teams.get("home") if isinstance(teams.get("home"), dict) else {}
    away = teams.get("away") if isinstance(teams.get("away"), dict) else {}

    league_id = str(raw.get("leagueID") or league or "")
    league_config = LEAGUES.get(league_id, {})
    sport = league_config.get("sport") or str(raw.get("sportID") or "unknown").lower()

    home_name = extract_team_name(home, "home")
    away_name = extract_team_name(away, "away")
    start_time = parse_start_time(status.get("startsAt") or raw.get("startTime"))

    game = {
        "id": str(raw.get("eventID")),
        "sport": sport,
        "league": truncate_string(league_id, 50) or "",
        "home_team": team_key(home_name),
        "away_team": team_key(away_name),
        "home_team_name": home_name,
        "away_team_name": away_name,
        "game_time": start_time,
        "status": map_status(status or raw.get("status")),
        "home_score": parse_score(home.get("score")),
        "away_score": parse_score(away.get("score")),
    }

    odds = raw.get("odds")
    if not isinstance(odds, dict):
        odds = {}

    return game, odds
