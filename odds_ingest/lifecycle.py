"""Decide per event and per pass whether odds should be ingested.

Nothing here is persisted: the decision is recomputed every pass from the
injected clock and the freshest provider payload.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import STARTED_BUFFER_MINUTES
from .transformer import STATUS_CANCELLED, STATUS_FINAL

ELIGIBLE = "eligible"
STARTED = "started"
NO_ODDS = "no_odds"


def utc_now() -> datetime:
    """Default clock for ingestion passes."""
    return datetime.now(timezone.utc)


def has_started(
    start_time: Optional[datetime],
    now: datetime,
    buffer_minutes: int = STARTED_BUFFER_MINUTES,
) -> bool:
    """Return True once now is past start_time plus the buffer.

    Examples:
        >>> start = datetime(2025, 8, 14, 19, 0, tzinfo=timezone.utc)
        >>> has_started(start, start + timedelta(minutes=5))
        False
        >>> has_started(start, start + timedelta(minutes=11))
        True
    """
    if start_time is None:
        return False
    return now > start_time + timedelta(minutes=buffer_minutes)


def evaluate_event(
    game: dict,
    raw_odds: dict,
    now: datetime,
    buffer_minutes: int = STARTED_BUFFER_MINUTES,
) -> str:
    """Classify an event as ELIGIBLE, STARTED or NO_ODDS for this pass.

    STARTED is checked first, so a started game is skipped even when the
    provider still sends odds for it. A final or cancelled game whose start
    time has passed counts as started too. An event without odds is
    NO_ODDS and should not be kept.

    Args:
        game: Canonical game record from transform_event
        raw_odds: The event's raw odds map
        now: Current time from the injected clock
        buffer_minutes: Grace period after scheduled start

    Returns:
        One of ELIGIBLE, STARTED, NO_ODDS
    """
    start_time = game.get("game_time")

    if has_started(start_time, now, buffer_minutes):
        return STARTED

    if game.get("status") in (STATUS_FINAL, STATUS_CANCELLED) and start_time is not None and start_time <= now:
        return STARTED

    if not raw_odds:
        return NO_ODDS

    return ELIGIBLE
