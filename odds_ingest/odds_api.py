"""SportsGameOdds API client for fetching events with nested odds."""

from datetime import date, timedelta
from typing import Iterator, Optional

import requests

from .config import (
    SPORTSGAMEODDS_API_KEY,
    SPORTSGAMEODDS_BASE_URL,
    REQUEST_TIMEOUT,
    LOOKAHEAD_DAYS,
    PAGE_LIMIT,
    MAX_PAGES,
    MAX_EVENTS_PER_LEAGUE,
    LEAGUES,
    LEAGUE_ALIASES,
    logger,
)
from .validation import validate_events_envelope


class OddsAPIError(Exception):
    """Transport failure talking to the odds provider.

    Carries the league and page being fetched so the caller can retry just
    that unit of work.
    """

    def __init__(self, message: str, league: Optional[str] = None, page: Optional[int] = None):
        self.league = league
        self.page = page
        context = []
        if league:
            context.append(f"league={league}")
        if page is not None:
            context.append(f"page={page}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


def resolve_league(name: str) -> tuple[str, dict]:
    """Look up a league by readable key, accepting legacy aliases.

    Args:
        name: League key such as 'NFL' or 'ucl' (case-insensitive)

    Returns:
        Tuple of (canonical league key, league configuration dict)

    Raises:
        ValueError: If the league is not supported

    Examples:
        >>> resolve_league("ucl")[0]
        'UEFA_CHAMPIONS_LEAGUE'
    """
    key = str(name).strip().upper()
    key = LEAGUE_ALIASES.get(key, key)
    if key not in LEAGUES:
        raise ValueError(
            f"Unsupported league: {name}. Supported: {', '.join(LEAGUES)}"
        )
    return key, LEAGUES[key]


def build_window(today: Optional[date] = None, lookahead_days: int = LOOKAHEAD_DAYS) -> tuple[str, str]:
    """Return the (startsAfter, startsBefore) ISO dates for a fetch pass.

    Examples:
        >>> build_window(date(2025, 8, 14))
        ('2025-08-14', '2025-08-21')
    """
    if today is None:
        today = date.today()
    return today.isoformat(), (today + timedelta(days=lookahead_days)).isoformat()


def _make_request(
    endpoint: str,
    params: Optional[dict] = None,
    league: Optional[str] = None,
    page: Optional[int] = None,
) -> dict:
    """Make a request to the SportsGameOdds API with error handling.

    Internal helper that handles authentication, the bounded timeout and
    the translation of every transport problem into OddsAPIError.

    Args:
        endpoint: API endpoint path (e.g., 'events')
        params: Optional query parameters
        league: League being fetched, attached to errors
        page: Page number being fetched, attached to errors

    Returns:
        Decoded JSON body

    Raises:
        OddsAPIError: If the API key is missing, the call times out or fails
            to connect, the status is not 200, or the body is not JSON
    """
    if not SPORTSGAMEODDS_API_KEY:
        raise OddsAPIError("SPORTSGAMEODDS_API_KEY is not set. Please set it in your .env file.")

    url = f"{SPORTSGAMEODDS_BASE_URL}/{endpoint}"
    headers = {
        "X-API-Key": SPORTSGAMEODDS_API_KEY,
        "Content-Type": "application/json",
    }

    try:
        response = requests.get(url, params=params or {}, headers=headers, timeout=REQUEST_TIMEOUT)
    except requests.Timeout as e:
        raise OddsAPIError(f"Request timed out after {REQUEST_TIMEOUT}s: {e}", league, page) from e
    except requests.RequestException as e:
        raise OddsAPIError(f"Request failed: {e}", league, page) from e

    if response.status_code == 401:
        raise OddsAPIError("401 Unauthorized - Invalid API key. Check SPORTSGAMEODDS_API_KEY in .env", league, page)
    elif response.status_code == 429:
        raise OddsAPIError("429 Rate Limited - API quota reached. Wait or upgrade plan.", league, page)
    elif response.status_code != 200:
        raise OddsAPIError(
            f"API request failed with status {response.status_code}: {response.text}", league, page
        )

    try:
        return response.json()
    except ValueError as e:
        raise OddsAPIError(f"Malformed JSON body: {e}", league, page) from e


def iter_event_pages(
    league: str,
    starts_after: str,
    starts_before: str,
    limit: int = PAGE_LIMIT,
    include_alt_lines: bool = True,
    max_pages: int = MAX_PAGES,
) -> Iterator[list[dict]]:
    """Yield pages of raw events for one league, following the cursor.

    Every call starts a fresh cursor chain, so the sequence can be restarted
    simply by calling again. A failing page raises OddsAPIError; pages
    already yielded stay with the caller.

    Args:
        league: League key (e.g., 'NFL')
        starts_after: ISO date, events starting on or after this day
        starts_before: ISO date, events starting before this day
        limit: Page size
        include_alt_lines: Ask the provider for alternate lines
        max_pages: Safety cap on pages followed

    Yields:
        List of raw event dicts for each page

    API Endpoint:
        GET /v2/events

    Raises:
        OddsAPIError: On transport failure or an unusable envelope
    """
    league_key, league_config = resolve_league(league)
    cursor = None
    page = 0

    while True:
        page += 1
        if page > max_pages:
            logger.warning(f"Hit maximum page limit ({max_pages}) for {league_key}")
            return

        params = {
            "leagueID": league_config["league_id"],
            "type": "match",
            "startsAfter": starts_after,
            "startsBefore": starts_before,
            "limit": limit,
            "includeAltLines": "true" if include_alt_lines else "false",
        }
        if cursor:
            params["cursor"] = cursor

        body = _make_request("events", params, league=league_key, page=page)

        if not validate_events_envelope(body):
            raise OddsAPIError("Unusable events response envelope", league_key, page)

        events = body["data"]
        logger.debug(f"{league_key} page {page}: {len(events)} events")

        if not events:
            return

        yield events

        cursor = body.get("nextCursor")
        if not cursor:
            return


def iter_events(
    league: str,
    starts_after: str,
    starts_before: str,
    limit: int = PAGE_LIMIT,
    include_alt_lines: bool = True,
    max_events: int = MAX_EVENTS_PER_LEAGUE,
) -> Iterator[dict]:
    """Yield raw events one by one across all pages, up to max_events."""
    count = 0
    for events in iter_event_pages(league, starts_after, starts_before, limit, include_alt_lines):
        for event in events:
            if count >= max_events:
                logger.warning(f"{league} hit safety limit of {max_events} events")
                return
            count += 1
            yield event
