"""
Shared pytest fixtures for odds ingestion tests.

This module provides fixtures for:
- Temporary database files (with automatic cleanup)
- A fixed clock for lifecycle decisions
- Sample SportsGameOdds payloads
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator

import pytest


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """
    Create a temporary database file for testing.

    Yields:
        Path to temporary database file

    Cleanup:
        Restores the configured path and removes the file
    """
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    import odds_ingest.config
    import odds_ingest.db
    original_config_path = odds_ingest.config.DATABASE_PATH
    original_db_path = odds_ingest.db.DATABASE_PATH
    odds_ingest.config.DATABASE_PATH = path
    odds_ingest.db.DATABASE_PATH = path

    yield path

    odds_ingest.config.DATABASE_PATH = original_config_path
    odds_ingest.db.DATABASE_PATH = original_db_path

    try:
        os.unlink(path)
    except OSError:
        pass


@pytest.fixture
def initialized_db(temp_db: str) -> Generator[str, None, None]:
    """
    Provide a database path with all tables initialized.
    """
    from odds_ingest import db
    db.initialize_db()

    yield temp_db


@pytest.fixture
def mock_api_key(monkeypatch) -> str:
    """Set the provider key in both config and the API client module."""
    monkeypatch.setattr('odds_ingest.config.SPORTSGAMEODDS_API_KEY', 'test_api_key_12345')
    monkeypatch.setattr('odds_ingest.odds_api.SPORTSGAMEODDS_API_KEY', 'test_api_key_12345')
    return 'test_api_key_12345'


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def fixed_now() -> datetime:
    """A fixed 'now' used across lifecycle and pipeline tests."""
    return datetime(2025, 8, 14, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock(fixed_now):
    """Clock callable that always returns fixed_now."""
    return lambda: fixed_now


# ============================================================================
# Payload Fixtures
# ============================================================================

def make_event(
    event_id: str = "E1",
    starts_at: datetime = None,
    odds: Dict[str, Any] = None,
    league: str = "MLB",
    display_status: str = "Scheduled",
) -> Dict[str, Any]:
    """Build a raw SportsGameOdds event."""
    if starts_at is None:
        starts_at = datetime(2025, 8, 14, 18, 0, tzinfo=timezone.utc)
    return {
        "eventID": event_id,
        "sportID": "BASEBALL",
        "leagueID": league,
        "status": {
            "startsAt": starts_at.isoformat().replace("+00:00", "Z"),
            "displayShort": display_status,
            "started": False,
            "ended": False,
            "cancelled": False,
        },
        "teams": {
            "home": {"teamID": "NEW_YORK_YANKEES_MLB", "names": {"long": "New York Yankees", "short": "NYY"}},
            "away": {"teamID": "BOSTON_RED_SOX_MLB", "names": {"long": "Boston Red Sox", "short": "BOS"}},
        },
        "odds": {} if odds is None else odds,
    }


def moneyline_home(book_odds: str = "-150", by_bookmaker: Dict[str, Any] = None) -> Dict[str, Any]:
    """Raw odd entry for the home moneyline."""
    return {
        "oddID": "points-home-game-ml-home",
        "marketName": "Moneyline",
        "betTypeID": "ml",
        "sideID": "home",
        "bookOdds": book_odds,
        "byBookmaker": by_bookmaker or {},
    }


@pytest.fixture
def sample_event(fixed_now) -> Dict[str, Any]:
    """Event starting two hours after fixed_now with one moneyline."""
    return make_event(
        starts_at=fixed_now + timedelta(hours=2),
        odds={"points-home-game-ml-home": moneyline_home()},
    )


@pytest.fixture
def sample_odds() -> Dict[str, Any]:
    """Odds map covering moneyline, spread, total, an alt line and a prop."""
    return {
        "points-home-game-ml-home": moneyline_home(
            "-150",
            {
                "fanduel": {"odds": "-148", "available": True, "deeplink": "https://fd.example/ml"},
                "draftkings": {"odds": "-152", "available": True},
            },
        ),
        "points-away-game-sp-away": {
            "oddID": "points-away-game-sp-away",
            "marketName": "Run Line",
            "betTypeID": "sp",
            "sideID": "away",
            "bookOdds": "+140",
            "bookSpread": "+1.5",
            "fairSpread": "+1.5",
            "byBookmaker": {
                "fanduel": {
                    "odds": "+142",
                    "available": True,
                    "altLines": [
                        {"odds": "-190", "spread": "+2.5", "available": True},
                        {"odds": "+300", "spread": "-1.5", "available": False},
                    ],
                },
            },
        },
        "points-all-game-ou-over": {
            "oddID": "points-all-game-ou-over",
            "marketName": "Over/Under",
            "betTypeID": "ou",
            "sideID": "over",
            "bookOdds": "-110",
            "bookOverUnder": "8.5",
            "byBookmaker": {"betmgm": {"odds": "-105", "available": True}},
        },
        "batting_hits-AARON_JUDGE_1_MLB-game-ou-over": {
            "oddID": "batting_hits-AARON_JUDGE_1_MLB-game-ou-over",
            "marketName": "Aaron Judge Hits Over/Under",
            "betTypeID": "ou",
            "sideID": "over",
            "fairOverUnder": "0.5",
            "byBookmaker": {
                "caesars": {"odds": "-135", "available": True},
                "draftkings": {"odds": "-140", "available": True},
            },
        },
    }
