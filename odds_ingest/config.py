import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Logging Configuration
# Read-only deployments cannot open the log file, so fall back to console only
handlers = []
try:
    handlers.append(logging.FileHandler('odds_ingest.log'))
except (OSError, PermissionError):
    pass
handlers.append(logging.StreamHandler())

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)
logger = logging.getLogger('odds_ingest')


class ConfigurationError(Exception):
    """Raised when required credentials or settings are missing."""
    pass


# SportsGameOdds API Configuration
SPORTSGAMEODDS_API_KEY = os.getenv("SPORTSGAMEODDS_API_KEY", "")
SPORTSGAMEODDS_BASE_URL = "https://api.sportsgameodds.com/v2"

# Timeouts (seconds) for every outbound call
REQUEST_TIMEOUT = 30
DB_TIMEOUT = 30

# Database Configuration
DATABASE_PATH = os.getenv(
    "ODDS_DB_PATH",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "odds_ingest.db"),
)

# Fetch window and paging
LOOKAHEAD_DAYS = 7
PAGE_LIMIT = 50
MAX_PAGES = 20
MAX_EVENTS_PER_LEAGUE = 500

# Ingestion gate and write batching
STARTED_BUFFER_MINUTES = 10
CHUNK_SIZE = 500
MAX_LEAGUE_WORKERS = 4
RETENTION_DAYS = 30

# Name stored in the sportsbook column of consolidated rows
CONSOLIDATED_SOURCE = "SportsGameOdds"

# Supported leagues - readable key to provider identifiers
LEAGUES = {
    "NFL": {"sport_id": "FOOTBALL", "league_id": "NFL", "sport": "football"},
    "NBA": {"sport_id": "BASKETBALL", "league_id": "NBA", "sport": "basketball"},
    "WNBA": {"sport_id": "BASKETBALL", "league_id": "WNBA", "sport": "basketball"},
    "MLB": {"sport_id": "BASEBALL", "league_id": "MLB", "sport": "baseball"},
    "NHL": {"sport_id": "HOCKEY", "league_id": "NHL", "sport": "hockey"},
    "NCAAF": {"sport_id": "FOOTBALL", "league_id": "NCAAF", "sport": "football"},
    "NCAAB": {"sport_id": "BASKETBALL", "league_id": "NCAAB", "sport": "basketball"},
    "MLS": {"sport_id": "SOCCER", "league_id": "MLS", "sport": "soccer"},
    "UEFA_CHAMPIONS_LEAGUE": {
        "sport_id": "SOCCER",
        "league_id": "UEFA_CHAMPIONS_LEAGUE",
        "sport": "soccer",
    },
}

# Older callers still pass the short code
LEAGUE_ALIASES = {
    "UCL": "UEFA_CHAMPIONS_LEAGUE",
}

# Sportsbook keys in the order used to pick a representative price
# when the provider gives no consensus figure
SPORTSBOOKS = (
    "fanduel",
    "draftkings",
    "caesars",
    "betmgm",
    "espnbet",
    "fanatics",
    "bovada",
    "betrivers",
    "pinnacle",
    "bet365",
    "hardrockbet",
    "fliff",
    "pointsbet",
    "unibet",
    "williamhill",
    "ballybet",
    "betonline",
    "betparx",
    "circa",
    "lowvig",
    "prizepicks",
    "underdog",
)

# Shortened team names used for the normalized team key
TEAM_NAME_ABBREVIATIONS = {
    "New York Yankees": "NY Yankees",
    "New York Mets": "NY Mets",
    "Los Angeles Dodgers": "LA Dodgers",
    "Los Angeles Angels": "LA Angels",
    "Chicago White Sox": "Chi White Sox",
    "Chicago Cubs": "Chi Cubs",
    "San Francisco Giants": "SF Giants",
    "St. Louis Cardinals": "St Louis Cardinals",
}


def validate_config() -> None:
    """Fail fast when the provider credentials are missing.

    Raises:
        ConfigurationError: If SPORTSGAMEODDS_API_KEY is not set
    """
    if not SPORTSGAMEODDS_API_KEY:
        raise ConfigurationError(
            "SPORTSGAMEODDS_API_KEY is not set. Please set it in your .env file."
        )
