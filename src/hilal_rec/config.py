"""
Configuration constants for the Hilal recommendation service.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_choice_env(key: str, default: str, choices: tuple[str, ...]) -> str:
    val = os.environ.get(key, default).strip().lower()
    if val not in choices:
        logger.warning(f"Invalid {key}='{val}' (expected one of {choices}), using default {default}")
        return default
    return val


# Hosted store / identity provider
SUPABASE_URL = os.environ.get("SUPABASE_URL", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")

# Store backend: "rest" talks to the hosted store, "sqlite" reads the local snapshot
BACKENDS = ("rest", "sqlite")
STORE_BACKEND = _get_choice_env("HILAL_BACKEND", "rest", BACKENDS)
DB_PATH = Path(os.environ.get("HILAL_DB", "data/hilal.db"))

# HTTP client
HTTP_TIMEOUT = _get_float_env("HILAL_HTTP_TIMEOUT", 10.0, min_val=0.5)
MAX_CONCURRENT_REQUESTS = _get_int_env("HILAL_MAX_CONCURRENT", 8, min_val=1)
IN_FILTER_CHUNK_SIZE = _get_int_env("HILAL_IN_CHUNK_SIZE", 200, min_val=1)  # ids per `in.(...)` filter
CATALOG_PAGE_SIZE = _get_int_env("HILAL_CATALOG_PAGE_SIZE", 1000, min_val=1)  # PostgREST default max-rows

# HTTP server
SERVER_HOST = os.environ.get("HILAL_HOST", "0.0.0.0")
SERVER_PORT = _get_int_env("HILAL_PORT", 8000, min_val=1)
CORS_ORIGINS = [o.strip() for o in os.environ.get("HILAL_CORS_ORIGINS", "*").split(",") if o.strip()]
CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

# Candidate scoring weights
SCORE_WEIGHTS = {
    'genre': 3.0,       # per unit of genre frequency
    'tag': 2.0,         # per unit of tag frequency
    'popularity': 0.5,  # times log10(total_views + 1)
    'rating': 0.3,
}
TRENDING_BONUS = 2.0

# "Because you watched" matching
MATCH_GENRE_WEIGHT = 3.0   # per genre shared with the source
MATCH_TAG_WEIGHT = 2.0     # per tag shared with the source
MATCH_SCORE_WEIGHT = 0.1   # global score folded in as a tie-breaker

# Section sizes
POPULAR_LIMIT = 12
MAX_SOURCE_SECTIONS = 3
SOURCE_SECTION_LIMIT = 8
MIN_SOURCE_SECTION_SIZE = 2
RECOMMENDED_LIMIT = 10
