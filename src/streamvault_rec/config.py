"""
Configuration constants for the StreamVault recommendation engine.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables where noted.
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


# Storage Configuration
DB_PATH = Path(os.environ.get("STREAMVAULT_DB", "data/streamvault.db"))
STORAGE_KEY = "streamvault_recommendations"  # Key-value slot holding the engine state

# Catalog Configuration
DEFAULT_CATALOG_PATH = os.environ.get("STREAMVAULT_CATALOG", "data/catalog.json")
HTTP_TIMEOUT = _get_float_env("STREAMVAULT_HTTP_TIMEOUT", 30.0, min_val=1.0)
MAX_HTTP_RETRIES = _get_int_env("STREAMVAULT_HTTP_RETRIES", 3, min_val=1)
HTTP_RETRY_DELAY = 1.0
HTTP_MAX_RETRY_DELAY = 10.0
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

# Recommendation cache
CACHE_TTL_SECONDS = _get_int_env("STREAMVAULT_CACHE_TTL", 5 * 60, min_val=0)

# Feedback weights
VIEW_WEIGHT_COMPLETED = 1.0
VIEW_WEIGHT_PARTIAL = 0.5
RATING_SCALE = 10.0  # Ratings are 1-10; weight = rating / RATING_SCALE
MIN_VALID_RATING = 1
MAX_VALID_RATING = 10

# Relevance weights (sum to 1.0)
SCORE_WEIGHTS = {
    'genre': 0.35,
    'actor': 0.20,
    'director': 0.15,
    'theme': 0.15,
    'source': 0.05,
    'decade': 0.05,
    'rating': 0.05,
}

# Default query options
DEFAULT_RECOMMENDATION_COUNT = 10
DEFAULT_DIVERSITY_FACTOR = 0.3
DEFAULT_SIMILAR_COUNT = 6
DEFAULT_TRENDING_COUNT = 10
DEFAULT_TRENDING_WINDOW_DAYS = 7
DEFAULT_GENRE_COUNT = 10

# Diversity filter
COLD_START_DIVERSITY_FACTOR = 0.5
DIVERSITY_ACCEPT_THRESHOLD = 0.1  # Adjusted score must exceed this once the floor is met
MIN_GUARANTEED_RESULTS = 3        # First N candidates are always accepted
SOURCE_PENALTY_RATIO = 0.5        # Source repeats cost half as much as genre repeats
UNKNOWN_CATEGORY = "unknown"

# More-like-this similarity weights
SIMILARITY_WEIGHTS = {
    'genre': 0.4,
    'actor': 0.25,
    'director': 0.2,
    'theme': 0.15,
}

# Statistics
TOP_PREFERENCES_LIMIT = 3
STREAK_MAX_GAP_HOURS = 24
