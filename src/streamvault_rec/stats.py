import copy
import logging
from datetime import timedelta

from .profile import UserState, ViewEvent
from .config import STREAK_MAX_GAP_HOURS, TOP_PREFERENCES_LIMIT

logger = logging.getLogger(__name__)


def average_rating(state: UserState) -> float:
    """Mean of all recorded ratings, rounded to one decimal; 0 when none."""
    if not state.ratings:
        return 0
    ratings = [entry.rating for entry in state.ratings.values()]
    return round(sum(ratings) / len(ratings), 1)


def viewing_streak(history: list[ViewEvent], max_gap_hours: float = STREAK_MAX_GAP_HOURS) -> int:
    """
    Number of most recent views chained together by gaps of at most
    `max_gap_hours`, counted backwards from the latest view.
    """
    if not history:
        return 0

    max_gap = timedelta(hours=max_gap_hours)
    ordered = sorted(history, key=lambda e: e.timestamp, reverse=True)

    streak = 1
    for newer, older in zip(ordered, ordered[1:]):
        if newer.timestamp - older.timestamp <= max_gap:
            streak += 1
        else:
            break
    return streak


def last_viewed(history: list[ViewEvent]) -> dict | None:
    if not history:
        return None
    return copy.deepcopy(max(history, key=lambda e: e.timestamp).item)


def compute_statistics(state: UserState) -> dict:
    """Read-only summary of the user's history, ratings and strongest preferences."""
    return {
        'total_views': len(state.history),
        'unique_movies': len(state.watched),
        'total_ratings': len(state.ratings),
        'average_rating': average_rating(state),
        'top_genres': state.preferences.top('genres', TOP_PREFERENCES_LIMIT),
        'top_actors': state.preferences.top('actors', TOP_PREFERENCES_LIMIT),
        'top_directors': state.preferences.top('directors', TOP_PREFERENCES_LIMIT),
        'viewing_streak': viewing_streak(state.history),
        'last_viewed': last_viewed(state.history),
    }
