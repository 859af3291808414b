"""
Single-user recommendation engine.

Owns the viewing history, ratings, watched set and preference store, and
wires them through feedback -> scoring -> ranking -> diversity -> cache.
State is persisted to a key-value slot after every mutation; persistence
failures are logged and never propagated, in-memory state stays authoritative.

Not thread-safe: callers must serialize access to one instance.
"""
import logging
import math
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Callable

from . import database
from .cache import RecommendationCache
from .feedback import record_rating, record_view
from .profile import UserState
from .ranking import (
    filter_candidates,
    rank_by_genre,
    rank_by_preference,
    rank_cold_start,
    rank_more_like_this,
    rank_trending,
)
from .scoring import Scorer, ScoredCandidate
from .stats import compute_statistics
from .config import (
    CACHE_TTL_SECONDS,
    DEFAULT_DIVERSITY_FACTOR,
    DEFAULT_GENRE_COUNT,
    DEFAULT_RECOMMENDATION_COUNT,
    DEFAULT_SIMILAR_COUNT,
    DEFAULT_TRENDING_COUNT,
    DEFAULT_TRENDING_WINDOW_DAYS,
    STORAGE_KEY,
)

logger = logging.getLogger(__name__)

_PERSISTENCE_ERRORS = (sqlite3.Error, OSError, TypeError, ValueError)


class RecommendationEngine:

    def __init__(
        self,
        storage_key: str = STORAGE_KEY,
        persist: bool = True,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.storage_key = storage_key
        self.persist = persist
        self.clock = clock
        self.cache = RecommendationCache(cache_ttl)
        self.state = UserState()

        if self.persist:
            self.load_from_storage()

    # Read-only views of the owned state

    @property
    def viewing_history(self):
        return list(self.state.history)

    @property
    def watched(self) -> frozenset:
        return frozenset(self.state.watched)

    @property
    def preferences(self):
        return self.state.preferences

    @property
    def ratings(self):
        return dict(self.state.ratings)

    # Feedback

    def record_view(self, item: dict, watch_duration: float | None = None, completed: bool = False) -> None:
        record_view(self.state, item, self.clock(), watch_duration=watch_duration, completed=completed)
        self.save_to_storage()
        self.cache.clear()
        logger.info(f"Recorded view: {item.get('title') or item.get('id')}")

    def rate_movie(self, item_id: Any, rating: float) -> None:
        if not math.isfinite(rating):
            logger.warning(f"Rejected rating {rating} for {item_id}: not a finite number")
            return

        record_rating(self.state, item_id, rating, self.clock())
        self.save_to_storage()
        self.cache.clear()
        logger.info(f"Recorded rating: {item_id} - {rating}/10")

    # Recommendations

    def get_recommendations(
        self,
        candidates: list[dict],
        count: int = DEFAULT_RECOMMENDATION_COUNT,
        exclude_watched: bool = True,
        min_rating: float = 0,
        diversity_factor: float = DEFAULT_DIVERSITY_FACTOR,
    ) -> list[ScoredCandidate]:
        """
        Personalized ranking of `candidates`.

        A valid cache short-circuits everything (options included) until the
        TTL expires or feedback is recorded. With no viewing history the
        cold-start ranking is returned and not cached.
        """
        now = self.clock()
        cached = self.cache.get(now)
        if cached is not None:
            logger.debug("Using cached recommendations")
            return cached[:count]

        logger.debug("Generating new recommendations...")
        pool = filter_candidates(
            candidates,
            watched=self.state.watched if exclude_watched else None,
            min_rating=min_rating,
        )

        if not self.state.history:
            return self.get_cold_start_recommendations(pool, count)

        recommendations = rank_by_preference(self.state.preferences, pool, count, diversity_factor)
        self.cache.store(recommendations, now)

        logger.debug(f"Generated {len(recommendations)} recommendations")
        return recommendations

    def get_cold_start_recommendations(
        self, candidates: list[dict], count: int = DEFAULT_RECOMMENDATION_COUNT
    ) -> list[ScoredCandidate]:
        return rank_cold_start(candidates, count)

    def get_more_like_this(
        self, item: dict, candidates: list[dict], count: int = DEFAULT_SIMILAR_COUNT
    ) -> list[ScoredCandidate]:
        return rank_more_like_this(item, candidates, self.state.watched, count)

    def get_trending_recommendations(
        self,
        candidates: list[dict],
        count: int = DEFAULT_TRENDING_COUNT,
        time_window_days: float = DEFAULT_TRENDING_WINDOW_DAYS,
    ) -> list[ScoredCandidate]:
        """Genre momentum from views inside the trailing window; default ranking if none."""
        cutoff = self.clock() - timedelta(days=time_window_days)
        recent = [event for event in self.state.history if event.timestamp >= cutoff]

        if not recent:
            return self.get_recommendations(candidates, count)

        return rank_trending(recent, candidates, self.state.watched, count)

    def get_genre_recommendations(
        self, genre: str, candidates: list[dict], count: int = DEFAULT_GENRE_COUNT
    ) -> list[ScoredCandidate]:
        return rank_by_genre(self.state.preferences, genre, candidates, self.state.watched, count)

    # Introspection

    def get_score_breakdown(self, item: dict) -> dict[str, float]:
        return Scorer(self.state.preferences).breakdown(item)

    def calculate_recommendation_score(self, item: dict) -> float:
        return Scorer(self.state.preferences).score(item)

    def get_top_preferences(self, category: str = 'genres', limit: int = 5) -> list[dict]:
        return self.state.preferences.top(category, limit)

    def get_statistics(self) -> dict:
        return compute_statistics(self.state)

    # State management

    def reset(self) -> None:
        """Drop all state and its stored slot; an absent slot loads as empty."""
        self.state = UserState()
        self.cache.clear()
        if self.persist:
            try:
                database.delete_state(self.storage_key)
            except _PERSISTENCE_ERRORS as e:
                logger.error(f"Error clearing storage: {e}")
        logger.info("Engine reset")

    def export_data(self) -> dict:
        data = self.state.to_dict()
        data['statistics'] = self.get_statistics()
        return data

    def import_data(self, data: dict) -> bool:
        """
        Replace all state from an exported structure. Malformed input is
        logged and leaves the current state untouched.
        """
        try:
            state = UserState.from_dict(data)
        except ValueError as e:
            logger.error(f"Error importing data: {e}")
            return False

        self.state = state
        self.save_to_storage()
        self.cache.clear()
        logger.info(f"Data imported successfully ({len(state.history)} views)")
        return True

    # Persistence

    def save_to_storage(self) -> bool:
        if not self.persist:
            return False

        data = self.state.to_dict()
        data['saved_at'] = self.clock().isoformat()
        try:
            database.save_state(self.storage_key, data)
        except _PERSISTENCE_ERRORS as e:
            logger.error(f"Error saving to storage: {e}")
            return False

        logger.debug("Data saved to storage")
        return True

    def load_from_storage(self) -> bool:
        try:
            stored = database.load_state(self.storage_key)
        except _PERSISTENCE_ERRORS as e:
            logger.error(f"Error loading from storage: {e}")
            return False

        if stored is None:
            return False

        # Malformed fields fall back to empty one by one; the rest is kept
        self.state = UserState.from_dict(stored, strict=False)
        logger.debug(f"Data loaded from storage: {len(self.state.history)} views in history")
        return True
