import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from .scoring import ScoredCandidate
from .config import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedRecommendations:
    results: tuple[ScoredCandidate, ...]
    stored_at: datetime


class RecommendationCache:
    """Time-bounded memo of the last default recommendation run."""

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entry: CachedRecommendations | None = None

    @property
    def entry(self) -> CachedRecommendations | None:
        return self._entry

    def is_valid(self, now: datetime) -> bool:
        if self._entry is None:
            return False
        return now - self._entry.stored_at < self.ttl

    def get(self, now: datetime) -> list[ScoredCandidate] | None:
        """Cached results, or None when empty or expired."""
        if not self.is_valid(now):
            return None
        return list(self._entry.results)

    def store(self, results: list[ScoredCandidate], now: datetime) -> None:
        self._entry = CachedRecommendations(results=tuple(results), stored_at=now)

    def clear(self) -> None:
        if self._entry is not None:
            logger.debug("Recommendation cache cleared")
        self._entry = None
