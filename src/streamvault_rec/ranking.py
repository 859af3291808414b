"""
Ranking modes over a caller-supplied candidate list.

All functions are state-free: they read a PreferenceStore (or view events)
and never mutate it. Sorting is Python's stable sort on descending score,
so tied candidates keep their catalog order; callers should not rely on it.
"""
import logging
from collections import defaultdict
from typing import Any, Iterable

from .profile import PreferenceStore, ViewEvent, item_genres, parse_rating
from .scoring import Scorer, ScoredCandidate
from .diversity import apply_diversity_filter
from .feedback import view_weight
from .config import (
    COLD_START_DIVERSITY_FACTOR,
    DEFAULT_DIVERSITY_FACTOR,
    DEFAULT_GENRE_COUNT,
    DEFAULT_RECOMMENDATION_COUNT,
    DEFAULT_SIMILAR_COUNT,
    DEFAULT_TRENDING_COUNT,
    SIMILARITY_WEIGHTS,
)

logger = logging.getLogger(__name__)


def _sort_by_score(scored: list[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(scored, key=lambda c: -c.score)


def filter_candidates(
    candidates: Iterable[dict],
    watched: set | None = None,
    min_rating: float = 0,
) -> list[dict]:
    """Drop watched items and, when min_rating > 0, items rated below it (or unrated)."""
    result = list(candidates)
    if watched:
        result = [c for c in result if c.get('id') not in watched]
    if min_rating > 0:
        result = [
            c for c in result
            if (rating := parse_rating(c.get('rating'))) is not None and rating >= min_rating
        ]
    return result


def rank_by_preference(
    preferences: PreferenceStore,
    candidates: list[dict],
    count: int = DEFAULT_RECOMMENDATION_COUNT,
    diversity_factor: float = DEFAULT_DIVERSITY_FACTOR,
) -> list[ScoredCandidate]:
    """Score every candidate against the store, sort, then diversify or truncate."""
    scorer = Scorer(preferences)
    scored = _sort_by_score([scorer.score_candidate(item) for item in candidates])

    if diversity_factor > 0:
        return apply_diversity_filter(scored, count, diversity_factor)
    return scored[:count]


def rank_cold_start(
    candidates: list[dict],
    count: int = DEFAULT_RECOMMENDATION_COUNT,
) -> list[ScoredCandidate]:
    """
    Ranking for users with no viewing history: declared rating only,
    always diversified with COLD_START_DIVERSITY_FACTOR.
    """
    logger.debug(f"Using cold start ranking for {len(candidates)} candidates")
    scored = _sort_by_score([
        ScoredCandidate(
            item=item,
            score=parse_rating(item.get('rating')) or 0.0,
            breakdown={'cold_start': True},
        )
        for item in candidates
    ])
    return apply_diversity_filter(scored, count, COLD_START_DIVERSITY_FACTOR)


def _overlap_ratio(reference: list, candidate: list) -> float:
    overlap = sum(1 for value in reference if value in candidate)
    return overlap / max(len(reference), 1)


def content_similarity(reference: dict, candidate: dict) -> float:
    """
    Attribute overlap between two items, independent of user preferences.
    Overlaps are measured relative to the reference item's values.
    """
    similarity = _overlap_ratio(item_genres(reference), item_genres(candidate)) * SIMILARITY_WEIGHTS['genre']

    ref_actors, cand_actors = reference.get('actors'), candidate.get('actors')
    if ref_actors and cand_actors:
        similarity += _overlap_ratio(ref_actors, cand_actors) * SIMILARITY_WEIGHTS['actor']

    if reference.get('director') and candidate.get('director') == reference['director']:
        similarity += SIMILARITY_WEIGHTS['director']

    ref_themes, cand_themes = reference.get('themes'), candidate.get('themes')
    if ref_themes and cand_themes:
        similarity += _overlap_ratio(ref_themes, cand_themes) * SIMILARITY_WEIGHTS['theme']

    return similarity


def rank_more_like_this(
    reference: dict,
    candidates: list[dict],
    watched: set | None = None,
    count: int = DEFAULT_SIMILAR_COUNT,
) -> list[ScoredCandidate]:
    """Items most similar to `reference`, excluding itself and anything watched."""
    watched = watched or set()
    reference_id = reference.get('id')
    scored = []
    for item in candidates:
        if item.get('id') == reference_id or item.get('id') in watched:
            continue
        similarity = content_similarity(reference, item)
        scored.append(ScoredCandidate(item=item, score=similarity, breakdown={'similarity': similarity}))

    return _sort_by_score(scored)[:count]


def recent_genre_weights(events: Iterable[ViewEvent]) -> dict[Any, float]:
    """Transient genre accumulator built from the given view events only."""
    weights: dict[Any, float] = defaultdict(float)
    for event in events:
        genres = event.item.get('genres')
        if not isinstance(genres, list):
            continue
        for genre in genres:
            weights[genre] += view_weight(event.completed)
    return dict(weights)


def rank_trending(
    recent_events: list[ViewEvent],
    candidates: list[dict],
    watched: set | None = None,
    count: int = DEFAULT_TRENDING_COUNT,
) -> list[ScoredCandidate]:
    """
    Rank unwatched candidates by the summed recent-genre weight of their genres.
    No normalization and no other categories.
    """
    genre_weights = recent_genre_weights(recent_events)
    scored = [
        ScoredCandidate(
            item=item,
            score=sum(genre_weights.get(genre, 0.0) for genre in item_genres(item)),
            breakdown={'trending': True},
        )
        for item in filter_candidates(candidates, watched)
    ]
    return _sort_by_score(scored)[:count]


def rank_by_genre(
    preferences: PreferenceStore,
    genre: str,
    candidates: list[dict],
    watched: set | None = None,
    count: int = DEFAULT_GENRE_COUNT,
) -> list[ScoredCandidate]:
    """Unwatched candidates tagged with `genre`, ranked by full relevance score."""
    scorer = Scorer(preferences)
    scored = [
        scorer.score_candidate(item)
        for item in filter_candidates(candidates, watched)
        if genre in item_genres(item)
    ]
    return _sort_by_score(scored)[:count]
