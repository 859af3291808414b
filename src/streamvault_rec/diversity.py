import logging
import math
from collections import Counter, defaultdict

from .profile import decade_of, item_genres
from .scoring import ScoredCandidate
from .config import (
    DIVERSITY_ACCEPT_THRESHOLD,
    MIN_GUARANTEED_RESULTS,
    SOURCE_PENALTY_RATIO,
    UNKNOWN_CATEGORY,
)

logger = logging.getLogger(__name__)


def apply_diversity_filter(
    scored: list[ScoredCandidate],
    count: int,
    diversity_factor: float,
) -> list[ScoredCandidate]:
    """
    Select up to `count` candidates from a score-descending list, penalizing
    genres and sources that were already picked.

    The first MIN_GUARANTEED_RESULTS candidates are always accepted, so the
    output is never empty when candidates exist. Acceptance keeps the input
    order; adjusted scores are never used to re-sort.
    """
    selected: list[ScoredCandidate] = []
    genre_counts: dict[str, int] = defaultdict(int)
    source_counts: dict[str, int] = defaultdict(int)

    for candidate in scored:
        if len(selected) >= count:
            break

        # Only the singular genre field counts; list-only items share "unknown"
        genre = candidate.item.get('genre') or UNKNOWN_CATEGORY
        source = candidate.item.get('source') or UNKNOWN_CATEGORY

        genre_penalty = genre_counts[genre] * diversity_factor
        source_penalty = source_counts[source] * diversity_factor * SOURCE_PENALTY_RATIO
        adjusted = candidate.score - genre_penalty - source_penalty

        if adjusted > DIVERSITY_ACCEPT_THRESHOLD or len(selected) < MIN_GUARANTEED_RESULTS:
            selected.append(candidate)
            genre_counts[genre] += 1
            source_counts[source] += 1

    if len(selected) < min(count, len(scored)):
        logger.debug(
            f"Diversity filter returned {len(selected)}/{count} results "
            f"(factor {diversity_factor})"
        )

    return selected


def _entropy(items: list) -> float:
    """Shannon entropy as diversity measure."""
    if not items:
        return 0.0

    counts = Counter(items)
    total = len(items)
    probs = [c / total for c in counts.values()]
    return -sum(p * math.log2(p) for p in probs if p > 0)


def diversity_report(recommendations: list[ScoredCandidate]) -> dict:
    """
    Diversity metrics for a final recommendation list.
    Entropies are normalized to 0-1 against the list length.
    """
    if not recommendations:
        return {"diversity_score": 0.0}

    all_genres: list[str] = []
    all_sources: list[str] = []
    all_decades: list[int] = []

    for rec in recommendations:
        all_genres.extend(item_genres(rec.item))
        all_sources.append(rec.item.get('source') or UNKNOWN_CATEGORY)
        decade = decade_of(rec.item.get('year'))
        if decade is not None:
            all_decades.append(decade)

    n = len(recommendations)
    max_entropy = math.log2(n) if n > 1 else 1.0

    # Multi-genre items can push genre entropy past log2(n)
    genre_diversity = min(1.0, _entropy(all_genres) / max_entropy)
    source_diversity = _entropy(all_sources) / max_entropy
    decade_diversity = _entropy(all_decades) / max_entropy

    overall = (
        genre_diversity * 0.5 +
        source_diversity * 0.25 +
        decade_diversity * 0.25
    )

    return {
        "diversity_score": round(overall, 3),
        "genre_diversity": round(genre_diversity, 3),
        "source_diversity": round(source_diversity, 3),
        "decade_diversity": round(decade_diversity, 3),
        "unique_genres": len(set(all_genres)),
        "unique_sources": len(set(all_sources)),
        "decade_range": (min(all_decades), max(all_decades)) if all_decades else None,
    }
