from dataclasses import dataclass, field
import logging
from typing import Any

from .profile import PreferenceStore, item_values, parse_rating
from .config import SCORE_WEIGHTS, RATING_SCALE

logger = logging.getLogger(__name__)


@dataclass
class AttributeConfig:
    """Configuration for scoring one preference category."""
    name: str             # category, also the breakdown key, e.g. "genre"
    weight: float         # from SCORE_WEIGHTS
    averaged: bool        # multi-valued categories average over the item's values


ATTRIBUTE_CONFIGS: list[AttributeConfig] = [
    AttributeConfig(name='genre', weight=SCORE_WEIGHTS['genre'], averaged=True),
    AttributeConfig(name='actor', weight=SCORE_WEIGHTS['actor'], averaged=True),
    AttributeConfig(name='director', weight=SCORE_WEIGHTS['director'], averaged=False),
    AttributeConfig(name='theme', weight=SCORE_WEIGHTS['theme'], averaged=True),
    AttributeConfig(name='source', weight=SCORE_WEIGHTS['source'], averaged=False),
    AttributeConfig(name='decade', weight=SCORE_WEIGHTS['decade'], averaged=False),
]


@dataclass
class ScoredCandidate:
    item: dict
    score: float
    breakdown: dict[str, Any] = field(default_factory=dict)

    @property
    def item_id(self) -> Any:
        return self.item.get('id')

    @property
    def title(self) -> str:
        return self.item.get('title') or str(self.item_id)


def rating_boost(item: dict) -> float:
    """Quality prior from the item's declared rating, independent of user history."""
    rating = parse_rating(item.get('rating'))
    return (rating or 0.0) / RATING_SCALE


class Scorer:
    """
    Relevance of catalog items against a PreferenceStore.

    Each category score is the share of that category's total preference
    mass carried by the item's values, so every sub-score lies in [0, 1].
    Category totals are snapshotted at construction; build a new Scorer
    after the store changes.
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        attribute_configs: list[AttributeConfig] | None = None,
        rating_weight: float = SCORE_WEIGHTS['rating'],
    ):
        self.preferences = preferences
        self.attribute_configs = attribute_configs or ATTRIBUTE_CONFIGS
        self.rating_weight = rating_weight
        self._totals = {
            config.name: preferences.total(config.name) for config in self.attribute_configs
        }

    def category_score(self, item: dict, config: AttributeConfig) -> float:
        total = self._totals[config.name]
        if total == 0:
            return 0.0

        values = item_values(item, config.name)
        if not values:
            return 0.0

        table = self.preferences.mapping(config.name)
        if not config.averaged:
            return table.get(values[0], 0.0) / total

        share = sum(table.get(value, 0.0) / total for value in values)
        return share / len(values)

    def breakdown(self, item: dict) -> dict[str, float]:
        """Unweighted sub-scores per category plus the rating prior."""
        scores = {config.name: self.category_score(item, config) for config in self.attribute_configs}
        scores['rating'] = rating_boost(item)
        return scores

    def score(self, item: dict) -> float:
        return self.combine(self.breakdown(item))

    def combine(self, breakdown: dict[str, float]) -> float:
        total = sum(breakdown[config.name] * config.weight for config in self.attribute_configs)
        return total + breakdown['rating'] * self.rating_weight

    def score_candidate(self, item: dict) -> ScoredCandidate:
        breakdown = self.breakdown(item)
        return ScoredCandidate(item=item, score=self.combine(breakdown), breakdown=breakdown)
