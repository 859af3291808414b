"""
Translate view and rating events into preference updates.

Every value of every populated attribute receives the full event weight;
nothing is divided among multiple genres/actors/themes at write time.
Averaging happens only when scoring (see scoring.py).
"""
import copy
import math
import logging
from datetime import datetime
from typing import Any

from .profile import CATEGORY_ATTRS, PreferenceStore, UserState, ViewEvent, RatingEntry, item_values
from .config import (
    VIEW_WEIGHT_COMPLETED,
    VIEW_WEIGHT_PARTIAL,
    RATING_SCALE,
    MIN_VALID_RATING,
    MAX_VALID_RATING,
)

logger = logging.getLogger(__name__)


def view_weight(completed: bool) -> float:
    return VIEW_WEIGHT_COMPLETED if completed else VIEW_WEIGHT_PARTIAL


def update_preferences(store: PreferenceStore, item: dict, weight: float = 1.0) -> None:
    """Add `weight` to each attribute value present on the item."""
    for category in CATEGORY_ATTRS:
        for value in item_values(item, category):
            store.add(category, value, weight)


def find_item_in_history(history: list[ViewEvent], item_id: Any) -> dict | None:
    """Snapshot of the first view of `item_id` in insertion order, if any."""
    for event in history:
        if event.item_id == item_id:
            return event.item
    return None


def record_view(
    state: UserState,
    item: dict,
    now: datetime,
    watch_duration: float | None = None,
    completed: bool = False,
) -> ViewEvent:
    """Append a view event, mark the item watched and accumulate its attributes."""
    event = ViewEvent(
        item_id=item.get('id'),
        item=copy.deepcopy(item),
        timestamp=now,
        watch_duration=watch_duration,
        completed=bool(completed),
    )
    state.history.append(event)
    state.watched.add(event.item_id)
    update_preferences(state.preferences, event.item, view_weight(event.completed))
    return event


def record_rating(state: UserState, item_id: Any, rating: float, now: datetime) -> bool:
    """
    Upsert the rating for `item_id`.

    Preferences are only updated when the item appears in the view history;
    a rating for an unseen item is stored but carries no preference weight.
    Non-finite ratings (nan, inf) are rejected and leave the state unchanged.

    Returns:
        True if preferences were updated
    """
    if not math.isfinite(rating):
        logger.warning(f"Ignoring non-finite rating {rating} for {item_id}")
        return False

    if not MIN_VALID_RATING <= rating <= MAX_VALID_RATING:
        logger.warning(
            f"Rating {rating} for {item_id} is outside {MIN_VALID_RATING}-{MAX_VALID_RATING}; "
            f"recording it anyway"
        )

    state.ratings[item_id] = RatingEntry(rating=rating, timestamp=now)

    item = find_item_in_history(state.history, item_id)
    if item is None:
        logger.debug(f"Rating for {item_id} has no viewing history; preferences unchanged")
        return False

    # Accumulators never shrink, so negative ratings contribute nothing
    update_preferences(state.preferences, item, max(rating, 0) / RATING_SCALE)
    return True
