import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .database import parse_timestamp_naive

logger = logging.getLogger(__name__)

# Attribute category -> PreferenceStore mapping name (also the export key)
CATEGORY_ATTRS = {
    'genre': 'genres',
    'actor': 'actors',
    'director': 'directors',
    'theme': 'themes',
    'source': 'sources',
    'decade': 'decades',
}


def parse_rating(value: Any) -> float | None:
    """Parse a declared rating; None when absent or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(rating):
        return None
    return rating


def decade_of(year: Any) -> int | None:
    """Derive the decade (e.g. 1994 -> 1990) from a year, tolerating numeric strings."""
    if not year or isinstance(year, bool):
        return None
    try:
        value = int(float(year))
    except (TypeError, ValueError):
        return None
    return (value // 10) * 10


def item_genres(item: dict) -> list:
    """Genres of an item; falls back to a singular 'genre' field when no list is present."""
    genres = item.get('genres')
    if isinstance(genres, list):
        return list(genres)
    genre = item.get('genre')
    return [genre] if genre else []


def _list_field(item: dict, name: str) -> list:
    values = item.get(name)
    return list(values) if isinstance(values, list) else []


def _single_field(item: dict, name: str) -> list:
    value = item.get(name)
    return [value] if value else []


def item_values(item: dict, category: str) -> list:
    """All values an item contributes to an attribute category."""
    if category == 'genre':
        return item_genres(item)
    if category == 'actor':
        return _list_field(item, 'actors')
    if category == 'director':
        return _single_field(item, 'director')
    if category == 'theme':
        return _list_field(item, 'themes')
    if category == 'source':
        return _single_field(item, 'source')
    if category == 'decade':
        decade = decade_of(item.get('year'))
        return [decade] if decade is not None else []
    raise ValueError(f"Unknown attribute category: {category}")


@dataclass
class PreferenceStore:
    """Accumulated affinity weights per attribute value. Weights only ever grow."""

    genres: dict[str, float] = field(default_factory=dict)
    actors: dict[str, float] = field(default_factory=dict)
    directors: dict[str, float] = field(default_factory=dict)
    themes: dict[str, float] = field(default_factory=dict)
    sources: dict[str, float] = field(default_factory=dict)
    decades: dict[int, float] = field(default_factory=dict)

    def mapping(self, category: str) -> dict:
        """Accumulator for a category ('genre') or mapping name ('genres')."""
        attr = CATEGORY_ATTRS.get(category, category)
        if attr not in CATEGORY_ATTRS.values():
            raise KeyError(category)
        return getattr(self, attr)

    def add(self, category: str, value: Any, weight: float) -> None:
        table = self.mapping(category)
        table[value] = table.get(value, 0.0) + weight

    def total(self, category: str) -> float:
        return sum(self.mapping(category).values())

    def top(self, category: str, limit: int = 5) -> list[dict]:
        """Highest-weighted values in a category as [{'name', 'weight'}]."""
        try:
            table = self.mapping(category)
        except KeyError:
            return []
        ranked = sorted(table.items(), key=lambda x: -x[1])[:limit]
        return [{'name': name, 'weight': weight} for name, weight in ranked]

    def is_empty(self) -> bool:
        return not any(getattr(self, attr) for attr in CATEGORY_ATTRS.values())

    def to_dict(self) -> dict[str, dict]:
        return {attr: dict(getattr(self, attr)) for attr in CATEGORY_ATTRS.values()}

    @classmethod
    def from_dict(cls, payload: dict | None) -> "PreferenceStore":
        """
        Rebuild from persisted JSON. Decade keys come back as strings and are
        restored to ints. Raises ValueError on malformed tables or negative weights.
        """
        payload = payload or {}
        if not isinstance(payload, dict):
            raise ValueError(f"preferences must be a mapping, got {type(payload).__name__}")

        tables = {}
        for attr in CATEGORY_ATTRS.values():
            raw = payload.get(attr) or {}
            if not isinstance(raw, dict):
                raise ValueError(f"preferences.{attr} must be a mapping")
            table = {}
            for key, weight in raw.items():
                weight = float(weight)
                if weight < 0 or math.isnan(weight):
                    raise ValueError(f"preferences.{attr}[{key!r}] has invalid weight {weight}")
                table[int(key) if attr == 'decades' else key] = weight
            tables[attr] = table
        return cls(**tables)


@dataclass(frozen=True)
class ViewEvent:
    """One recorded view. `item` is a snapshot taken at view time."""
    item_id: Any
    item: dict
    timestamp: datetime
    watch_duration: float | None = None
    completed: bool = False

    def to_dict(self) -> dict:
        return {
            'item_id': self.item_id,
            'item': copy.deepcopy(self.item),
            'timestamp': self.timestamp.isoformat(),
            'watch_duration': self.watch_duration,
            'completed': self.completed,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ViewEvent":
        item = payload.get('item') or {}
        if not isinstance(item, dict):
            raise ValueError("view event item must be a mapping")
        item_id = payload.get('item_id', item.get('id'))
        if item_id is None:
            raise ValueError("view event has no item id")
        return cls(
            item_id=item_id,
            item=copy.deepcopy(item),
            timestamp=parse_timestamp_naive(payload['timestamp']),
            watch_duration=payload.get('watch_duration'),
            completed=bool(payload.get('completed', False)),
        )


@dataclass(frozen=True)
class RatingEntry:
    rating: float
    timestamp: datetime


def _parse_history(raw: Any) -> list[ViewEvent]:
    if not isinstance(raw, list):
        raise ValueError("viewing_history must be a list")
    return [ViewEvent.from_dict(v) for v in raw]


def _parse_ratings(raw: Any) -> dict[Any, RatingEntry]:
    """Accepts a list of {item_id, rating, timestamp} or the older mapping keyed by id."""
    if isinstance(raw, dict):
        raw = [{'item_id': key, **entry} for key, entry in raw.items()]
    if not isinstance(raw, list):
        raise ValueError("user_ratings must be a list")

    ratings = {}
    for entry in raw:
        rating = float(entry['rating'])
        if not math.isfinite(rating):
            raise ValueError(f"rating for {entry['item_id']!r} is not finite")
        ratings[entry['item_id']] = RatingEntry(
            rating=rating,
            timestamp=parse_timestamp_naive(entry['timestamp']),
        )
    return ratings


def _parse_watched(raw: Any) -> set:
    if not isinstance(raw, list):
        raise ValueError("watched_movies must be a list")
    return set(raw)


# Serialized key -> (UserState field, parser)
_STATE_FIELDS = {
    'viewing_history': ('history', _parse_history),
    'user_ratings': ('ratings', _parse_ratings),
    'watched_movies': ('watched', _parse_watched),
    'preferences': ('preferences', PreferenceStore.from_dict),
}


@dataclass
class UserState:
    """Everything one engine owns: view history, ratings, watched ids and preferences."""
    history: list[ViewEvent] = field(default_factory=list)
    ratings: dict[Any, RatingEntry] = field(default_factory=dict)
    watched: set = field(default_factory=set)
    preferences: PreferenceStore = field(default_factory=PreferenceStore)

    def to_dict(self) -> dict:
        return {
            'viewing_history': [event.to_dict() for event in self.history],
            'user_ratings': [
                {
                    'item_id': item_id,
                    'rating': entry.rating,
                    'timestamp': entry.timestamp.isoformat(),
                }
                for item_id, entry in self.ratings.items()
            ],
            'watched_movies': sorted(self.watched, key=str),
            'preferences': self.preferences.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict | None, strict: bool = True) -> "UserState":
        """
        Parse a persisted/exported state. Missing fields default to empty.

        With strict=True any malformed field raises ValueError, so an import
        can be rejected as a whole. With strict=False each malformed field is
        logged and defaults to empty while the others are kept.
        """
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            if strict:
                raise ValueError(f"state must be a mapping, got {type(payload).__name__}")
            logger.warning(f"Ignoring stored state of type {type(payload).__name__}")
            return cls()

        fields = {}
        for key, (attr, parse) in _STATE_FIELDS.items():
            raw = payload.get(key)
            if raw is None:
                continue
            try:
                fields[attr] = parse(raw)
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                if strict:
                    raise ValueError(f"Malformed {key}: {e}") from e
                logger.warning(f"Malformed {key} in stored state, using empty: {e}")

        return cls(**fields)
