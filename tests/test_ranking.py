from datetime import datetime

import pytest

from conftest import make_item
from streamvault_rec.profile import PreferenceStore, ViewEvent
from streamvault_rec.ranking import (
    content_similarity,
    filter_candidates,
    rank_by_genre,
    rank_by_preference,
    rank_cold_start,
    rank_more_like_this,
    rank_trending,
    recent_genre_weights,
)

NOW = datetime(2024, 3, 1, 12, 0)


def _event(item, completed=True):
    return ViewEvent(item_id=item["id"], item=item, timestamp=NOW, completed=completed)


def test_filter_candidates_excludes_watched():
    candidates = [make_item(1), make_item(2), make_item(3)]

    assert [c["id"] for c in filter_candidates(candidates, watched={2})] == [1, 3]
    assert len(filter_candidates(candidates)) == 3


def test_filter_candidates_min_rating_drops_unrated():
    candidates = [make_item(1, rating=9), make_item(2, rating=6), make_item(3), make_item(4, rating="N/A")]

    assert [c["id"] for c in filter_candidates(candidates, min_rating=7)] == [1]
    assert len(filter_candidates(candidates, min_rating=0)) == 4


def test_rank_cold_start_orders_by_rating():
    candidates = [
        make_item("a", rating=7, genres=["Drama"], source="Hulu"),
        make_item("b", rating=9, genres=["Action"], source="Netflix"),
        make_item("c", genres=["Comedy"], source="Max"),
        make_item("d", rating=8, genres=["Horror"], source="Prime"),
    ]

    result = rank_cold_start(candidates, count=10)

    # Unrated "c" scores 0 and cannot clear the diversity threshold after the guaranteed slots
    assert [r.item_id for r in result] == ["b", "d", "a"]
    assert all(r.breakdown == {"cold_start": True} for r in result)
    assert result[0].score == 9


def test_rank_by_preference_prefers_matching_items():
    prefs = PreferenceStore(genres={"Action": 3.0, "Drama": 1.0})
    candidates = [
        make_item(1, genres=["Drama"]),
        make_item(2, genres=["Action"]),
        make_item(3, genres=["Comedy"]),
    ]

    result = rank_by_preference(prefs, candidates, count=3, diversity_factor=0)

    assert [r.item_id for r in result] == [2, 1, 3]
    assert result[0].breakdown["genre"] == pytest.approx(0.75)


def test_rank_by_preference_without_diversity_truncates():
    prefs = PreferenceStore(genres={"Action": 1.0})
    candidates = [make_item(i, genres=["Action"], rating=10 - i) for i in range(6)]

    result = rank_by_preference(prefs, candidates, count=4, diversity_factor=0)

    assert [r.item_id for r in result] == [0, 1, 2, 3]


def test_rank_by_preference_applies_diversity():
    prefs = PreferenceStore(genres={"Action": 1.0})
    candidates = [make_item(i, genres=["Action"]) for i in range(6)]

    result = rank_by_preference(prefs, candidates, count=6, diversity_factor=0.5)

    assert len(result) == 3


def test_content_similarity():
    reference = make_item(
        "ref",
        genres=["Action", "Sci-Fi"],
        actors=["A", "B"],
        director="D",
        themes=["space", "ai"],
    )
    close = make_item("x", genres=["Action", "Sci-Fi"], actors=["A"], director="D", themes=["space"])
    far = make_item("y", genres=["Sci-Fi", "Romance"], actors=["C"], director="E")

    # 0.4 + 0.5 * 0.25 + 0.2 + 0.5 * 0.15
    assert content_similarity(reference, close) == pytest.approx(0.8)
    assert content_similarity(reference, far) == pytest.approx(0.2)
    assert content_similarity({"genres": []}, far) == 0.0


def test_rank_more_like_this_excludes_reference_and_watched():
    reference = make_item(1, genres=["Action"], actors=["A", "B"], director="D", themes=["heist"])
    candidates = [
        reference,
        make_item(2, genres=["Action"], actors=["A"], director="D", themes=["heist"]),
        make_item(3, genres=["Action"], actors=["A", "B"], director="D", themes=["heist"]),
        make_item(4, genres=["Drama"]),
        make_item(5, genres=["Action"]),
    ]

    result = rank_more_like_this(reference, candidates, watched={3}, count=6)

    assert [r.item_id for r in result] == [2, 5, 4]
    assert result[0].score == pytest.approx(0.875)
    assert result[1].breakdown == {"similarity": pytest.approx(0.4)}
    assert result[2].score == 0.0


def test_rank_more_like_this_respects_count():
    reference = make_item(0, genres=["Action"])
    candidates = [make_item(i, genres=["Action"]) for i in range(1, 10)]

    assert len(rank_more_like_this(reference, candidates, count=2)) == 2


def test_recent_genre_weights_uses_genres_list_only():
    events = [
        _event(make_item(1, genres=["Action", "Drama"]), completed=True),
        _event(make_item(2, genres=["Action"]), completed=False),
        _event(make_item(3, genre="Horror")),
    ]

    assert recent_genre_weights(events) == {"Action": 1.5, "Drama": 1.0}


def test_rank_trending_sums_recent_genre_weights():
    events = [
        _event(make_item(1, genres=["Action"])),
        _event(make_item(2, genres=["Action", "Comedy"]), completed=False),
    ]
    candidates = [
        make_item(1, genres=["Action"]),
        make_item(10, genres=["Comedy"]),
        make_item(11, genres=["Action", "Comedy"]),
        make_item(12, genres=["Drama"]),
        make_item(13, genre="Action"),
    ]

    result = rank_trending(events, candidates, watched={1, 2}, count=10)

    assert [r.item_id for r in result] == [11, 13, 10, 12]
    assert result[0].score == pytest.approx(2.0)
    assert result[1].score == pytest.approx(1.5)
    assert all(r.breakdown == {"trending": True} for r in result)


def test_rank_by_genre_filters_and_scores():
    prefs = PreferenceStore(genres={"Horror": 1.0}, directors={"Carpenter": 2.0})
    candidates = [
        make_item(1, genres=["Horror"], director="Carpenter"),
        make_item(2, genres=["Horror"]),
        make_item(3, genres=["Comedy"], director="Carpenter"),
        make_item(4, genre="Horror"),
        make_item(5, genres=["Horror"], director="Carpenter"),
    ]

    result = rank_by_genre(prefs, "Horror", candidates, watched={5}, count=10)

    assert [r.item_id for r in result] == [1, 2, 4]
    assert result[0].score > result[1].score
    assert "genre" in result[0].breakdown


def test_rank_by_genre_unknown_genre_is_empty():
    prefs = PreferenceStore(genres={"Horror": 1.0})

    assert rank_by_genre(prefs, "Musical", [make_item(1, genres=["Horror"])]) == []
