import json
import logging
import sys
from types import SimpleNamespace

import pytest

from streamvault_rec import cli
from streamvault_rec.engine import RecommendationEngine

CATALOG = [
    {"id": 1, "title": "Heat", "genres": ["Crime", "Action"], "director": "Mann", "source": "Netflix", "year": 1995, "rating": 8.3},
    {"id": 2, "title": "Collateral", "genres": ["Crime", "Thriller"], "director": "Mann", "source": "Hulu", "year": 2004, "rating": 7.5},
    {"id": 3, "title": "Paddington", "genres": ["Family", "Comedy"], "source": "Max", "year": 2014, "rating": 7.3},
    {"id": 4, "title": "Thief", "genres": ["Crime"], "director": "Mann", "source": "Prime", "year": 1981, "rating": 7.4},
]


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(CATALOG))
    return str(path)


def _output_args(catalog_file, **overrides):
    args = dict(catalog=catalog_file, format="text", diversity_report=False)
    args.update(overrides)
    return SimpleNamespace(**args)


def _json_output(caplog):
    messages = [r.getMessage() for r in caplog.records if r.name == "streamvault_rec.cli"]
    return json.loads(messages[-1])


def test_main_dispatches_to_subcommand(monkeypatch):
    called = {}

    def fake_stats(args):
        called["command"] = args.command

    monkeypatch.setattr(cli, "cmd_stats", fake_stats)
    monkeypatch.setattr(sys, "argv", ["prog", "stats"])

    cli.main()

    assert called["command"] == "stats"


def test_cli_parses_recommend_args(monkeypatch):
    captured = {}

    def fake_recommend(args):
        captured.update(vars(args))

    monkeypatch.setattr(cli, "cmd_recommend", fake_recommend)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "prog",
            "recommend",
            "--limit",
            "5",
            "--min-rating",
            "7",
            "--diversity",
            "0",
            "--include-watched",
            "--catalog",
            "https://example.com/catalog.json",
            "--format",
            "json",
            "--diversity-report",
        ],
    )

    cli.main()

    assert captured["limit"] == 5
    assert captured["min_rating"] == 7.0
    assert captured["diversity"] == 0.0
    assert captured["include_watched"] is True
    assert captured["catalog"] == "https://example.com/catalog.json"
    assert captured["format"] == "json"
    assert captured["diversity_report"] is True


def test_cli_parses_rate_and_trending_args(monkeypatch):
    captured = {}
    monkeypatch.setattr(cli, "cmd_rate", lambda args: captured.setdefault("rate", args))
    monkeypatch.setattr(cli, "cmd_trending", lambda args: captured.setdefault("trending", args))

    monkeypatch.setattr(sys, "argv", ["prog", "rate", "tt-42", "8.5"])
    cli.main()
    monkeypatch.setattr(sys, "argv", ["prog", "-v", "trending", "--days", "3"])
    cli.main()

    assert captured["rate"].item_id == "tt-42"
    assert captured["rate"].rating == 8.5
    assert captured["trending"].days == 3.0
    assert captured["trending"].limit == 10
    assert captured["trending"].verbose is True


def test_cli_requires_subcommand(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prog"])

    with pytest.raises(SystemExit):
        cli.main()


def test_view_rate_and_recommend_end_to_end(fresh_db, catalog_file, caplog):
    caplog.set_level(logging.INFO)

    cli.cmd_view(SimpleNamespace(item_id="1", catalog=catalog_file, duration=6000.0, completed=True))
    cli.cmd_rate(SimpleNamespace(item_id="1", rating=9.0))

    engine = RecommendationEngine()
    assert engine.watched == frozenset({1})
    assert 1 in engine.ratings

    cli.cmd_recommend(
        _output_args(catalog_file, limit=3, min_rating=0, diversity=0.3, include_watched=False, format="json")
    )

    output = _json_output(caplog)
    assert [r["id"] for r in output][:2] == [4, 2]
    assert all(r["id"] != 1 for r in output)
    assert "genre" in output[0]["breakdown"]


def test_recommend_text_with_diversity_report(fresh_db, catalog_file, caplog):
    caplog.set_level(logging.INFO)

    cli.cmd_recommend(
        _output_args(catalog_file, limit=3, min_rating=0, diversity=0.3, include_watched=False, diversity_report=True)
    )

    assert "Recommended for you (3)" in caplog.text
    assert "1. Heat (1995)" in caplog.text
    assert "cold_start=True" in caplog.text
    assert "Diversity Report" in caplog.text


def test_view_unknown_item_exits(fresh_db, catalog_file, caplog):
    with pytest.raises(SystemExit):
        cli.cmd_view(SimpleNamespace(item_id="999", catalog=catalog_file, duration=None, completed=False))
    assert "not found in catalog" in caplog.text


def test_missing_catalog_exits(fresh_db, tmp_path):
    with pytest.raises(SystemExit):
        cli.cmd_recommend(
            _output_args(str(tmp_path / "nope.json"), limit=3, min_rating=0, diversity=0.3, include_watched=False)
        )


def test_similar_and_genre_commands(fresh_db, catalog_file, caplog):
    caplog.set_level(logging.INFO)

    cli.cmd_similar(_output_args(catalog_file, item_id="1", limit=2, format="json"))
    similar = _json_output(caplog)
    assert [r["id"] for r in similar] == [2, 4]

    cli.cmd_genre(_output_args(catalog_file, genre="Family", limit=5, format="json"))
    assert [r["id"] for r in _json_output(caplog)] == [3]


def test_ingest_records_known_events(fresh_db, catalog_file, tmp_path, caplog):
    caplog.set_level(logging.INFO)
    log_path = tmp_path / "views.json"
    log_path.write_text(json.dumps([
        {"id": 1, "completed": True, "duration": 6000},
        {"id": "3"},
        {"id": 404},
        "garbage",
    ]))

    cli.cmd_ingest(SimpleNamespace(file=str(log_path), catalog=catalog_file))

    engine = RecommendationEngine()
    assert [e.item_id for e in engine.viewing_history] == [1, 3]
    assert engine.viewing_history[0].completed is True
    assert "Skipped 1 events" in caplog.text
    assert "Recorded 2 views" in caplog.text


def test_stats_and_profile_output(fresh_db, catalog_file, caplog):
    caplog.set_level(logging.INFO)
    cli.cmd_view(SimpleNamespace(item_id="2", catalog=catalog_file, duration=None, completed=True))

    cli.cmd_stats(SimpleNamespace())
    assert "Total views: 1" in caplog.text
    assert "Last viewed: Collateral" in caplog.text

    cli.cmd_profile(SimpleNamespace(category="directors", limit=5))
    assert "Mann: 1.00" in caplog.text

    cli.cmd_profile(SimpleNamespace(category="themes", limit=5))
    assert "No themes preferences recorded yet" in caplog.text


def test_export_import_and_reset(fresh_db, catalog_file, tmp_path):
    export_path = tmp_path / "export.json"
    cli.cmd_view(SimpleNamespace(item_id="3", catalog=catalog_file, duration=None, completed=True))
    cli.cmd_export(SimpleNamespace(file=str(export_path)))

    exported = json.loads(export_path.read_text())
    assert exported["watched_movies"] == [3]
    assert exported["statistics"]["total_views"] == 1

    cli.cmd_reset(SimpleNamespace())
    assert RecommendationEngine().viewing_history == []

    cli.cmd_import(SimpleNamespace(file=str(export_path)))
    assert RecommendationEngine().watched == frozenset({3})


def test_import_rejects_malformed_file(fresh_db, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"viewing_history": "nope"}))

    with pytest.raises(SystemExit):
        cli.cmd_import(SimpleNamespace(file=str(bad)))

    with pytest.raises(SystemExit):
        cli.cmd_import(SimpleNamespace(file=str(tmp_path / "missing.json")))
