import importlib
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeClock:
    """Controllable replacement for datetime.now."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_item(item_id, **fields) -> dict:
    item = {"id": item_id, "title": f"Title {item_id}"}
    item.update(fields)
    return item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("STREAMVAULT_DB", str(db_path))
    import streamvault_rec.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the connection after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("STREAMVAULT_DB", str(db_path))

    import streamvault_rec.config as config
    import streamvault_rec.database as database

    importlib.reload(config)
    importlib.reload(database)

    yield database
    database.close_db()


@pytest.fixture
def engine(fresh_db, clock):
    """Persistent engine backed by the temporary database."""
    from streamvault_rec.engine import RecommendationEngine

    return RecommendationEngine(clock=clock)


@pytest.fixture
def memory_engine(clock):
    """Engine with persistence disabled."""
    from streamvault_rec.engine import RecommendationEngine

    return RecommendationEngine(persist=False, clock=clock)
