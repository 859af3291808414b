import sqlite3
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from .config import DB_PATH

logger = logging.getLogger(__name__)


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """
    Parse ISO format timestamp string to naive datetime.

    Ensures consistency by always returning naive datetime regardless of
    whether the stored timestamp had timezone info.
    """
    dt = datetime.fromisoformat(timestamp_str)
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


class Connection:
    """
    Lazily-opened SQLite connection with nested transaction tracking.

    The engine is single-writer, so one connection per process is enough;
    only the outermost get_db() block commits or rolls back.
    """

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self.transaction_depth = 0

    def get(self) -> sqlite3.Connection:
        if self._conn is None:
            Path(self._db_path).parent.mkdir(exist_ok=True, parents=True)
            self._conn = sqlite3.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA busy_timeout = 5000")
            self._conn.execute("PRAGMA journal_mode = WAL")
            logger.debug(f"Opened state database at {self._db_path}")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("State database closed")
        self.transaction_depth = 0


_connection: Connection | None = None


def _get_connection() -> Connection:
    global _connection
    if _connection is None:
        _connection = Connection(DB_PATH)
    return _connection


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit

    Only the outermost context commits/rollbacks; inner contexts are no-ops
    for transaction control.
    """
    holder = _get_connection()
    conn = holder.get()

    is_outermost = holder.transaction_depth == 0
    holder.transaction_depth += 1

    try:
        yield conn

        if is_outermost and not read_only:
            conn.commit()

    except Exception:
        if is_outermost:
            conn.rollback()
        raise

    finally:
        holder.transaction_depth = max(0, holder.transaction_depth - 1)


def close_db() -> None:
    """Close the shared connection. Call on application shutdown."""
    global _connection
    if _connection is not None:
        _connection.close()
        _connection = None


def init_db() -> None:
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT,         -- JSON blob
                updated_at TEXT
            );
        """)


def load_json(val):
    """Safely load a JSON object from a db field; None when empty or unparseable."""
    if not val:
        return None
    if isinstance(val, dict):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return None


def save_state(key: str, data: dict) -> None:
    """Write a JSON-serializable value into the key-value slot `key`."""
    init_db()
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO kv_store (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, json.dumps(data), datetime.now().isoformat()))


def load_state(key: str) -> dict | None:
    """Read the value stored under `key`; None if absent or not valid JSON."""
    init_db()
    with get_db(read_only=True) as conn:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()

    if not row:
        return None
    return load_json(row['value'])


def delete_state(key: str) -> bool:
    init_db()
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return cursor.rowcount > 0
