"""SQLite connection handling."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "foreign_keys": "ON",
    "temp_store": "MEMORY",
}
SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class SQLiteDatabase:
    """A single lazily opened connection shared by all threads; every statement runs under one lock."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = self._open()
        return self._connection

    def _open(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        for name, value in PRAGMAS.items():
            conn.execute(f"PRAGMA {name}={value}")
        return conn

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        # The connection is shared across request threads; cursors must not interleave.
        with self._lock:
            return self.connection.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.connection.execute(sql, params).fetchone()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit when the block finishes, roll back if it raises."""
        with self._lock:
            conn = self.connection
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        script = schema_sql if schema_sql is not None else SCHEMA_PATH.read_text(encoding="utf-8")
        with self._lock:
            self.connection.executescript(script)


__all__ = ["SQLiteDatabase"]
