"""Persistence collaborator for threads, text units and embeddings."""

from __future__ import annotations

import uuid
from array import array
from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence

import orjson

from thread_memory.core.logging import get_logger
from thread_memory.models.entities import (
    ENTITY_KINDS,
    ChatTurn,
    Embedding,
    EntitySet,
    KeywordSet,
    Role,
    TextUnit,
    ThreadSummary,
)
from thread_memory.storage.sqlite import SQLiteDatabase
from thread_memory.utils.clock import from_ms, now_ms, to_ms

logger = get_logger(__name__)

_UNIT_COLUMNS = "id, thread_id, user_id, role, text, created_at"


class ThreadNotFound(LookupError):
    """Thread is missing or owned by another user."""


class Embedder(Protocol):
    model: str

    def embed_batch(self, texts: Sequence[str], batch_size: int | None = None) -> list[Embedding]:
        ...


class MemoryStore:
    """SQLite-backed store exposing the narrow interface the retrieval core needs."""

    def __init__(self, db: SQLiteDatabase, embedder: Embedder | None = None) -> None:
        self.db = db
        self.embedder = embedder

    # Threads ----------------------------------------------------------

    def create_thread(self, user_id: str, title: str | None = None, thread_id: str | None = None) -> str:
        thread_id = thread_id or _new_id("thr")
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO threads (id, user_id, title, created_at) VALUES (?, ?, ?, ?)",
                (thread_id, user_id, title, now_ms()),
            )
        return thread_id

    def require_thread(self, thread_id: str, user_id: str) -> None:
        row = self.db.query_one("SELECT 1 FROM threads WHERE id = ? AND user_id = ?", (thread_id, user_id))
        if row is None:
            raise ThreadNotFound(f"Thread {thread_id} not found or access denied")

    def list_threads(self, user_id: str) -> list[dict[str, Any]]:
        rows = self.db.query(
            "SELECT id, title, created_at FROM threads WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        return [{"id": row["id"], "title": row["title"], "created_at": from_ms(row["created_at"])} for row in rows]

    # Text units -------------------------------------------------------

    def add_unit(
        self,
        thread_id: str,
        user_id: str,
        text: str,
        role: Role = "user",
        meta: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> TextUnit:
        return self.add_units(thread_id, user_id, [text], role=role, meta=meta, created_at=created_at)[0]

    def add_units(
        self,
        thread_id: str,
        user_id: str,
        texts: Sequence[str],
        role: Role = "document",
        meta: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> list[TextUnit]:
        """Insert units sharing one timestamp; insertion order breaks ties on read."""
        stamp = to_ms(created_at) if created_at is not None else now_ms()
        meta_json = orjson.dumps(meta).decode("utf-8") if meta else None
        units = [
            TextUnit(
                id=_new_id("txt"),
                thread_id=thread_id,
                user_id=user_id,
                text=text,
                created_at=from_ms(stamp),
                role=role,
            )
            for text in texts
        ]
        with self.db.transaction() as conn:
            conn.executemany(
                f"INSERT INTO text_units ({_UNIT_COLUMNS}, meta_json) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [(unit.id, thread_id, user_id, role, unit.text, stamp, meta_json) for unit in units],
            )
        return units

    def get_unit(self, unit_id: str) -> TextUnit | None:
        row = self.db.query_one(f"SELECT {_UNIT_COLUMNS} FROM text_units WHERE id = ?", (unit_id,))
        return _row_to_unit(row) if row else None

    def load_pool(self, thread_id: str) -> list[TextUnit]:
        """Every unit of the thread, oldest first."""
        rows = self.db.query(
            f"SELECT {_UNIT_COLUMNS} FROM text_units WHERE thread_id = ? ORDER BY created_at ASC, rowid ASC",
            (thread_id,),
        )
        return [_row_to_unit(row) for row in rows]

    def thread_messages(self, thread_id: str) -> list[TextUnit]:
        return [unit for unit in self.load_pool(thread_id) if unit.role in ("user", "assistant")]

    def recent_turns(self, thread_id: str, limit: int, exclude_ids: Iterable[str] = ()) -> tuple[list[ChatTurn], set[str]]:
        """Last ``limit`` user/assistant messages as turns, plus their ids."""
        if limit <= 0:
            return [], set()
        excluded = set(exclude_ids)
        messages = [unit for unit in self.thread_messages(thread_id) if unit.id not in excluded][-limit:]
        return [ChatTurn(role=unit.role, content=unit.text) for unit in messages], {unit.id for unit in messages}

    # Embeddings -------------------------------------------------------

    def load_embeddings(self, unit_ids: Sequence[str]) -> dict[str, Embedding]:
        """Stored embeddings for ``unit_ids``; missing ones are computed in one batch.

        Only vectors of the embedder's model are returned, so callers never mix
        model versions.
        """
        if not unit_ids:
            return {}
        model = self.embedder.model if self.embedder is not None else None
        found = self._fetch_embeddings(unit_ids, model)
        missing = [unit_id for unit_id in dict.fromkeys(unit_ids) if unit_id not in found]
        if missing and self.embedder is not None:
            units = [unit for unit in map(self.get_unit, missing) if unit is not None]
            if units:
                logger.info("Embedding %s units lazily with %s", len(units), self.embedder.model)
                computed = dict(zip((unit.id for unit in units), self.embedder.embed_batch([u.text for u in units])))
                self.save_embeddings(computed)
                found.update(computed)
        return found

    def save_embeddings(self, embeddings: dict[str, Embedding]) -> None:
        stamp = now_ms()
        with self.db.transaction() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO embeddings (unit_id, model, dim, vector, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (unit_id, embedding.model, embedding.dim, array("f", embedding.vector).tobytes(), stamp)
                    for unit_id, embedding in embeddings.items()
                ],
            )

    def _fetch_embeddings(self, unit_ids: Sequence[str], model: str | None) -> dict[str, Embedding]:
        placeholders = ",".join("?" for _ in unit_ids)
        sql = f"SELECT unit_id, model, vector FROM embeddings WHERE unit_id IN ({placeholders})"
        params: list[Any] = list(unit_ids)
        if model is not None:
            sql += " AND model = ?"
            params.append(model)
        found: dict[str, Embedding] = {}
        for row in self.db.query(sql, params):
            floats = array("f")
            floats.frombytes(row["vector"])
            found[row["unit_id"]] = Embedding.of(floats, row["model"])
        return found

    # Derived data -----------------------------------------------------

    def save_keywords(
        self,
        unit_id: str,
        keywords: KeywordSet,
        tags: Sequence[str] = (),
        entities: EntitySet | None = None,
    ) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO unit_keywords (unit_id, keywords_json, tags_json, entities_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    unit_id,
                    orjson.dumps(keywords.as_list()).decode("utf-8"),
                    orjson.dumps(list(tags)).decode("utf-8"),
                    orjson.dumps(entities.as_dict()).decode("utf-8") if entities else None,
                    now_ms(),
                ),
            )

    def get_keywords(self, unit_id: str) -> KeywordSet:
        row = self.db.query_one("SELECT keywords_json FROM unit_keywords WHERE unit_id = ?", (unit_id,))
        if row is None:
            return KeywordSet()
        return KeywordSet(terms=tuple(orjson.loads(row["keywords_json"])))

    def get_entities(self, unit_id: str) -> EntitySet:
        row = self.db.query_one("SELECT entities_json FROM unit_keywords WHERE unit_id = ?", (unit_id,))
        if row is None or not row["entities_json"]:
            return EntitySet()
        stored = orjson.loads(row["entities_json"])
        return EntitySet(**{kind: tuple(stored.get(kind, ())) for kind in ENTITY_KINDS})

    def get_summary(self, thread_id: str) -> ThreadSummary | None:
        row = self.db.query_one(
            "SELECT short_summary, long_summary FROM summaries WHERE thread_id = ?",
            (thread_id,),
        )
        if row is None:
            return None
        return ThreadSummary(short=row["short_summary"] or "", long=row["long_summary"] or "")

    def save_summary(self, thread_id: str, summary: ThreadSummary) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO summaries (thread_id, short_summary, long_summary, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (thread_id, summary.short, summary.long, now_ms()),
            )


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _row_to_unit(row: Any) -> TextUnit:
    return TextUnit(
        id=row["id"],
        thread_id=row["thread_id"],
        user_id=row["user_id"],
        text=row["text"],
        created_at=from_ms(row["created_at"]),
        role=row["role"],
    )


__all__ = ["MemoryStore", "ThreadNotFound"]
