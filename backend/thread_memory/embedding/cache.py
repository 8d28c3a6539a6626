"""Content-hash cache in front of an embedding adapter."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Sequence

from thread_memory.core.logging import get_logger
from thread_memory.embedding.provider import EmbeddingAdapter
from thread_memory.models.entities import Embedding
from thread_memory.utils.hashing import content_key
from thread_memory.utils.text import preview

logger = get_logger(__name__)


class CachedEmbeddingAdapter:
    """Same interface as ``EmbeddingAdapter``; identical text is embedded once.

    Keys include the model name so switching models never serves stale vectors.
    Misses inside one ``embed_batch`` call go to the provider as a single batch.
    """

    def __init__(self, inner: EmbeddingAdapter, max_entries: int = 2048) -> None:
        self.inner = inner
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Embedding] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def model(self) -> str:
        return self.inner.model

    @property
    def dim(self) -> int:
        return self.inner.dim

    def embed(self, text: str) -> Embedding:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str], batch_size: int | None = None) -> list[Embedding]:
        if not texts:
            return []
        keys = [content_key(self.model, text) for text in texts]
        results: dict[str, Embedding] = {}
        missing: list[str] = []
        missing_keys: list[str] = []
        with self._lock:
            for key, text in zip(keys, texts):
                cached = self._entries.get(key)
                if cached is not None:
                    self._entries.move_to_end(key)
                    results[key] = cached
                    self.hits += 1
                    logger.debug("Embedding cache hit for text: %s", preview(text))
                elif key not in missing_keys:
                    missing.append(text)
                    missing_keys.append(key)
        if missing:
            fresh = self.inner.embed_batch(missing, batch_size=batch_size)
            with self._lock:
                for key, embedding in zip(missing_keys, fresh):
                    results[key] = embedding
                    self._store(key, embedding)
                    self.misses += 1
        return [results[key] for key in keys]

    def _store(self, key: str, embedding: Embedding) -> None:
        if self.max_entries <= 0:
            return
        self._entries[key] = embedding
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


__all__ = ["CachedEmbeddingAdapter"]
