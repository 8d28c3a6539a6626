"""Tests for the embedding adapter and cache."""

from __future__ import annotations

import logging

import pytest

from conftest import ScriptedEmbeddingBackend
from thread_memory.core.errors import InvalidInput, ProviderUnavailable
from thread_memory.embedding.cache import CachedEmbeddingAdapter
from thread_memory.embedding.provider import EmbeddingAdapter, HashedEmbeddingBackend


def test_hashed_backend_is_normalized_and_deterministic() -> None:
    backend = HashedEmbeddingBackend(dim=64)
    first, second = backend.embed_texts(["hello world", "hello world"])
    assert len(first) == 64
    assert first == second
    assert abs(sum(value * value for value in first) - 1.0) < 1e-6


def test_batch_preserves_order(no_wait_retry) -> None:
    backend = ScriptedEmbeddingBackend({"a": [1.0, 0.0], "b": [0.0, 1.0], "c": [1.0, 1.0]})
    adapter = EmbeddingAdapter(backend, batch_size=2, retry_policy=no_wait_retry(3))
    embeddings = adapter.embed_batch(["c", "a", "b"])
    assert [e.vector for e in embeddings] == [(1.0, 1.0), (1.0, 0.0), (0.0, 1.0)]
    assert all(e.model == "test-model" for e in embeddings)
    assert backend.calls == [["c", "a"], ["b"]]


def test_recovers_after_two_unavailable_errors(no_wait_retry) -> None:
    backend = ScriptedEmbeddingBackend({"hello": [0.6, 0.8]}, failures=2)
    adapter = EmbeddingAdapter(backend, retry_policy=no_wait_retry(3))
    embedding = adapter.embed("hello")
    assert embedding.vector == (0.6, 0.8)
    assert len(backend.calls) == 3


def test_gives_up_after_three_attempts(no_wait_retry) -> None:
    backend = ScriptedEmbeddingBackend(failures=5)
    adapter = EmbeddingAdapter(backend, retry_policy=no_wait_retry(3))
    with pytest.raises(ProviderUnavailable):
        adapter.embed("hello")
    assert len(backend.calls) == 3


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_text_fails_fast(no_wait_retry, text: str) -> None:
    backend = ScriptedEmbeddingBackend()
    adapter = EmbeddingAdapter(backend, retry_policy=no_wait_retry(3))
    with pytest.raises(InvalidInput):
        adapter.embed(text)
    with pytest.raises(InvalidInput):
        adapter.embed_batch(["fine", text])
    assert backend.calls == []


def test_long_text_is_truncated_with_warning(no_wait_retry, caplog: pytest.LogCaptureFixture) -> None:
    backend = ScriptedEmbeddingBackend(max_chars=10)
    adapter = EmbeddingAdapter(backend, retry_policy=no_wait_retry(3))
    with caplog.at_level(logging.WARNING):
        adapter.embed("abcdefghijklmnopqrstuvwxyz")
    assert backend.calls == [["abcdefghij"]]
    assert any("Truncating" in record.getMessage() for record in caplog.records)


def test_incomplete_batch_is_unavailable(no_wait_retry) -> None:
    class ShortBackend(ScriptedEmbeddingBackend):
        def embed_texts(self, texts):
            super().embed_texts(texts)
            return [[1.0, 0.0]]

    adapter = EmbeddingAdapter(ShortBackend(), retry_policy=no_wait_retry(2))
    with pytest.raises(ProviderUnavailable):
        adapter.embed_batch(["a", "b"])


def test_cache_avoids_repeat_calls(no_wait_retry) -> None:
    backend = ScriptedEmbeddingBackend({"x": [1.0, 0.0], "y": [0.0, 1.0]})
    cached = CachedEmbeddingAdapter(EmbeddingAdapter(backend, retry_policy=no_wait_retry(3)))
    first = cached.embed_batch(["x", "y", "x"])
    second = cached.embed_batch(["y", "x"])
    assert [e.vector for e in first] == [(1.0, 0.0), (0.0, 1.0), (1.0, 0.0)]
    assert [e.vector for e in second] == [(0.0, 1.0), (1.0, 0.0)]
    assert backend.calls == [["x", "y"]]
    assert cached.hits == 2


def test_cache_evicts_oldest(no_wait_retry) -> None:
    backend = ScriptedEmbeddingBackend()
    cached = CachedEmbeddingAdapter(EmbeddingAdapter(backend, retry_policy=no_wait_retry(3)), max_entries=1)
    cached.embed("first")
    cached.embed("second")
    cached.embed("first")
    assert backend.calls == [["first"], ["second"], ["first"]]
