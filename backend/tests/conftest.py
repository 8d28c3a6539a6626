"""Test fixtures for Thread Memory."""

from __future__ import annotations

import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from thread_memory.completion.prompts import SUMMARY_PROMPT  # noqa: E402
from thread_memory.completion.providers import CompletionResult  # noqa: E402
from thread_memory.core.errors import ProviderUnavailable  # noqa: E402
from thread_memory.core.retry import RetryPolicy  # noqa: E402
from thread_memory.models.entities import Embedding, TextUnit  # noqa: E402

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedEmbeddingBackend:
    """Embedding backend that fails a set number of times, then returns fixed vectors."""

    def __init__(
        self,
        vectors: dict[str, Sequence[float]] | None = None,
        dim: int = 2,
        failures: int = 0,
        model: str = "test-model",
        max_chars: int = 1000,
    ) -> None:
        self.vectors = vectors or {}
        self.dim = dim
        self.failures = failures
        self.model = model
        self.max_chars = max_chars
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.failures > 0:
            self.failures -= 1
            raise ProviderUnavailable("embedding backend down")
        return [list(self.vectors.get(text, _default_vector(text, self.dim))) for text in texts]


class FakeChatProvider:
    """Chat provider returning scripted replies (or raising scripted errors)."""

    def __init__(
        self,
        replies: Sequence[Any] = ("Here is an answer.",),
        model: str = "fake-gpt",
        summary: str = '{"short": "short summary", "long": "a longer summary"}',
    ) -> None:
        self.replies = list(replies)
        self.model = model
        self.summary = summary
        self.calls: list[list[dict[str, str]]] = []
        self.options: list[dict[str, Any]] = []

    def create(self, messages: Sequence[dict[str, str]], **options: Any) -> CompletionResult:
        self.calls.append(list(messages))
        self.options.append(options)
        if messages and messages[0]["content"] == SUMMARY_PROMPT:
            return CompletionResult(text=self.summary, model=self.model, finish_reason="stop")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        return CompletionResult(text=reply, model=self.model, finish_reason="stop")

    @property
    def chat_calls(self) -> list[list[dict[str, str]]]:
        return [call for call in self.calls if call[0]["content"] != SUMMARY_PROMPT]


def _default_vector(text: str, dim: int) -> list[float]:
    seed = sum(ord(ch) for ch in text)
    return [math.sin(seed + idx) for idx in range(dim)]


def make_unit(
    unit_id: str,
    text: str,
    minutes: int = 0,
    role: str = "document",
    thread_id: str = "thr_1",
) -> TextUnit:
    return TextUnit(
        id=unit_id,
        thread_id=thread_id,
        user_id="user_1",
        text=text,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        role=role,
    )


def vec(*values: float, model: str = "test-model") -> Embedding:
    return Embedding.of(values, model)


def unit_at_angle(score: float) -> tuple[float, float]:
    """2-d unit vector whose cosine with (1, 0) equals ``score``."""
    return (score, math.sqrt(1.0 - score * score))


@pytest.fixture
def no_wait_retry() -> Callable[[int], RetryPolicy]:
    def _build(max_attempts: int) -> RetryPolicy:
        return RetryPolicy(max_attempts=max_attempts, initial=0, maximum=0, jitter=0)

    return _build


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("TMEM_DB_PATH", str(tmp_path / "memory.db"))
    monkeypatch.delenv("TMEM_CONFIG", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("TMEM_OPENAI_API_KEY", raising=False)

    from thread_memory.api import dependencies as deps
    from thread_memory.core.config import get_settings

    def _clear() -> None:
        get_settings.cache_clear()
        deps.get_app_settings.cache_clear()
        if deps._DB is not None:
            deps._DB.close()
        deps._DB = None
        deps._EMBEDDER = None
        deps._CHAT_SERVICE = None

    _clear()
    yield
    _clear()
