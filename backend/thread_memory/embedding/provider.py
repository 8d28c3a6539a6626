"""Embedding provider adapter."""

from __future__ import annotations

import hashlib
import math
from typing import Protocol, Sequence

import openai
from openai import OpenAI

from thread_memory.core.config import Settings
from thread_memory.core.errors import InvalidInput, ProviderUnavailable
from thread_memory.core.logging import get_logger
from thread_memory.core.metrics import PROVIDER_CALLS
from thread_memory.core.retry import RetryPolicy
from thread_memory.models.entities import Embedding
from thread_memory.utils.text import tokenize

logger = get_logger(__name__)

EMBED_ATTEMPTS = 3

_TRANSIENT_OPENAI_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class EmbeddingBackend(Protocol):
    """Anything that turns a batch of texts into vectors."""

    model: str
    dim: int
    max_chars: int

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class HashedEmbeddingBackend:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model: str = "hashed-384", dim: int = 384, max_chars: int = 8000) -> None:
        self.model = model
        self.dim = dim
        self.max_chars = max_chars

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in tokenize(text):
                vector[_hash_token(token, self.dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


class OpenAIEmbeddingBackend:
    """Embeddings via the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str,
        dim: int,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        max_chars: int = 8000,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.dim = dim
        self.max_chars = max_chars
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=0)

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        try:
            options = {"dimensions": self.dim} if self.model.startswith("text-embedding-3") else {}
            response = self._client.embeddings.create(model=self.model, input=list(texts), **options)
        except _TRANSIENT_OPENAI_ERRORS as exc:
            raise ProviderUnavailable(
                f"Embedding provider unavailable: {exc}",
                details={"model": self.model, "batch_size": len(texts)},
            ) from exc
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class EmbeddingAdapter:
    """Stable ``embed``/``embed_batch`` interface over an embedding backend.

    Empty input fails fast with ``InvalidInput``. Over-long input is cut to the
    backend's ``max_chars`` prefix and logged as a warning. Transient failures
    are retried up to three attempts with jittered exponential backoff.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        batch_size: int = 64,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.backend = backend
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=EMBED_ATTEMPTS)

    @property
    def model(self) -> str:
        return self.backend.model

    @property
    def dim(self) -> int:
        return self.backend.dim

    def embed(self, text: str) -> Embedding:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str], batch_size: int | None = None) -> list[Embedding]:
        if not texts:
            return []
        size = batch_size or self.batch_size
        prepared = [self._prepare(text, position) for position, text in enumerate(texts)]
        embeddings: list[Embedding] = []
        for start in range(0, len(prepared), size):
            chunk = prepared[start : start + size]
            vectors = self.retry_policy.call(self._call_backend, chunk, operation="embed", logger=logger)
            embeddings.extend(Embedding.of(vector, self.backend.model) for vector in vectors)
        return embeddings

    def _prepare(self, text: str, position: int) -> str:
        if not text or not text.strip():
            raise InvalidInput("Cannot embed empty text", details={"position": position})
        limit = self.backend.max_chars
        if len(text) > limit:
            logger.warning(
                "Truncating text at position %s from %s to %s characters before embedding",
                position,
                len(text),
                limit,
            )
            return text[:limit]
        return text

    def _call_backend(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = self.backend.embed_texts(texts)
        except ProviderUnavailable:
            PROVIDER_CALLS.labels(kind="embedding", outcome="unavailable").inc()
            raise
        if len(vectors) != len(texts):
            PROVIDER_CALLS.labels(kind="embedding", outcome="malformed").inc()
            raise ProviderUnavailable(
                "Embedding provider returned an incomplete batch",
                details={"expected": len(texts), "received": len(vectors)},
            )
        PROVIDER_CALLS.labels(kind="embedding", outcome="ok").inc()
        return vectors


def build_embedding_adapter(settings: Settings) -> EmbeddingAdapter:
    """Construct the adapter described by ``settings``."""
    backend: EmbeddingBackend
    if settings.embedding_backend == "openai":
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        backend = OpenAIEmbeddingBackend(
            model=settings.embedding_model,
            dim=settings.embedding_dim,
            api_key=api_key,
            base_url=settings.openai_base_url,
            timeout_s=settings.embed_timeout_s,
            max_chars=settings.embedding_max_chars,
        )
    else:
        backend = HashedEmbeddingBackend(
            model=settings.embedding_model,
            dim=settings.embedding_dim,
            max_chars=settings.embedding_max_chars,
        )
    policy = RetryPolicy(
        max_attempts=EMBED_ATTEMPTS,
        initial=settings.retry_initial_s,
        maximum=settings.retry_max_s,
        jitter=settings.retry_jitter_s,
    )
    return EmbeddingAdapter(backend, batch_size=settings.embedding_batch_size, retry_policy=policy)


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingBackend",
    "HashedEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "EmbeddingAdapter",
    "build_embedding_adapter",
]
