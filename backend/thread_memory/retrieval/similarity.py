"""Vector similarity engine."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from thread_memory.core.errors import DimensionMismatch, ModelMismatch
from thread_memory.core.logging import get_logger
from thread_memory.models.entities import Embedding, RankCandidate, ScoredCandidate

logger = get_logger(__name__)


def cosine_similarity(a: Embedding, b: Embedding) -> float:
    """Cosine of the angle between two embeddings; 0.0 when either norm is zero."""
    _check_compatible(a, b)
    return _cosine(a.vector, b.vector)


def rank(query: Embedding, candidates: Iterable[RankCandidate]) -> list[ScoredCandidate]:
    """Score every candidate against ``query`` and sort deterministically.

    Order is score descending, then newest ``created_at`` first (candidates
    without a timestamp sort after those with one), then ``unit_id`` ascending.
    Repeated ids keep their first occurrence only.
    """
    seen: set[str] = set()
    query_norm = _norm(query.vector)
    scored: list[ScoredCandidate] = []
    for candidate in candidates:
        if candidate.unit_id in seen:
            continue
        seen.add(candidate.unit_id)
        _check_compatible(query, candidate.embedding, unit_id=candidate.unit_id)
        score = _cosine(query.vector, candidate.embedding.vector, query_norm)
        scored.append(
            ScoredCandidate(
                unit_id=candidate.unit_id,
                score=score,
                embedding=candidate.embedding,
                created_at=candidate.created_at,
            )
        )
    scored.sort(key=_sort_key)
    return scored


def _sort_key(item: ScoredCandidate) -> tuple[float, int, float, str]:
    if item.created_at is None:
        return (-item.score, 1, 0.0, item.unit_id)
    return (-item.score, 0, -item.created_at.timestamp(), item.unit_id)


def _check_compatible(a: Embedding, b: Embedding, unit_id: str | None = None) -> None:
    if a.model != b.model:
        logger.error("Refusing to compare embeddings from models %s and %s", a.model, b.model)
        raise ModelMismatch(
            "Embeddings come from different models",
            details={"query_model": a.model, "candidate_model": b.model, "unit_id": unit_id},
        )
    if a.dim != b.dim:
        logger.error("Embedding dimension mismatch: %s vs %s", a.dim, b.dim)
        raise DimensionMismatch(
            "Embedding dimensions differ",
            details={"query_dim": a.dim, "candidate_dim": b.dim, "unit_id": unit_id},
        )


def _cosine(a: Sequence[float], b: Sequence[float], norm_a: float | None = None) -> float:
    if norm_a is None:
        norm_a = _norm(a)
    norm_b = _norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    value = _dot(a, b) / (norm_a * norm_b)
    return max(-1.0, min(1.0, value))


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(_dot(vector, vector))


__all__ = ["cosine_similarity", "rank"]
