"""Keyword ranking used when embeddings are unavailable."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from rank_bm25 import BM25Okapi

from thread_memory.models.entities import TextUnit
from thread_memory.utils.text import tokenize


@dataclass(slots=True)
class RankedItem:
    identifier: str
    score: float


def bm25_rank(query: str, units: Sequence[TextUnit]) -> list[RankedItem]:
    """Rank units against ``query`` with BM25, ties broken like vector ranking."""
    if not units:
        return []
    query_tokens = tokenize(query)
    corpus_tokens = [tokenize(unit.text) or [""] for unit in units]
    model = BM25Okapi(corpus_tokens)
    scores = model.get_scores(query_tokens) if query_tokens else [0.0] * len(units)
    ranked = sorted(
        zip(units, scores),
        key=lambda pair: (-float(pair[1]), -pair[0].created_at.timestamp(), pair[0].id),
    )
    return [RankedItem(identifier=unit.id, score=float(score)) for unit, score in ranked]


__all__ = ["RankedItem", "bm25_rank"]
