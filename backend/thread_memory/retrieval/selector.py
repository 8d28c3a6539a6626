"""Context selection under a budget."""

from __future__ import annotations

from typing import Collection, Iterable, Sequence

from thread_memory.core.logging import get_logger
from thread_memory.models.entities import ContextBudget, Embedding, PoolItem, RankCandidate, TextUnit
from thread_memory.retrieval.hybrid import bm25_rank
from thread_memory.retrieval.similarity import rank
from thread_memory.utils.text import normalize, tokenize

logger = get_logger(__name__)


class ContextSelector:
    """Greedy-by-rank selection of prior content for a completion request.

    Units are walked in ranked order and accepted whole when they fit in the
    remaining character budget; a unit that does not fit is skipped and the
    walk continues. Exact optimal packing is not attempted.
    """

    def __init__(self, min_score: float | None = None) -> None:
        self.min_score = min_score

    def select(
        self,
        query_embedding: Embedding,
        query_text: str,
        pool: Iterable[PoolItem],
        budget: ContextBudget,
        query_unit_id: str | None = None,
        exclude_ids: Collection[str] = (),
    ) -> list[TextUnit]:
        eligible = _eligible(pool, query_text, query_unit_id, exclude_ids)
        if not eligible:
            return []
        units = {item.unit.id: item.unit for item in eligible}
        ranked = rank(
            query_embedding,
            (RankCandidate(item.unit.id, item.embedding, item.unit.created_at) for item in eligible),
        )
        ordered = [
            units[candidate.unit_id]
            for candidate in ranked
            if self.min_score is None or candidate.score >= self.min_score
        ]
        return _fill_budget(ordered, budget)

    def select_by_keywords(
        self,
        query_text: str,
        units: Iterable[TextUnit],
        budget: ContextBudget,
        query_unit_id: str | None = None,
        exclude_ids: Collection[str] = (),
    ) -> list[TextUnit]:
        """Same budget policy over a BM25 ranking; no embeddings needed."""
        eligible = [
            item.unit
            for item in _eligible(
                (PoolItem(unit, _NO_EMBEDDING) for unit in units),
                query_text,
                query_unit_id,
                exclude_ids,
            )
        ]
        if not eligible:
            return []
        by_id = {unit.id: unit for unit in eligible}
        ranked = bm25_rank(query_text, eligible)
        query_terms = set(tokenize(query_text))
        ordered = [
            by_id[item.identifier]
            for item in ranked
            if query_terms.intersection(tokenize(by_id[item.identifier].text))
        ]
        return _fill_budget(ordered, budget)


_NO_EMBEDDING = Embedding(vector=(), model="")


def _eligible(
    pool: Iterable[PoolItem],
    query_text: str,
    query_unit_id: str | None,
    exclude_ids: Collection[str],
) -> list[PoolItem]:
    normalized_query = normalize(query_text)
    seen: set[str] = set()
    eligible: list[PoolItem] = []
    for item in pool:
        unit = item.unit
        if unit.id in seen or unit.id in exclude_ids:
            continue
        if query_unit_id is not None:
            if unit.id == query_unit_id:
                continue
        elif normalize(unit.text) == normalized_query:
            continue
        seen.add(unit.id)
        eligible.append(item)
    return eligible


def _fill_budget(ordered: Sequence[TextUnit], budget: ContextBudget) -> list[TextUnit]:
    remaining = budget.max_chars
    selected: list[TextUnit] = []
    chosen: set[str] = set()
    for unit in ordered:
        if remaining <= 0:
            break
        if budget.max_units is not None and len(selected) >= budget.max_units:
            break
        if unit.id in chosen:
            continue
        if unit.length > remaining:
            logger.debug("Skipping unit %s (%s chars) with %s chars left", unit.id, unit.length, remaining)
            continue
        selected.append(unit)
        chosen.add(unit.id)
        remaining -= unit.length
    return selected


__all__ = ["ContextSelector"]
