"""Ranking and context selection components."""

from .hybrid import bm25_rank
from .selector import ContextSelector
from .similarity import cosine_similarity, rank

__all__ = [
    "ContextSelector",
    "bm25_rank",
    "cosine_similarity",
    "rank",
]
