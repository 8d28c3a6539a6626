"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
WORD_RE = re.compile(r"\w+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens."""
    return WORD_RE.findall(text.lower())


def preview(text: str, limit: int = 50) -> str:
    flat = normalize(text)
    return flat if len(flat) <= limit else flat[:limit] + "..."
