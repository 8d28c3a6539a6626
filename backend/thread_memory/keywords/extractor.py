"""Keyword extraction and content classification."""

from __future__ import annotations

from collections import Counter
from typing import Any, Protocol, Sequence

import orjson

from thread_memory.completion.prompts import strip_code_fence
from thread_memory.completion.providers import ChatCompletionProvider
from thread_memory.core.logging import get_logger
from thread_memory.models.entities import ENTITY_KINDS, EntitySet, KeywordSet
from thread_memory.utils.text import tokenize

logger = get_logger(__name__)

MIN_TERMS = 5
MAX_TERMS = 10
MAX_TERM_CHARS = 64
MAX_TAGS = 3
DEFAULT_TAG = "reference"
MAX_ENTITIES_PER_KIND = 10

CONTROLLED_TAGS = (
    "work",
    "personal",
    "task",
    "deal",
    "idea",
    "finance",
    "health",
    "meeting",
    "project",
    "research",
    "legal",
    "contract",
    "invoice",
    "report",
    "presentation",
    "notes",
    "documentation",
    "education",
    "travel",
    "reference",
)

KEYWORD_PROMPT = (
    "Extract {count} relevant keywords or entities from the following text. "
    "Return as a comma-separated list."
)

CLASSIFY_PROMPT = "Classify content into categories: {tags}. Return comma-separated list."

ENTITY_PROMPT = (
    "Extract named entities from the text. Respond with JSON only, using this shape: "
    '{"people": [], "organizations": [], "dates": [], "numbers": [], "locations": [], "other": []}'
)

STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been before being
    below between both but by can could did do does doing down during each few for from further
    had has have having he her here hers herself him himself his how i if in into is it its itself
    just me more most my myself no nor not now of off on once only or other our ours ourselves out
    over own same she should so some such than that the their theirs them themselves then there
    these they this those through to too under until up very was we were what when where which
    while who whom why will with would you your yours yourself yourselves also may might must
    shall tell please thanks hello hi yes ok okay get got like one two use used using
    """.split()
)


class KeywordStrategy(Protocol):
    def terms(self, text: str, count: int) -> list[str]:
        ...


class FrequencyKeywordStrategy:
    """Stopword-filtered term frequency; ties keep first occurrence order."""

    def terms(self, text: str, count: int) -> list[str]:
        tokens = [token for token in tokenize(text) if _is_candidate(token)]
        counts = Counter(tokens)
        first_seen: dict[str, int] = {}
        for position, token in enumerate(tokens):
            first_seen.setdefault(token, position)
        ordered = sorted(counts, key=lambda token: (-counts[token], first_seen[token]))
        return ordered[:count]


class LLMKeywordStrategy:
    """Ask the chat model for a comma-separated keyword list."""

    def __init__(self, provider: ChatCompletionProvider, max_input_chars: int = 4000) -> None:
        self.provider = provider
        self.max_input_chars = max_input_chars

    def terms(self, text: str, count: int) -> list[str]:
        prompt = [
            {"role": "system", "content": KEYWORD_PROMPT.format(count=count)},
            {"role": "user", "content": text[: self.max_input_chars]},
        ]
        result = self.provider.create(prompt, max_tokens=60, temperature=0.1)
        return _split_list(result.text or "")


class KeywordExtractor:
    """Best-effort keyword tagging; failures yield an empty ``KeywordSet``."""

    def __init__(
        self,
        strategy: KeywordStrategy | None = None,
        provider: ChatCompletionProvider | None = None,
    ) -> None:
        if strategy is None:
            strategy = LLMKeywordStrategy(provider) if provider is not None else FrequencyKeywordStrategy()
        self.strategy = strategy
        self.provider = provider

    def extract(self, text: str, target_count: int = 8) -> KeywordSet:
        count = min(MAX_TERMS, max(MIN_TERMS, target_count))
        if not text or not text.strip():
            return KeywordSet()
        try:
            raw_terms = self.strategy.terms(text, count)
        except Exception as exc:  # noqa: BLE001 - keyword tagging is best-effort
            logger.warning("Keyword extraction failed; continuing without keywords: %s", exc)
            return KeywordSet()
        return KeywordSet(terms=tuple(_dedupe(raw_terms)[:count]))

    def classify(self, text: str, filename: str = "") -> tuple[str, ...]:
        """Up to three tags from ``CONTROLLED_TAGS``; ``("reference",)`` when unsure."""
        if self.provider is None or not text.strip():
            return (DEFAULT_TAG,)
        prompt = [
            {"role": "system", "content": CLASSIFY_PROMPT.format(tags=", ".join(CONTROLLED_TAGS))},
            {"role": "user", "content": f"Filename: {filename}\n\nContent: {text[:2000]}"},
        ]
        try:
            result = self.provider.create(prompt, max_tokens=50, temperature=0.1)
        except Exception as exc:  # noqa: BLE001 - keyword tagging is best-effort
            logger.warning("Content classification failed: %s", exc)
            return (DEFAULT_TAG,)
        tags = [tag.lower() for tag in _split_list(result.text or "") if tag.lower() in CONTROLLED_TAGS]
        return tuple(_dedupe(tags)[:MAX_TAGS]) or (DEFAULT_TAG,)

    def extract_entities(self, text: str) -> EntitySet:
        """People, organizations, dates, numbers, locations and other names; at most ten of each."""
        if self.provider is None or not text or not text.strip():
            return EntitySet()
        prompt = [
            {"role": "system", "content": ENTITY_PROMPT},
            {"role": "user", "content": text[:4000]},
        ]
        try:
            result = self.provider.create(prompt, max_tokens=300, temperature=0.1)
            parsed = orjson.loads(strip_code_fence(result.text or ""))
        except Exception as exc:  # noqa: BLE001 - entity tagging is best-effort
            logger.warning("Entity extraction failed; continuing without entities: %s", exc)
            return EntitySet()
        if not isinstance(parsed, dict):
            return EntitySet()
        return EntitySet(**{kind: _entity_list(parsed.get(kind)) for kind in ENTITY_KINDS})


def _split_list(raw: str) -> list[str]:
    return [item.strip().strip(".\"'") for item in raw.replace("\n", ",").split(",") if item.strip()]


def _dedupe(terms: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for term in terms:
        cleaned = " ".join(term.split())[:MAX_TERM_CHARS]
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        unique.append(cleaned)
    return unique


def _entity_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    names = [item for item in value if isinstance(item, str)]
    return tuple(_dedupe(names)[:MAX_ENTITIES_PER_KIND])


def _is_candidate(token: str) -> bool:
    return len(token) > 2 and token not in STOPWORDS and not token.isdigit()


__all__ = [
    "CONTROLLED_TAGS",
    "ENTITY_PROMPT",
    "FrequencyKeywordStrategy",
    "KeywordExtractor",
    "LLMKeywordStrategy",
]
