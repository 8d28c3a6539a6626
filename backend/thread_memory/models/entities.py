"""Internal dataclasses for the retrieval core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Literal, Sequence

Role = Literal["user", "assistant", "document", "system"]


@dataclass(frozen=True, slots=True)
class TextUnit:
    """A chat message or document chunk eligible for embedding."""

    id: str
    thread_id: str
    user_id: str
    text: str
    created_at: datetime
    role: Role = "user"

    @property
    def length(self) -> int:
        return len(self.text)


@dataclass(frozen=True, slots=True)
class Embedding:
    """Vector for one TextUnit, tagged with the model that produced it."""

    vector: tuple[float, ...]
    model: str

    @classmethod
    def of(cls, values: Sequence[float], model: str) -> "Embedding":
        return cls(vector=tuple(float(value) for value in values), model=model)

    @property
    def dim(self) -> int:
        return len(self.vector)


@dataclass(frozen=True, slots=True)
class KeywordSet:
    """Derived salient terms; never authoritative."""

    terms: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.terms)

    def __len__(self) -> int:
        return len(self.terms)

    def __bool__(self) -> bool:
        return bool(self.terms)

    def as_list(self) -> list[str]:
        return list(self.terms)


ENTITY_KINDS = ("people", "organizations", "dates", "numbers", "locations", "other")


@dataclass(frozen=True, slots=True)
class EntitySet:
    """Named entities found in a text, grouped by kind; best-effort like keywords."""

    people: tuple[str, ...] = ()
    organizations: tuple[str, ...] = ()
    dates: tuple[str, ...] = ()
    numbers: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    other: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return any(getattr(self, kind) for kind in ENTITY_KINDS)

    def as_dict(self) -> dict[str, list[str]]:
        return {kind: list(getattr(self, kind)) for kind in ENTITY_KINDS}


@dataclass(frozen=True, slots=True)
class RankCandidate:
    unit_id: str
    embedding: Embedding
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    unit_id: str
    score: float
    embedding: Embedding
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class PoolItem:
    unit: TextUnit
    embedding: Embedding


@dataclass(frozen=True, slots=True)
class ContextBudget:
    """Upper bound on retrieved text injected into one request."""

    max_chars: int
    max_units: int | None = None

    def __post_init__(self) -> None:
        if self.max_chars < 0:
            raise ValueError("max_chars must be non-negative")
        if self.max_units is not None and self.max_units < 0:
            raise ValueError("max_units must be non-negative")


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    content: str


@dataclass(frozen=True, slots=True)
class GeneratedReply:
    text: str
    model: str
    finish_reason: str | None = None
    context_ids: tuple[str, ...] = ()
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class ThreadSummary:
    short: str
    long: str


@dataclass(slots=True)
class ChatResult:
    """Everything the HTTP layer needs to answer one chat request."""

    thread_id: str
    user_unit: TextUnit
    assistant_unit: TextUnit
    reply: GeneratedReply
    context: list[TextUnit] = field(default_factory=list)
    retrieval_mode: Literal["embedding", "keyword", "none"] = "embedding"


__all__ = [
    "Role",
    "TextUnit",
    "Embedding",
    "KeywordSet",
    "ENTITY_KINDS",
    "EntitySet",
    "RankCandidate",
    "ScoredCandidate",
    "PoolItem",
    "ContextBudget",
    "ChatTurn",
    "GeneratedReply",
    "ThreadSummary",
    "ChatResult",
]
