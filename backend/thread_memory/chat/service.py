"""Retrieval-augmented chat loop."""

from __future__ import annotations

from dataclasses import dataclass, field

from thread_memory.completion.orchestrator import CompletionOrchestrator
from thread_memory.core.config import Settings
from thread_memory.core.errors import InvalidInput, MemoryCoreError, ProviderUnavailable
from thread_memory.core.logging import get_logger
from thread_memory.core.metrics import SELECTED_UNITS
from thread_memory.embedding.cache import CachedEmbeddingAdapter
from thread_memory.embedding.provider import EmbeddingAdapter
from thread_memory.ingest.chunker import chunk_text
from thread_memory.keywords.extractor import KeywordExtractor
from thread_memory.models.entities import (
    ChatResult,
    ChatTurn,
    ContextBudget,
    EntitySet,
    KeywordSet,
    PoolItem,
    TextUnit,
)
from thread_memory.retrieval.selector import ContextSelector
from thread_memory.storage.store import MemoryStore

logger = get_logger(__name__)

_TITLE_CHARS = 100


@dataclass(slots=True)
class DocumentResult:
    thread_id: str
    units: list[TextUnit]
    keywords: KeywordSet
    tags: tuple[str, ...] = field(default_factory=tuple)
    entities: EntitySet = field(default_factory=EntitySet)


class ChatService:
    """Stores messages, retrieves context and asks the model for a reply.

    Without an orchestrator the service still lists threads, reads history and
    ingests documents; only ``reply`` needs a completion provider.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingAdapter | CachedEmbeddingAdapter,
        orchestrator: CompletionOrchestrator | None,
        settings: Settings,
        selector: ContextSelector | None = None,
        keywords: KeywordExtractor | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.orchestrator = orchestrator
        self.settings = settings
        self.selector = selector or ContextSelector(min_score=settings.context_min_score)
        self.keywords = keywords or KeywordExtractor()

    def default_budget(self) -> ContextBudget:
        return ContextBudget(
            max_chars=self.settings.context_budget_chars,
            max_units=self.settings.context_max_units,
        )

    def reply(
        self,
        user_id: str,
        message: str,
        thread_id: str | None = None,
        budget: ContextBudget | None = None,
    ) -> ChatResult:
        """Store ``message``, answer it from retrieved context and store the reply.

        Errors raised after the thread exists carry its id in ``details`` so a
        client can continue the thread instead of starting a new one.
        """
        if not message or not message.strip():
            raise InvalidInput("Message must not be empty")
        if self.orchestrator is None:
            raise ProviderUnavailable("No completion provider configured", details={"reason": "not_configured"})
        message = message.strip()
        if thread_id is None:
            thread_id = self.store.create_thread(user_id, title=_title(message))
        else:
            self.store.require_thread(thread_id, user_id)
        try:
            return self._answer(user_id, thread_id, message, budget or self.default_budget())
        except MemoryCoreError as exc:
            exc.details.setdefault("thread_id", thread_id)
            raise

    def _answer(self, user_id: str, thread_id: str, message: str, budget: ContextBudget) -> ChatResult:
        history, history_ids = self.store.recent_turns(thread_id, self.settings.history_limit)
        user_unit = self.store.add_unit(thread_id, user_id, message, role="user")
        context, mode = self._retrieve(user_unit, budget, history_ids)
        SELECTED_UNITS.observe(len(context))
        summary = self.store.get_summary(thread_id) if self.settings.summaries_enabled else None

        reply = self.orchestrator.complete(message, context, history, summary)
        assistant_unit = self.store.add_unit(thread_id, user_id, reply.text, role="assistant")
        logger.info(
            "Replied in thread %s with %s context units (%s retrieval)",
            thread_id,
            len(context),
            mode,
            extra={"ctx_thread_id": thread_id, "ctx_context_ids": list(reply.context_ids)},
        )

        if self.settings.summaries_enabled:
            self._refresh_summary(thread_id, history + [ChatTurn("user", message), ChatTurn("assistant", reply.text)])

        return ChatResult(
            thread_id=thread_id,
            user_unit=user_unit,
            assistant_unit=assistant_unit,
            reply=reply,
            context=context,
            retrieval_mode=mode,
        )

    def add_document(
        self,
        user_id: str,
        thread_id: str,
        text: str,
        filename: str = "",
        max_chunk_chars: int = 1200,
    ) -> DocumentResult:
        """Chunk a document into ``document`` units and embed them in batches."""
        self.store.require_thread(thread_id, user_id)
        chunks = chunk_text(text, max_chars=max_chunk_chars)
        if not chunks:
            raise InvalidInput("Document has no text content", details={"filename": filename})
        units = self.store.add_units(
            thread_id,
            user_id,
            [chunk.text for chunk in chunks],
            role="document",
            meta={"filename": filename},
        )
        try:
            vectors = self.embedder.embed_batch([unit.text for unit in units])
        except ProviderUnavailable as exc:
            logger.warning("Deferring embeddings for %s document units: %s", len(units), exc)
        else:
            self.store.save_embeddings({unit.id: vector for unit, vector in zip(units, vectors)})

        keywords = self.keywords.extract(text, target_count=self.settings.keyword_target)
        tags = self.keywords.classify(text, filename=filename)
        entities = self.keywords.extract_entities(text)
        for unit in units:
            self.store.save_keywords(
                unit.id, self.keywords.extract(unit.text, self.settings.keyword_target), tags, entities=entities
            )
        logger.info("Stored %s chunks for %s in thread %s", len(units), filename or "document", thread_id)
        return DocumentResult(thread_id=thread_id, units=units, keywords=keywords, tags=tags, entities=entities)

    def messages(self, user_id: str, thread_id: str) -> list[TextUnit]:
        self.store.require_thread(thread_id, user_id)
        return self.store.thread_messages(thread_id)

    # ------------------------------------------------------------------

    def _retrieve(
        self,
        user_unit: TextUnit,
        budget: ContextBudget,
        history_ids: set[str],
    ) -> tuple[list[TextUnit], str]:
        candidates = [
            unit
            for unit in self.store.load_pool(user_unit.thread_id)
            if unit.id != user_unit.id and unit.id not in history_ids
        ]
        if not candidates:
            return [], "none"
        try:
            query_embedding = self.embedder.embed(user_unit.text)
            self.store.save_embeddings({user_unit.id: query_embedding})
            embeddings = self.store.load_embeddings([unit.id for unit in candidates])
        except ProviderUnavailable as exc:
            logger.warning("Embedding provider unavailable, falling back to keyword retrieval: %s", exc)
            context = self.selector.select_by_keywords(
                user_unit.text,
                candidates,
                budget,
                query_unit_id=user_unit.id,
            )
            return context, "keyword"
        pool = [PoolItem(unit, embeddings[unit.id]) for unit in candidates if unit.id in embeddings]
        context = self.selector.select(
            query_embedding,
            user_unit.text,
            pool,
            budget,
            query_unit_id=user_unit.id,
        )
        return context, "embedding"

    def _refresh_summary(self, thread_id: str, turns: list[ChatTurn]) -> None:
        try:
            summary = self.orchestrator.summarize(turns)
        except MemoryCoreError as exc:
            logger.warning("Summary generation failed for thread %s: %s", thread_id, exc)
            return
        self.store.save_summary(thread_id, summary)


def _title(message: str) -> str:
    return message[:_TITLE_CHARS] + ("..." if len(message) > _TITLE_CHARS else "")


__all__ = ["ChatService", "DocumentResult"]
