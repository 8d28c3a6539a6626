"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header

from thread_memory.chat.service import ChatService
from thread_memory.completion.orchestrator import COMPLETION_ATTEMPTS, CompletionOrchestrator
from thread_memory.completion.providers import ChatCompletionProvider, build_chat_provider
from thread_memory.core.config import Settings, get_settings
from thread_memory.core.retry import RetryPolicy
from thread_memory.embedding.cache import CachedEmbeddingAdapter
from thread_memory.embedding.provider import build_embedding_adapter
from thread_memory.keywords.extractor import KeywordExtractor
from thread_memory.storage.sqlite import SQLiteDatabase
from thread_memory.storage.store import MemoryStore

_DB: SQLiteDatabase | None = None
_EMBEDDER: CachedEmbeddingAdapter | None = None
_CHAT_SERVICE: ChatService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_embedder() -> CachedEmbeddingAdapter:
    global _EMBEDDER
    if _EMBEDDER is None:
        settings = get_app_settings()
        _EMBEDDER = CachedEmbeddingAdapter(
            build_embedding_adapter(settings),
            max_entries=settings.embedding_cache_size,
        )
    return _EMBEDDER


def get_chat_provider() -> ChatCompletionProvider | None:
    return build_chat_provider(get_app_settings())


def get_keyword_extractor() -> KeywordExtractor:
    return KeywordExtractor(provider=get_chat_provider())


def get_chat_service() -> ChatService:
    global _CHAT_SERVICE
    if _CHAT_SERVICE is None:
        settings = get_app_settings()
        provider = get_chat_provider()
        embedder = get_embedder()
        orchestrator = None
        if provider is not None:
            orchestrator = CompletionOrchestrator(
                provider,
                retry_policy=RetryPolicy(
                    max_attempts=COMPLETION_ATTEMPTS,
                    initial=settings.retry_initial_s,
                    maximum=settings.retry_max_s,
                    jitter=settings.retry_jitter_s,
                ),
                history_limit=settings.history_limit,
            )
        _CHAT_SERVICE = ChatService(
            store=MemoryStore(get_database(), embedder=embedder),
            embedder=embedder,
            orchestrator=orchestrator,
            settings=settings,
            keywords=KeywordExtractor(provider=provider),
        )
    return _CHAT_SERVICE


def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    """Identity resolved upstream by the authentication layer."""
    return x_user_id


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedder",
    "get_chat_provider",
    "get_keyword_extractor",
    "get_chat_service",
    "get_user_id",
]
