"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    budget_chars: int | None = Field(default=None, ge=0)
    max_units: int | None = Field(default=None, ge=1)


class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime


class ContextItem(BaseModel):
    id: str
    role: str
    text: str
    created_at: datetime


class ChatResponse(BaseModel):
    thread_id: str
    message: MessageResponse
    reply: MessageResponse
    model: str
    finish_reason: str | None = None
    retrieval_mode: Literal["embedding", "keyword", "none"]
    context: list[ContextItem]


class ThreadMessagesResponse(BaseModel):
    thread_id: str
    messages: list[MessageResponse]


class ThreadSummaryResponse(BaseModel):
    id: str
    title: str | None
    created_at: datetime


class DocumentRequest(BaseModel):
    text: str = Field(min_length=1)
    filename: str = ""
    max_chunk_chars: int = Field(default=1200, ge=100, le=20000)


class DocumentResponse(BaseModel):
    thread_id: str
    unit_ids: list[str]
    keywords: list[str]
    tags: list[str]
    entities: dict[str, list[str]] = Field(default_factory=dict)


class KeywordRequest(BaseModel):
    text: str
    count: int = Field(default=8, ge=1, le=50)


class KeywordResponse(BaseModel):
    keywords: list[str]


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict = Field(default_factory=dict)


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ContextItem",
    "MessageResponse",
    "ThreadMessagesResponse",
    "ThreadSummaryResponse",
    "DocumentRequest",
    "DocumentResponse",
    "KeywordRequest",
    "KeywordResponse",
    "ErrorResponse",
]
