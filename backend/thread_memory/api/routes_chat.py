"""Thread and chat API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from thread_memory.api.dependencies import get_chat_service, get_user_id
from thread_memory.chat.service import ChatService
from thread_memory.models.dto import (
    ChatRequest,
    ChatResponse,
    ContextItem,
    DocumentRequest,
    DocumentResponse,
    MessageResponse,
    ThreadMessagesResponse,
    ThreadSummaryResponse,
)
from thread_memory.models.entities import ChatResult, ContextBudget, TextUnit

router = APIRouter()


@router.get("", response_model=list[ThreadSummaryResponse], summary="List the caller's threads")
def list_threads(
    user_id: str = Depends(get_user_id),
    service: ChatService = Depends(get_chat_service),
) -> list[ThreadSummaryResponse]:
    return [ThreadSummaryResponse(**row) for row in service.store.list_threads(user_id)]


@router.post("/messages", response_model=ChatResponse, summary="Start a new thread with a message")
def start_thread(
    request: ChatRequest,
    user_id: str = Depends(get_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    result = service.reply(user_id, request.message, thread_id=None, budget=_budget(request, service))
    return _to_response(result)


@router.post("/{thread_id}/messages", response_model=ChatResponse, summary="Continue a thread")
def continue_thread(
    thread_id: str,
    request: ChatRequest,
    user_id: str = Depends(get_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    result = service.reply(user_id, request.message, thread_id=thread_id, budget=_budget(request, service))
    return _to_response(result)


@router.get("/{thread_id}/messages", response_model=ThreadMessagesResponse, summary="Conversation history")
def thread_history(
    thread_id: str,
    user_id: str = Depends(get_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ThreadMessagesResponse:
    messages = service.messages(user_id, thread_id)
    return ThreadMessagesResponse(thread_id=thread_id, messages=[_message(unit) for unit in messages])


@router.post("/{thread_id}/documents", response_model=DocumentResponse, summary="Add a document to a thread")
def add_document(
    thread_id: str,
    request: DocumentRequest,
    user_id: str = Depends(get_user_id),
    service: ChatService = Depends(get_chat_service),
) -> DocumentResponse:
    result = service.add_document(
        user_id,
        thread_id,
        request.text,
        filename=request.filename,
        max_chunk_chars=request.max_chunk_chars,
    )
    return DocumentResponse(
        thread_id=result.thread_id,
        unit_ids=[unit.id for unit in result.units],
        keywords=result.keywords.as_list(),
        tags=list(result.tags),
        entities=result.entities.as_dict(),
    )


def _budget(request: ChatRequest, service: ChatService) -> ContextBudget:
    default = service.default_budget()
    return ContextBudget(
        max_chars=request.budget_chars if request.budget_chars is not None else default.max_chars,
        max_units=request.max_units if request.max_units is not None else default.max_units,
    )


def _message(unit: TextUnit) -> MessageResponse:
    return MessageResponse(id=unit.id, role=unit.role, content=unit.text, created_at=unit.created_at)


def _to_response(result: ChatResult) -> ChatResponse:
    return ChatResponse(
        thread_id=result.thread_id,
        message=_message(result.user_unit),
        reply=_message(result.assistant_unit),
        model=result.reply.model,
        finish_reason=result.reply.finish_reason,
        retrieval_mode=result.retrieval_mode,
        context=[
            ContextItem(id=unit.id, role=unit.role, text=unit.text, created_at=unit.created_at)
            for unit in result.context
        ],
    )
