"""Completion orchestration."""

from __future__ import annotations

from typing import Any, Sequence

import orjson

from thread_memory.completion.prompts import SUMMARY_PROMPT, build_messages, strip_code_fence, strip_fallback
from thread_memory.completion.providers import ChatCompletionProvider, CompletionResult
from thread_memory.core.errors import ContentPolicyRejected, EmptyReply, ProviderUnavailable
from thread_memory.core.logging import get_logger
from thread_memory.core.metrics import PROVIDER_CALLS
from thread_memory.core.retry import RetryPolicy
from thread_memory.models.entities import ChatTurn, GeneratedReply, TextUnit, ThreadSummary

logger = get_logger(__name__)

COMPLETION_ATTEMPTS = 3


class CompletionOrchestrator:
    """Build one ordered request from retrieved context and call the provider.

    ``ProviderUnavailable`` is retried twice; ``ContentPolicyRejected`` and
    ``EmptyReply`` go straight back to the caller.
    """

    def __init__(
        self,
        provider: ChatCompletionProvider,
        retry_policy: RetryPolicy | None = None,
        history_limit: int = 10,
        completion_options: dict[str, Any] | None = None,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=COMPLETION_ATTEMPTS)
        self.history_limit = history_limit
        self.completion_options = completion_options or {}

    def complete(
        self,
        new_message: str,
        selected_context: Sequence[TextUnit],
        history: Sequence[ChatTurn] = (),
        summary: ThreadSummary | None = None,
    ) -> GeneratedReply:
        recent = list(history)[-self.history_limit :] if self.history_limit else []
        messages = build_messages(new_message, selected_context, recent, summary)
        result = self._generate(messages, **self.completion_options)
        text = (result.text or "").strip()
        if not text:
            PROVIDER_CALLS.labels(kind="completion", outcome="empty").inc()
            raise EmptyReply(
                "Completion provider returned an empty reply",
                details={"model": result.model, "finish_reason": result.finish_reason},
            )
        return GeneratedReply(
            text=strip_fallback(text),
            model=result.model,
            finish_reason=result.finish_reason,
            context_ids=tuple(unit.id for unit in selected_context),
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
        )

    def summarize(self, history: Sequence[ChatTurn]) -> ThreadSummary:
        """Short and long summary of a conversation; plain text if JSON parsing fails."""
        messages = [{"role": "system", "content": SUMMARY_PROMPT}]
        messages.extend({"role": turn.role, "content": turn.content} for turn in history)
        result = self._generate(messages, max_tokens=300)
        raw = (result.text or "").strip()
        if not raw:
            raise EmptyReply("Summary request returned an empty reply", details={"model": result.model})
        try:
            parsed = orjson.loads(strip_code_fence(raw))
        except orjson.JSONDecodeError:
            return ThreadSummary(short=raw, long=raw)
        if not isinstance(parsed, dict):
            return ThreadSummary(short=raw, long=raw)
        short = str(parsed.get("short") or raw)
        return ThreadSummary(short=short, long=str(parsed.get("long") or short))

    def _generate(self, messages: list[dict[str, str]], **options: Any) -> CompletionResult:
        return self.retry_policy.call(self._call_provider, messages, options, operation="complete", logger=logger)

    def _call_provider(self, messages: list[dict[str, str]], options: dict[str, Any]) -> CompletionResult:
        try:
            result = self.provider.create(messages, **options)
        except ProviderUnavailable:
            PROVIDER_CALLS.labels(kind="completion", outcome="unavailable").inc()
            raise
        except ContentPolicyRejected:
            PROVIDER_CALLS.labels(kind="completion", outcome="rejected").inc()
            logger.warning("Completion rejected by content policy")
            raise
        PROVIDER_CALLS.labels(kind="completion", outcome="ok").inc()
        return result


__all__ = ["CompletionOrchestrator"]
