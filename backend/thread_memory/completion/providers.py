"""Chat-completion provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import openai
from openai import OpenAI

from thread_memory.core.config import Settings
from thread_memory.core.errors import ContentPolicyRejected, ProviderUnavailable

_POLICY_CODES = {"content_policy_violation", "content_filter"}


@dataclass(slots=True)
class CompletionResult:
    text: str | None
    model: str
    finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class ChatCompletionProvider(Protocol):
    """Anything that turns an ordered message list into reply text."""

    model: str

    def create(self, messages: Sequence[dict[str, str]], **options: Any) -> CompletionResult:
        ...


class OpenAIChatProvider:
    """``chat.completions`` via the OpenAI SDK, errors mapped to the core taxonomy."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=0)

    def create(self, messages: Sequence[dict[str, str]], **options: Any) -> CompletionResult:
        try:
            response = self._client.chat.completions.create(model=self.model, messages=list(messages), **options)
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as exc:
            raise ProviderUnavailable(f"Completion provider unavailable: {exc}", details={"model": self.model}) from exc
        except openai.BadRequestError as exc:
            if exc.code in _POLICY_CODES:
                raise ContentPolicyRejected(str(exc.message), details={"model": self.model, "code": exc.code}) from exc
            raise
        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise ContentPolicyRejected(
                "Reply withheld by the provider's content filter",
                details={"model": self.model, "finish_reason": choice.finish_reason},
            )
        usage = response.usage
        return CompletionResult(
            text=choice.message.content,
            model=response.model or self.model,
            finish_reason=choice.finish_reason,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )


def build_chat_provider(settings: Settings) -> ChatCompletionProvider | None:
    """OpenAI provider when a key is configured, otherwise ``None``."""
    if not settings.has_openai:
        return None
    return OpenAIChatProvider(
        model=settings.completion_model,
        api_key=settings.openai_api_key.get_secret_value(),
        base_url=settings.openai_base_url,
        timeout_s=settings.completion_timeout_s,
    )


__all__ = [
    "CompletionResult",
    "ChatCompletionProvider",
    "OpenAIChatProvider",
    "build_chat_provider",
]
