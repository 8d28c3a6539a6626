"""Prompt text and message assembly."""

from __future__ import annotations

import re
from typing import Sequence

from thread_memory.models.entities import ChatTurn, TextUnit, ThreadSummary

FALLBACK_PHRASE = "I don't know based on the provided files."

GROUNDED_SYSTEM_PROMPT = (
    "You are an assistant with access to the user's own knowledge base: uploaded files and earlier "
    "conversation. First decide whether the question asks about general knowledge or about that "
    "material. For general knowledge, answer from your training data and do not say "
    f"'{FALLBACK_PHRASE}'. For questions about the user's material, answer from the retrieved context "
    "provided below. Use the conversation history to keep continuity."
)

GENERAL_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Answer the user's question using your general knowledge. "
    "Retrieved notes, when present, are short or fragmentary; use them only if they bear on the "
    "question. Use the conversation history to keep continuity."
)

SUMMARY_PROMPT = (
    "Summarize the following conversation in 1-2 sentences (short) and 5-8 sentences (long). "
    'Return JSON only: {"short": "", "long": ""}'
)

CONTEXT_HEADER = "--- RETRIEVED CONTEXT START (most relevant first) ---"
CONTEXT_FOOTER = "--- RETRIEVED CONTEXT END ---"

_MIN_ALPHA_WORDS = 10


def is_meaningful(units: Sequence[TextUnit]) -> bool:
    """Context counts when it holds at least ten words with three or more letters."""
    words = " ".join(unit.text for unit in units).split()
    alpha_words = [word for word in words if sum(ch.isalpha() for ch in word) >= 3]
    return len(alpha_words) >= _MIN_ALPHA_WORDS


def render_context(units: Sequence[TextUnit]) -> str:
    blocks = [f"[{idx}] ({unit.role}) {unit.text}" for idx, unit in enumerate(units, start=1)]
    return "\n".join([CONTEXT_HEADER, "\n\n".join(blocks), CONTEXT_FOOTER])


def build_messages(
    new_message: str,
    context: Sequence[TextUnit],
    history: Sequence[ChatTurn] = (),
    summary: ThreadSummary | None = None,
) -> list[dict[str, str]]:
    """System prompt, summary, history, retrieved context, then the new message."""
    grounded = bool(context) and is_meaningful(context)
    messages = [{"role": "system", "content": GROUNDED_SYSTEM_PROMPT if grounded else GENERAL_SYSTEM_PROMPT}]
    if summary is not None and summary.long:
        messages.append({"role": "system", "content": f"Conversation summary: {summary.long}"})
    messages.extend({"role": turn.role, "content": turn.content} for turn in history)
    if context:
        messages.append({"role": "system", "content": render_context(context)})
    messages.append({"role": "user", "content": new_message})
    return messages


def strip_fallback(text: str) -> str:
    """Drop a trailing fallback phrase when the reply says more than just that."""
    stripped = text.strip()
    if stripped == FALLBACK_PHRASE or FALLBACK_PHRASE not in stripped:
        return text
    return re.sub(r"\s*" + re.escape(FALLBACK_PHRASE) + r"\s*$", "", stripped).strip()


def strip_code_fence(text: str) -> str:
    """Unwrap a reply the model put in a markdown code fence (```json ... ```)."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


__all__ = [
    "FALLBACK_PHRASE",
    "GROUNDED_SYSTEM_PROMPT",
    "GENERAL_SYSTEM_PROMPT",
    "SUMMARY_PROMPT",
    "build_messages",
    "is_meaningful",
    "render_context",
    "strip_code_fence",
    "strip_fallback",
]
