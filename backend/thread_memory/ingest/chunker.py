"""Split uploaded documents into text units."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

_PARAGRAPH_RE = re.compile(r"\n\s*\n", re.MULTILINE)
_SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?]?", re.MULTILINE)


@dataclass(slots=True)
class Segment:
    text: str
    start: int
    end: int


@dataclass(slots=True)
class DocumentChunk:
    ordinal: int
    text: str
    start_char: int
    end_char: int


def chunk_text(text: str, max_chars: int = 1200) -> list[DocumentChunk]:
    """Pack paragraphs (split to sentences, then hard-split) into chunks of at most ``max_chars``."""
    if max_chars < 1:
        raise ValueError("max_chars must be positive")
    if not text.strip():
        return []

    pieces: list[Segment] = []
    for paragraph in _paragraphs(text):
        pieces.extend(_fit(paragraph, max_chars))

    chunks: list[DocumentChunk] = []
    current: list[Segment] = []
    for piece in pieces:
        if current and _span(current + [piece]) > max_chars:
            chunks.append(_finalize(text, current, len(chunks)))
            current = []
        current.append(piece)
        if _span(current) >= max_chars:
            chunks.append(_finalize(text, current, len(chunks)))
            current = []
    if current:
        chunks.append(_finalize(text, current, len(chunks)))
    return chunks


def _paragraphs(text: str) -> Iterator[Segment]:
    last_index = 0
    for match in _PARAGRAPH_RE.finditer(text):
        segment = _trim(text, last_index, match.start())
        if segment:
            yield segment
        last_index = match.end()
    if last_index < len(text):
        segment = _trim(text, last_index, len(text))
        if segment:
            yield segment


def _trim(text: str, start: int, end: int) -> Segment | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return Segment(text=text[start:end], start=start, end=end)


def _fit(segment: Segment, max_chars: int) -> list[Segment]:
    if len(segment.text) <= max_chars:
        return [segment]
    sentences = list(_sentences(segment))
    if len(sentences) > 1:
        fitted: list[Segment] = []
        for sentence in sentences:
            fitted.extend(_fit(sentence, max_chars))
        return fitted
    return [
        Segment(
            text=segment.text[offset : offset + max_chars],
            start=segment.start + offset,
            end=segment.start + min(len(segment.text), offset + max_chars),
        )
        for offset in range(0, len(segment.text), max_chars)
    ]


def _sentences(segment: Segment) -> Iterator[Segment]:
    for match in _SENTENCE_RE.finditer(segment.text):
        trimmed = _trim(segment.text, match.start(), match.end())
        if trimmed:
            yield Segment(
                text=trimmed.text,
                start=segment.start + trimmed.start,
                end=segment.start + trimmed.end,
            )


def _span(segments: list[Segment]) -> int:
    return segments[-1].end - segments[0].start


def _finalize(text: str, segments: list[Segment], ordinal: int) -> DocumentChunk:
    start = segments[0].start
    end = segments[-1].end
    return DocumentChunk(ordinal=ordinal, text=text[start:end], start_char=start, end_char=end)


__all__ = ["DocumentChunk", "chunk_text"]
