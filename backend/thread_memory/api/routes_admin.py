"""Administrative and utility routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from thread_memory.api.dependencies import get_keyword_extractor
from thread_memory.core.metrics import metrics_response
from thread_memory.keywords.extractor import KeywordExtractor
from thread_memory.models.dto import KeywordRequest, KeywordResponse

router = APIRouter()


@router.get("/health", summary="Liveness check")
def health() -> dict[str, bool]:
    return {"ok": True}


@router.get("/metrics", summary="Prometheus metrics")
def metrics() -> Response:
    return metrics_response()


@router.post("/keywords", response_model=KeywordResponse, summary="Extract keywords from text")
def extract_keywords(
    request: KeywordRequest,
    extractor: KeywordExtractor = Depends(get_keyword_extractor),
) -> KeywordResponse:
    keywords = extractor.extract(request.text, target_count=request.count)
    return KeywordResponse(keywords=keywords.as_list())
