"""FastAPI application setup for Thread Memory."""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from thread_memory.api.dependencies import get_app_settings, get_database, get_embedder
from thread_memory.api.routes_admin import router as admin_router
from thread_memory.api.routes_chat import router as chat_router
from thread_memory.core.errors import (
    ContentPolicyRejected,
    DimensionMismatch,
    EmptyReply,
    InvalidInput,
    MemoryCoreError,
    ProviderUnavailable,
)
from thread_memory.core.logging import configure_logging, get_logger
from thread_memory.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from thread_memory.models.dto import ErrorResponse
from thread_memory.storage.store import ThreadNotFound

configure_logging()
logger = get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[MemoryCoreError], int]] = [
    (InvalidInput, 400),
    (ContentPolicyRejected, 422),
    (EmptyReply, 502),
    (ProviderUnavailable, 503),
    (DimensionMismatch, 500),
]

app = FastAPI(
    title="Thread Memory",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router, prefix="/threads", tags=["threads"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.middleware("http")
async def record_request_metrics(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    start = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        endpoint = _route_template(request)
        REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(status)).inc()
        REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start)


@app.exception_handler(MemoryCoreError)
async def handle_core_error(request: Request, exc: MemoryCoreError) -> JSONResponse:
    status = next((code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500)
    if status >= 500 and not isinstance(exc, ProviderUnavailable):
        logger.error("Request %s failed: %s", request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.exception_handler(ThreadNotFound)
async def handle_thread_not_found(request: Request, exc: ThreadNotFound) -> JSONResponse:
    body = ErrorResponse(code="thread_not_found", message=str(exc))
    return JSONResponse(status_code=404, content=body.model_dump())


def _route_template(request: Request) -> str:
    """Path template of the matched route, so label cardinality stays bounded."""
    return getattr(request.scope.get("route"), "path", None) or "unmatched"


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_embedder()
