"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "tmem_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "tmem_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

PROVIDER_CALLS = Counter(
    "tmem_provider_calls_total",
    "Calls made to embedding and completion providers",
    labelnames=("kind", "outcome"),
    registry=REGISTRY,
)

PROVIDER_RETRIES = Counter(
    "tmem_provider_retries_total",
    "Retries scheduled after a transient provider failure",
    labelnames=("operation",),
    registry=REGISTRY,
)

SELECTED_UNITS = Histogram(
    "tmem_selected_context_units",
    "Number of context units injected into one completion request",
    buckets=(0, 1, 2, 4, 8, 16, 32),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "PROVIDER_CALLS",
    "PROVIDER_RETRIES",
    "SELECTED_UNITS",
    "metrics_response",
]
