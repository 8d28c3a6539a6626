"""Error taxonomy for the retrieval and completion core."""

from __future__ import annotations

from typing import Any


class MemoryCoreError(Exception):
    """Base class for every error raised by the core."""

    retryable: bool = False
    code: str = "memory_core_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidInput(MemoryCoreError):
    """Caller supplied unusable input; fails fast."""

    code = "invalid_input"


class ProviderUnavailable(MemoryCoreError):
    """Transient provider failure, including timeouts."""

    retryable = True
    code = "provider_unavailable"


class DimensionMismatch(MemoryCoreError):
    """Vectors of different dimensionality were compared."""

    code = "dimension_mismatch"


class ModelMismatch(DimensionMismatch):
    """Vectors produced by different embedding models were compared."""

    code = "model_mismatch"


class ContentPolicyRejected(MemoryCoreError):
    """The completion provider refused the request on policy grounds."""

    code = "content_policy_rejected"


class EmptyReply(MemoryCoreError):
    """The completion provider returned blank content."""

    code = "empty_reply"


__all__ = [
    "MemoryCoreError",
    "InvalidInput",
    "ProviderUnavailable",
    "DimensionMismatch",
    "ModelMismatch",
    "ContentPolicyRejected",
    "EmptyReply",
]
