"""Content hashing."""

from __future__ import annotations

import hashlib


def content_key(model: str, text: str) -> str:
    """sha256 over ``model::text``, so vectors of different models never share a key."""
    digest = hashlib.sha256()
    for part in (model, "::", text):
        digest.update(part.encode("utf-8"))
    return digest.hexdigest()
