from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def short_hash(key: str) -> str:
    """Stable 12 character digest used to refer to a key in logs."""
    return hash_text(key)[:12]


def fetch_key(resource: str, *parts: object, params: dict[str, Any] | None = None) -> str:
    """Build a FetchKey such as ``profile:<user_id>``.

    Extra ``params`` are folded in as a hash of their canonical JSON so that
    equivalent parameter dicts always map to the same key.
    """
    if not resource or ":" in resource:
        raise ValueError("resource must be a non-empty name without ':'")
    segments = [resource, *(str(p) for p in parts)]
    if params:
        segments.append(hash_text(canonical_json(params))[:16])
    return ":".join(segments)
