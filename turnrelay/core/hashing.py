"""Stable hashing for session operating modes."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def compute_mode_hash(mode: dict[str, Any]) -> str:
    """Compute a deterministic hash for an operating-mode mapping.

    Keys whose value is ``None`` are dropped so an unset option and an
    absent option hash identically.
    """
    hash_input = {key: value for key, value in mode.items() if value is not None}
    payload = json.dumps(hash_input, ensure_ascii=True, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
