"""Deterministic fingerprints for input snapshots.

Identical inputs (as multisets) map to identical fingerprints, so a host
can memoise results without worrying about event ordering.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable

from pydantic import BaseModel


def _canonical(item: Any) -> str:
    if isinstance(item, BaseModel):
        item = item.model_dump(mode="json")
    return json.dumps(item, sort_keys=True, separators=(",", ":"), default=str)


def fingerprint(*parts: Iterable[Any] | Any) -> str:
    """SHA-256 hex digest over one or more input parts.

    Iterable parts (lists of events, locations, ...) are hashed as sorted
    collections so that order does not affect the fingerprint.  Scalars
    (tiers, horizons, entity ids) are hashed positionally.
    """
    digest = hashlib.sha256()
    for part in parts:
        if isinstance(part, (list, tuple, set, frozenset)):
            encoded = sorted(_canonical(item) for item in part)
            digest.update(("[" + ",".join(encoded) + "]").encode("utf-8"))
        else:
            digest.update(_canonical(part).encode("utf-8"))
        digest.update(b"|")
    return digest.hexdigest()
