"""Idempotency cache for retried client operations.

One cache instance is constructed per process and injected wherever
idempotent execution is needed; there is no module-level singleton. Entries
expire after a fixed TTL (10 minutes by default). Reads and writes for a key
are serialized by a lock, and the first successful writer for a key wins:
a later ``put`` for a live key keeps the stored result.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0


class IdempotencyCacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str
    result: Any
    stored_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


class IdempotencyCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Optional[Callable[[], float]] = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._clock = clock or time.monotonic
        self._entries: Dict[str, IdempotencyCacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[IdempotencyCacheEntry]:
        """Return the live entry for ``key`` or None; expired entries are dropped."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not entry.is_live(now):
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
            return entry

    def put(self, key: str, result: Any) -> IdempotencyCacheEntry:
        """Store ``result`` under ``key`` unless a live entry already exists.

        Returns the entry that is stored after the call.
        """
        now = self._clock()
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.is_live(now):
                logger.info("idempotency_put_kept_existing key=%s", key)
                return existing
            entry = IdempotencyCacheEntry(key=key, result=result, stored_at=now, expires_at=now + self._ttl)
            self._entries[key] = entry
            return entry

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if not e.is_live(now)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self._ttl,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def stable_payload_hash(payload: Any) -> str:
    """Compute a stable sha256 hash of a JSON-compatible payload."""
    body_json = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(body_json.encode("utf-8")).hexdigest()


__all__ = ["DEFAULT_TTL_SECONDS", "IdempotencyCacheEntry", "IdempotencyCache", "stable_payload_hash"]
