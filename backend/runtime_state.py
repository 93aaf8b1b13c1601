"""
Process-local runtime state for the gateway.

The only thing shared between requests is the collection schema cache. It
is advisory: entries expire after a short TTL and are dropped as soon as the
store rejects a filter built from them.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SchemaCacheEntry:
    schema: Dict[str, Any]
    stored_at: float
    stored_at_iso: str


class SchemaCache:
    """Short-lived cache of collection schemas, keyed by collection id."""

    def __init__(self, ttl_seconds: float = 300.0) -> None:
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._entries: Dict[str, SchemaCacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._guard = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl_seconds > 0

    async def get(self, collection_id: str) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        async with self._guard:
            entry = self._entries.get(collection_id)
            if entry is None:
                self._misses += 1
                return None
            if time.monotonic() - entry.stored_at > self._ttl_seconds:
                self._entries.pop(collection_id, None)
                self._misses += 1
                return None
            self._hits += 1
            return entry.schema

    async def put(self, collection_id: str, schema: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        async with self._guard:
            self._entries[collection_id] = SchemaCacheEntry(
                schema=schema,
                stored_at=time.monotonic(),
                stored_at_iso=_utc_iso_now(),
            )

    async def invalidate(self, collection_id: str) -> bool:
        async with self._guard:
            removed = self._entries.pop(collection_id, None) is not None
            if removed:
                self._invalidations += 1
            return removed

    async def status(self) -> Dict[str, Any]:
        async with self._guard:
            return {
                "enabled": self.enabled,
                "ttl_seconds": self._ttl_seconds,
                "entries": {
                    key: entry.stored_at_iso for key, entry in self._entries.items()
                },
                "hits": self._hits,
                "misses": self._misses,
                "invalidations": self._invalidations,
            }
