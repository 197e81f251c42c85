"""TTL + LRU cache for entity metadata lookups."""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from opentelemetry import trace

from common.config.env import get_env_int

logger = logging.getLogger(__name__)

# (instance_url, entity API name or None for the vocabulary)
CacheKey = Tuple[str, Optional[str]]

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_ENTRIES = 500


@dataclass
class CacheEntry:
    """Cache entry with value and expiry time."""

    value: Any
    expires_at: float


class SchemaCache:
    """In-memory read-through cache for schema metadata.

    Entries expire after ``ttl_seconds`` (monotonic clock) and the least recently
    used entry is evicted once ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
    ) -> None:
        """Initialize cache with TTL and size limits, defaulting from env."""
        if ttl_seconds is None:
            ttl_seconds = get_env_int("SALESFORCE_SCHEMA_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS)
        if max_entries is None:
            max_entries = get_env_int("SALESFORCE_SCHEMA_CACHE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES)
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._cache: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._tracer = trace.get_tracer(__name__)

    def get(self, key: CacheKey) -> Optional[Any]:
        """Fetch a cached entry if it is still valid."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if time.monotonic() >= entry.expires_at:
            self._cache.pop(key, None)
            return None
        self._cache.move_to_end(key)
        return entry.value

    def set(self, key: CacheKey, value: Any) -> None:
        """Store an entry with the configured TTL."""
        if self._ttl_seconds <= 0:
            return
        self._cache.pop(key, None)
        self._cache[key] = CacheEntry(value=value, expires_at=time.monotonic() + self._ttl_seconds)
        self._evict_if_needed()

    def invalidate(self, instance_url: Optional[str] = None, entity: Optional[str] = None) -> int:
        """Invalidate entries by scope and return how many were removed."""
        scope = "global"
        if instance_url:
            scope = "entity" if entity else "instance"

        with self._tracer.start_as_current_span("schema.cache.invalidate") as span:
            span.set_attribute("schema.cache.scope", scope)
            if instance_url is None:
                keys = list(self._cache.keys())
            elif entity is None:
                keys = [k for k in self._cache if k[0] == instance_url]
            else:
                keys = [k for k in self._cache if k == (instance_url, entity)]
            for key in keys:
                self._cache.pop(key, None)
            span.set_attribute("schema.cache.entries_cleared", len(keys))

        logger.info("schema_cache_invalidate scope=%s cleared=%s", scope, len(keys))
        return len(keys)

    def _evict_if_needed(self) -> None:
        if self._max_entries <= 0:
            return
        while len(self._cache) > self._max_entries:
            key, _ = self._cache.popitem(last=False)
            logger.info("schema_cache_evict key=%s", key)

    def __len__(self) -> int:
        """Return number of entries."""
        return len(self._cache)
