from unittest.mock import MagicMock, patch

from dal.schema_cache import SchemaCache

INSTANCE = "https://example.my.salesforce.com"


def test_schema_cache_hit_miss():
    """Stored values are returned until they expire."""
    cache = SchemaCache(ttl_seconds=60, max_entries=10)

    assert cache.get((INSTANCE, None)) is None
    cache.set((INSTANCE, None), ["Account"])

    assert cache.get((INSTANCE, None)) == ["Account"]
    assert len(cache) == 1


def test_schema_cache_ttl_expiration(monkeypatch):
    """Entries expire after the TTL on the monotonic clock."""
    cache = SchemaCache(ttl_seconds=10, max_entries=10)
    current = {"now": 0.0}
    monkeypatch.setattr("dal.schema_cache.time.monotonic", lambda: current["now"])

    cache.set((INSTANCE, "Account"), "meta")
    current["now"] = 5.0
    assert cache.get((INSTANCE, "Account")) == "meta"
    current["now"] = 11.0
    assert cache.get((INSTANCE, "Account")) is None
    assert len(cache) == 0


def test_schema_cache_lru_eviction():
    """The least recently used entry goes first."""
    cache = SchemaCache(ttl_seconds=60, max_entries=2)
    cache.set((INSTANCE, "Account"), 1)
    cache.set((INSTANCE, "Contact"), 2)
    cache.get((INSTANCE, "Account"))
    cache.set((INSTANCE, "Lead"), 3)

    assert cache.get((INSTANCE, "Contact")) is None
    assert cache.get((INSTANCE, "Account")) == 1
    assert cache.get((INSTANCE, "Lead")) == 3


def test_schema_cache_disabled_with_zero_ttl():
    """A non-positive TTL turns caching off."""
    cache = SchemaCache(ttl_seconds=0, max_entries=10)
    cache.set((INSTANCE, None), ["Account"])
    assert cache.get((INSTANCE, None)) is None


def test_schema_cache_env_defaults(monkeypatch):
    """TTL and size come from the environment when not given."""
    monkeypatch.setenv("SALESFORCE_SCHEMA_CACHE_MAX_ENTRIES", "1")
    cache = SchemaCache()
    cache.set((INSTANCE, "Account"), 1)
    cache.set((INSTANCE, "Contact"), 2)
    assert len(cache) == 1


def test_schema_cache_manual_invalidation():
    """Invalidation can target one entity, one instance or everything."""
    cache = SchemaCache(ttl_seconds=60, max_entries=10)
    other = "https://other.my.salesforce.com"
    cache.set((INSTANCE, None), ["Account"])
    cache.set((INSTANCE, "Account"), "meta")
    cache.set((other, "Account"), "meta")

    assert cache.invalidate(INSTANCE, "Account") == 1
    assert cache.get((INSTANCE, None)) == ["Account"]

    assert cache.invalidate(INSTANCE) == 1
    assert cache.get((other, "Account")) == "meta"

    assert cache.invalidate() == 1
    assert len(cache) == 0


def test_invalidate_telemetry():
    """Invalidation records its scope and the number of cleared entries."""
    tracer = MagicMock()
    span = tracer.start_as_current_span.return_value.__enter__.return_value

    with patch("dal.schema_cache.trace.get_tracer", return_value=tracer):
        cache = SchemaCache(ttl_seconds=60, max_entries=10)
        cache.set((INSTANCE, "Account"), "meta")
        cache.invalidate(INSTANCE)

    tracer.start_as_current_span.assert_called_once_with("schema.cache.invalidate")
    span.set_attribute.assert_any_call("schema.cache.scope", "instance")
    span.set_attribute.assert_any_call("schema.cache.entries_cleared", 1)
