"""
Price Cache Tests.

============================================================
PURPOSE
============================================================
Verify the expiring key -> value stores.

TEST PRINCIPLES:
- A miss looks the same whether never set or expired
- Non-positive TTL stores nothing
- Last write wins
- Keys render deterministically

============================================================
"""

from datetime import date, datetime, timezone

import pytest

from core.clock import MockClock
from core.config import CacheSettings, EngineConfig
from price_cache.disabled import DisabledCacheStore
from price_cache.factory import create_cache_store
from price_cache.keys import CacheKey, CacheOperation
from price_cache.memory import InMemoryCacheStore
from price_cache.models import decode_series, encode_series
from price_cache.sql import SqlCacheStore


START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Fixed mock clock."""
    return MockClock(START)


@pytest.fixture
def memory_store(clock):
    """In-memory store on the mock clock."""
    return InMemoryCacheStore(max_entries=100, clock=clock)


@pytest.fixture
def sql_store(clock):
    """SQL store on in-memory SQLite."""
    store = SqlCacheStore.from_url("sqlite:///:memory:", clock=clock)
    yield store


# ============================================================
# KEYS
# ============================================================

class TestCacheKey:
    """Tests for CacheKey rendering."""

    def test_current_key(self):
        """Test current keys carry no time part."""
        key = CacheKey.current("defillama", "coingecko:bitcoin")

        assert str(key) == "price:current:defillama:coingecko:bitcoin"

    def test_date_key_from_datetime(self):
        """Test datetimes collapse to their date for date keys."""
        key = CacheKey.at_date("defillama", "coingecko:eth", datetime(2024, 2, 3, 15, tzinfo=timezone.utc))

        assert str(key) == "price:date:defillama:coingecko:eth:2024-02-03"

    def test_instant_key_uses_unix_seconds(self):
        """Test instants render as whole unix seconds."""
        key = CacheKey.at_instant("coingecko", "coingecko:eth", datetime(1970, 1, 1, 0, 1, tzinfo=timezone.utc))

        assert str(key) == "price:instant:coingecko:coingecko:eth:60"

    def test_identical_queries_render_identically(self):
        """Test equal inputs give equal keys."""
        a = CacheKey(CacheOperation.SERIES, "nft", "nft:ethereum:0xabc", at=date(2024, 1, 1), interval="30d")
        b = CacheKey(CacheOperation.SERIES, "nft", "nft:ethereum:0xabc", at=date(2024, 1, 1), interval="30d")

        assert a == b
        assert str(a) == str(b)
        assert str(a).endswith(":2024-01-01:30d")


class TestSeriesEncoding:
    """Tests for series JSON encoding."""

    def test_decode_skips_malformed_rows(self):
        """Test malformed rows are dropped."""
        raw = encode_series([(date(2024, 1, 1), 1.5)]) + [["not-a-date", 2], [None]]

        assert decode_series(raw) == [(date(2024, 1, 1), 1.5)]


# ============================================================
# MEMORY STORE
# ============================================================

class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, memory_store):
        """Test a stored value is returned before expiry."""
        key = CacheKey.current("defillama", "coingecko:bitcoin")

        await memory_store.set(key, 42000.5, 300)

        assert await memory_store.get(key) == 42000.5
        assert await memory_store.get(str(key)) == 42000.5

    @pytest.mark.asyncio
    async def test_expired_is_miss(self, memory_store, clock):
        """Test entries vanish once their TTL has elapsed."""
        await memory_store.set("k", 1.0, 60)

        clock.advance(seconds=60)

        assert await memory_store.get("k") is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_stores_nothing(self, memory_store):
        """Test ttl <= 0 is a no-op."""
        await memory_store.set("zero", 1.0, 0)
        await memory_store.set("negative", 1.0, -5)

        assert await memory_store.get("zero") is None
        assert await memory_store.get("negative") is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, memory_store):
        """Test overwriting a key."""
        await memory_store.set("k", 1.0, 60)
        await memory_store.set("k", 2.0, 60)

        assert await memory_store.get("k") == 2.0

    @pytest.mark.asyncio
    async def test_get_many_partial(self, memory_store):
        """Test misses are omitted from get_many."""
        await memory_store.set_many([("a", 1.0, 60), ("b", 2.0, 60)])

        found = await memory_store.get_many(["a", "b", "c"])

        assert found == {"a": 1.0, "b": 2.0}

    @pytest.mark.asyncio
    async def test_eviction_drops_closest_to_expiry(self, clock):
        """Test overflow evicts the entries expiring first."""
        store = InMemoryCacheStore(max_entries=2, clock=clock)

        await store.set("short", 1.0, 10)
        await store.set("long", 2.0, 1000)
        await store.set("longer", 3.0, 2000)

        assert await store.get("short") is None
        assert await store.get("long") == 2.0
        assert await store.get("longer") == 3.0

    @pytest.mark.asyncio
    async def test_stats(self, memory_store):
        """Test hit and miss counters."""
        await memory_store.set("a", 1.0, 60)
        await memory_store.get("a")
        await memory_store.get("missing")

        stats = await memory_store.stats()

        assert stats["backend"] == "memory"
        assert stats["entries"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0


# ============================================================
# DISABLED STORE
# ============================================================

class TestDisabledCacheStore:
    """Tests for DisabledCacheStore."""

    @pytest.mark.asyncio
    async def test_always_miss(self):
        """Test writes are discarded."""
        store = DisabledCacheStore()

        await store.set("k", 1.0, 300)

        assert await store.get("k") is None
        assert (await store.stats())["entries"] == 0


# ============================================================
# SQL STORE
# ============================================================

class TestSqlCacheStore:
    """Tests for SqlCacheStore on SQLite."""

    @pytest.mark.asyncio
    async def test_round_trip_json_values(self, sql_store):
        """Test scalar and structured values survive storage."""
        await sql_store.set("price", 1.25, 300)
        await sql_store.set("series", [["2024-01-01", 1.5]], 300)
        await sql_store.set("fallback", {"value": 2.0, "source": "reservoir"}, 300)

        assert await sql_store.get("price") == 1.25
        assert await sql_store.get("series") == [["2024-01-01", 1.5]]
        assert await sql_store.get("fallback") == {"value": 2.0, "source": "reservoir"}

        await sql_store.close()

    @pytest.mark.asyncio
    async def test_expiry_and_purge(self, sql_store, clock):
        """Test expired rows are invisible and purgeable."""
        await sql_store.set("old", 1.0, 60)
        await sql_store.set("fresh", 2.0, 3600)

        clock.advance(seconds=120)

        assert await sql_store.get("old") is None
        assert await sql_store.get("fresh") == 2.0
        assert await sql_store.purge_expired() == 1
        assert (await sql_store.stats())["entries"] == 1

        await sql_store.close()


# ============================================================
# FACTORY
# ============================================================

class TestCacheFactory:
    """Tests for create_cache_store."""

    def test_memory_default(self):
        """Test the default backend."""
        assert isinstance(create_cache_store(EngineConfig()), InMemoryCacheStore)

    def test_disabled(self):
        """Test disabling the cache."""
        config = EngineConfig(cache=CacheSettings(enabled=False))

        assert isinstance(create_cache_store(config), DisabledCacheStore)

    def test_sql_without_url_degrades(self):
        """Test SQL backend without URL falls back to disabled."""
        config = EngineConfig(cache=CacheSettings(backend="sql", database_url=None))

        assert isinstance(create_cache_store(config), DisabledCacheStore)

    def test_sql_with_url(self):
        """Test SQL backend on SQLite."""
        config = EngineConfig(cache=CacheSettings(backend="sql", database_url="sqlite:///:memory:"))

        assert isinstance(create_cache_store(config), SqlCacheStore)
