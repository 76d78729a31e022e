"""
Tests for the acquisition result cache.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-FP-N-01 | Same url/script/selector | Equivalence – normal | Same key | fingerprint |
| TC-FP-N-02 | Different script | Equivalence – normal | Different key | fingerprint |
| TC-CC-N-01 | "public, max-age=600" | Equivalence – normal | 600.0 | Cache-Control |
| TC-CC-B-01 | "max-age=0" | Boundary – zero | None | Cache-Control |
| TC-CC-A-01 | None / "no-store" | Abnormal – missing | None | Cache-Control |
| TC-RC-N-01 | set then get | Equivalence – normal | Same entry | Round trip |
| TC-RC-B-01 | ttl=0 | Boundary – zero TTL | get returns None | Immediate expiry |
| TC-RC-B-02 | age == ttl | Boundary – exact | Expired and removed | >= comparison |
| TC-RC-B-03 | age just below ttl | Boundary – below | Fresh | |
| TC-RC-N-02 | Per-entry ttl override | Equivalence – normal | Override wins | max-age |
| TC-RC-N-03 | get_stale after expiry | Equivalence – normal | Entry returned | Revalidation |
| TC-RC-N-04 | Insert at capacity | Equivalence – normal | floor(10%) oldest evicted | Eviction |
| TC-RC-B-04 | max_size 5 at capacity | Boundary – small cache | Exactly 1 evicted | max(1, ...) |
| TC-RC-N-05 | Replace existing key at capacity | Equivalence – normal | No eviction | Same key |
| TC-RC-N-06 | Reads do not refresh order | Equivalence – normal | Oldest insert evicted | Insertion order |
| TC-RC-N-07 | touch | Equivalence – normal | Timestamp reset | 304 |
| TC-RC-N-08 | clear / delete / len / in | Equivalence – normal | Entries removed | |
| TC-RC-A-01 | max_size 0 | Abnormal – invalid | ValueError | |
"""

import pytest

pytestmark = pytest.mark.unit

from crawlkit.crawler.result_cache import (
    CacheEntry,
    ResultCache,
    fingerprint,
    parse_cache_control_max_age,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestFingerprint:
    """Tests for cache key derivation."""

    def test_same_inputs_same_key(self):
        """Identical requests share a key (TC-FP-N-01)."""
        # Given / When
        a = fingerprint("https://example.com/", "1+1", "#main")
        b = fingerprint("https://example.com/", "1+1", "#main")

        # Then
        assert a == b
        assert len(a) == 64

    def test_script_changes_key(self):
        """A different script yields a different key (TC-FP-N-02)."""
        assert fingerprint("https://example.com/") != fingerprint(
            "https://example.com/", script="document.title"
        )


class TestCacheControl:
    """Tests for parse_cache_control_max_age()."""

    def test_max_age_parsed(self):
        """max-age is returned in seconds (TC-CC-N-01)."""
        assert parse_cache_control_max_age("public, max-age=600") == 600.0

    def test_zero_max_age_ignored(self):
        """max-age=0 is not a usable lifetime (TC-CC-B-01)."""
        assert parse_cache_control_max_age("max-age=0") is None

    @pytest.mark.parametrize("header", [None, "", "no-store", "s-maxage=abc"])
    def test_missing_max_age(self, header):
        """Headers without max-age give None (TC-CC-A-01)."""
        assert parse_cache_control_max_age(header) is None


class TestResultCache:
    """Tests for ResultCache storage, expiry and eviction."""

    def test_set_then_get(self, clock):
        """An entry stored is returned while fresh (TC-RC-N-01)."""
        # Given
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)

        # When
        cache.put("k", "payload", etag='"v1"')
        entry = cache.get("k")

        # Then
        assert entry is not None
        assert entry.data == "payload"
        assert entry.etag == '"v1"'
        assert entry.timestamp == clock.now

    def test_zero_ttl_expires_immediately(self, clock):
        """With ttl=0 nothing is ever fresh (TC-RC-B-01)."""
        # Given
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=0, clock=clock)
        cache.put("k", "payload")

        # When / Then
        assert cache.get("k") is None
        assert "k" not in cache

    def test_age_equal_to_ttl_is_expired(self, clock):
        """An entry exactly ttl old is expired and deleted (TC-RC-B-02)."""
        # Given
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.put("k", "payload")

        # When
        clock.advance(60)

        # Then
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_age_below_ttl_is_fresh(self, clock):
        """An entry younger than ttl is returned (TC-RC-B-03)."""
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.put("k", "payload")
        clock.advance(59.9)
        assert cache.get("k") is not None

    def test_entry_ttl_overrides_default(self, clock):
        """A per-entry ttl replaces the cache ttl (TC-RC-N-02)."""
        # Given: cache ttl 60, entry ttl 600
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.put("k", "payload", ttl=600)

        # When
        clock.advance(120)

        # Then
        assert cache.get("k") is not None

    def test_get_stale_ignores_expiry(self, clock):
        """get_stale returns expired entries for revalidation (TC-RC-N-03)."""
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.put("k", "payload", last_modified="Wed, 21 Oct 2015 07:28:00 GMT")
        clock.advance(3600)

        stale = cache.get_stale("k")

        assert stale is not None
        assert stale.has_validators is True

    def test_eviction_removes_oldest_tenth(self, clock):
        """Inserting a new key at capacity evicts floor(10%) oldest (TC-RC-N-04)."""
        # Given: full cache of 20 entries inserted one second apart
        cache: ResultCache[int] = ResultCache(max_size=20, ttl=3600, clock=clock)
        for i in range(20):
            cache.put(f"k{i}", i)
            clock.advance(1)

        # When
        cache.put("new", 99)

        # Then: k0 and k1 evicted, 19 left
        assert len(cache) == 19
        assert "k0" not in cache
        assert "k1" not in cache
        assert "k2" in cache
        assert "new" in cache

    def test_small_cache_evicts_at_least_one(self, clock):
        """max_size 5 gives floor(0.5)=0, so exactly one is evicted (TC-RC-B-04)."""
        cache: ResultCache[int] = ResultCache(max_size=5, ttl=3600, clock=clock)
        for i in range(5):
            cache.put(f"k{i}", i)
            clock.advance(1)

        cache.put("new", 5)

        assert len(cache) == 5
        assert "k0" not in cache

    def test_replacing_key_at_capacity_does_not_evict(self, clock):
        """Overwriting an existing key never triggers eviction (TC-RC-N-05)."""
        cache: ResultCache[int] = ResultCache(max_size=3, ttl=3600, clock=clock)
        for i in range(3):
            cache.put(f"k{i}", i)

        cache.put("k1", 100)

        assert len(cache) == 3
        assert cache.get("k1").data == 100

    def test_reads_do_not_refresh_eviction_order(self, clock):
        """Eviction follows insertion time, not access (TC-RC-N-06)."""
        # Given: k0 oldest, then read repeatedly
        cache: ResultCache[int] = ResultCache(max_size=5, ttl=3600, clock=clock)
        for i in range(5):
            cache.put(f"k{i}", i)
            clock.advance(1)
        for _ in range(3):
            assert cache.get("k0") is not None

        # When
        cache.put("new", 5)

        # Then: k0 still evicted first
        assert "k0" not in cache
        assert "k1" in cache

    def test_touch_resets_timestamp(self, clock):
        """touch() restarts the entry's lifetime (TC-RC-N-07)."""
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.put("k", "payload")
        clock.advance(100)

        touched = cache.touch("k")

        assert touched is not None
        assert touched.timestamp == clock.now
        assert cache.get("k") is not None
        assert cache.touch("missing") is None

    def test_clear_delete_len_contains(self, clock):
        """Housekeeping operations (TC-RC-N-08)."""
        cache: ResultCache[str] = ResultCache(max_size=10, ttl=60, clock=clock)
        cache.set("a", CacheEntry(data="1", timestamp=clock.now))
        cache.set("b", CacheEntry(data="2", timestamp=clock.now))

        assert len(cache) == 2
        assert "a" in cache
        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()

        assert len(cache) == 0
        assert cache.stats() == {"size": 0, "max_size": 10, "ttl": 60}

    def test_invalid_max_size(self):
        """max_size below 1 is rejected (TC-RC-A-01)."""
        with pytest.raises(ValueError, match="max_size"):
            ResultCache(max_size=0)
