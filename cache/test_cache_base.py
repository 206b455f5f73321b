"""
Pytest tests for cache_base.py (TTLCache, StatsTrackingCache, durable_cache).

Run from the repository root:
    pytest cache/test_cache_base.py -v
"""

import json
import logging
import math

import pytest

from cache.cache_base import (
    CacheStats,
    DURABLE_TTL_S,
    StatsTrackingCache,
    TimedEntry,
    TTLCache,
    durable_cache,
)


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def _cache(clock, tmp_path, ttl_s=1.0, name="test/cache"):
    return TTLCache(ttl_s, name=name, cache_dir=tmp_path, clock=clock)


# ============================================================================
# TTL semantics
# ============================================================================

def test_get_returns_value_within_ttl_and_none_after(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=10)
    cache.set("k", "v")

    clock.advance(10)  # age == TTL is still fresh
    assert cache.get("k") == "v"
    assert cache.has("k")

    clock.advance(0.001)
    assert cache.get("k") is None
    assert not cache.has("k")
    assert "k" not in cache


def test_stale_read_override_until_invalidate(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=1)
    cache.set("k", [1, 2])
    clock.advance(5)

    assert cache.get("k") is None
    assert cache.get("k", allow_stale=True) == [1, 2]
    assert cache.has("k", allow_stale=True)

    cache.invalidate()
    assert cache.get("k", allow_stale=True) is None


def test_missing_key_is_absent(clock, tmp_path):
    cache = _cache(clock, tmp_path)
    assert cache.get("nope") is None
    assert cache.get("nope", allow_stale=True) is None


def test_set_replaces_entry_and_refreshes_timestamp(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=10)
    cache.set("k", 1)
    clock.advance(8)
    assert cache.set("k", 2) is cache
    clock.advance(8)
    assert cache.get("k") == 2


def test_invalidate_removes_only_stale_entries_and_is_idempotent(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=10)
    cache.set("old", 1)
    clock.advance(6)
    cache.set("new", 2)
    clock.advance(6)

    cache.invalidate()
    after_once = cache.data()
    cache.invalidate()

    assert cache.data() == after_once
    assert len(cache) == 1
    assert cache.get("new") == 2
    assert cache.get("old", allow_stale=True) is None


def test_end_to_end_scenario(clock, tmp_path):
    """TTL=1000ms: fresh at 500ms, absent at 1500ms, stale-readable until invalidate()."""
    cache = _cache(clock, tmp_path, ttl_s=1.0)
    start = clock.now
    cache.set("x", 1)

    clock.now = start + 0.5
    assert cache.get("x") == 1

    clock.now = start + 1.5
    assert cache.get("x") is None
    assert cache.get("x", allow_stale=True) == 1

    cache.invalidate()
    clock.now = start + 1.6
    assert cache.get("x", allow_stale=True) is None


def test_initial_data_is_used(clock):
    entry = TimedEntry(inserted_at=clock.now, value="seed")
    cache = TTLCache(60, data=[("k", entry)], clock=clock)
    assert cache.get("k") == "seed"


# ============================================================================
# Persistence
# ============================================================================

def test_dump_load_round_trip(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set("a", {"x": 1})
    cache.set("b", [1, "two"])
    cache.dump()

    restored = _cache(clock, tmp_path, ttl_s=60).load()
    assert restored.get("a") == {"x": 1}
    assert restored.get("b") == [1, "two"]
    assert len(restored) == 2


def test_dump_creates_nested_directories_and_json_pairs(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=60, name="gh/nested/cache")
    cache.set("k", "v")
    cache.dump()

    path = tmp_path / "gh" / "nested" / "cache.json"
    assert path.exists()
    assert json.loads(path.read_text()) == [["k", {"inserted_at": clock.now, "value": "v"}]]
    # no temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["cache.json"]


def test_dump_drops_stale_entries(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=10)
    cache.set("stale", 1)
    clock.advance(11)
    cache.set("fresh", 2)
    cache.dump()

    restored = _cache(clock, tmp_path, ttl_s=10).load()
    assert restored.get("stale", allow_stale=True) is None
    assert restored.get("fresh") == 2


def test_loaded_entries_keep_their_original_age(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=10)
    cache.set("k", "v")
    cache.dump()

    clock.advance(11)
    restored = _cache(clock, tmp_path, ttl_s=10).load()
    assert restored.get("k") is None
    assert restored.get("k", allow_stale=True) == "v"


def test_load_missing_file_leaves_cache_empty(clock, tmp_path):
    cache = _cache(clock, tmp_path)
    assert cache.load() is cache
    assert len(cache) == 0


def test_load_corrupt_file_logs_warning_and_keeps_memory(clock, tmp_path, caplog):
    path = tmp_path / "test" / "cache.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json")

    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set("mem", 1)
    with caplog.at_level(logging.WARNING, logger="cache.cache_base"):
        assert cache.load() is cache

    assert cache.get("mem") == 1
    assert len(cache) == 1
    assert any("Failed to load cache: test/cache" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize(
    "payload",
    [
        '{"k": 1}',
        '[["k"]]',
        '[["k", {"value": 1}]]',
        '[["k", 5]]',
        '[[{"a": 1}, {"inserted_at": 1, "value": 2}]]',
        '[[[1, [2]], {"inserted_at": 1, "value": 2}]]',
    ],
)
def test_load_malformed_entries_restores_nothing(clock, tmp_path, caplog, payload):
    path = tmp_path / "test" / "cache.json"
    path.parent.mkdir(parents=True)
    path.write_text(payload)

    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set("mem", 1)
    with caplog.at_level(logging.WARNING, logger="cache.cache_base"):
        assert cache.load() is cache
    assert cache.data() == [("mem", TimedEntry(inserted_at=clock.now, value=1))]
    assert any("Failed to load cache: test/cache" in r.getMessage() for r in caplog.records)


def test_load_accepts_legacy_millisecond_entries(clock, tmp_path):
    path = tmp_path / "test" / "cache.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps([["k", {"time": clock.now * 1000, "value": "legacy"}]]))

    cache = _cache(clock, tmp_path, ttl_s=60).load()
    assert cache.get("k") == "legacy"


def test_load_merges_over_memory(clock, tmp_path):
    writer = _cache(clock, tmp_path, ttl_s=60)
    writer.set("shared", "disk")
    writer.dump()

    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set("shared", "memory")
    cache.set("only-mem", 1)
    cache.load()
    assert cache.get("shared") == "disk"
    assert cache.get("only-mem") == 1


def test_composite_keys_survive_round_trip(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set(("w3c", "respec"), 1)
    cache.dump()
    assert _cache(clock, tmp_path, ttl_s=60).load().get(("w3c", "respec")) == 1


def test_dump_unserializable_value_raises_and_keeps_previous_file(clock, tmp_path):
    cache = _cache(clock, tmp_path, ttl_s=60)
    cache.set("ok", 1)
    cache.dump()

    cache.set("bad", object())
    with pytest.raises(TypeError):
        cache.dump()
    assert _cache(clock, tmp_path, ttl_s=60).load().get("ok") == 1


def test_unnamed_cache_has_no_storage_slot(clock):
    cache = TTLCache(60, clock=clock)
    cache.set("k", 1)
    assert cache.load() is cache
    with pytest.raises(ValueError):
        cache.dump()


def test_default_cache_dir_comes_from_environment(clock, tmp_path, monkeypatch):
    monkeypatch.setenv("GH_MIRROR_CACHE_DIR", str(tmp_path / "env-dir"))
    cache = TTLCache(60, name="gh/users", clock=clock)
    assert cache.cache_file() == tmp_path / "env-dir" / "gh" / "users.json"


# ============================================================================
# Periodic eviction
# ============================================================================

def test_auto_evict_timer_only_for_named_caches(clock):
    unnamed = TTLCache(60, auto_evict=True, clock=clock)
    named = TTLCache(60, name="t", auto_evict=True, clock=clock)
    no_evict = TTLCache(60, name="t", clock=clock)
    try:
        assert unnamed._timer is None
        assert named._timer is not None and named._timer.daemon
        assert no_evict._timer is None
    finally:
        named.close()
    assert named._timer is None


def test_sweep_invalidates_and_rearms(clock):
    cache = TTLCache(60, name="t", auto_evict=True, clock=clock)
    try:
        cache.set("k", 1)
        clock.advance(61)
        first_timer = cache._timer
        cache._sweep()
        assert cache.get("k", allow_stale=True) is None
        assert cache._timer is not None and cache._timer is not first_timer
    finally:
        cache.close()


def test_sweep_after_close_does_nothing(clock):
    cache = TTLCache(60, name="t", auto_evict=True, clock=clock)
    cache.close()
    cache.set("k", 1)
    clock.advance(61)
    cache._sweep()
    assert cache.get("k", allow_stale=True) == 1
    assert cache._timer is None


# ============================================================================
# StatsTrackingCache
# ============================================================================

def test_stats_count_hits_and_misses(clock, tmp_path):
    tracked = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    tracked.set("a", 1)

    assert tracked.get("a") == 1      # hit
    assert tracked.get("b") is None   # miss
    clock.advance(11)
    assert tracked.get("a") is None   # miss (stale)
    assert tracked.get("a", allow_stale=True) == 1  # hit

    assert tracked.stats() == CacheStats(hit=2, miss=2)
    assert tracked.stats().hit_rate == 0.5


def test_stats_snapshot_is_a_copy_and_clear_keeps_values(clock, tmp_path):
    tracked = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    tracked.set("a", 1)
    tracked.get("a")
    snapshot = tracked.stats()

    tracked.clear_stats()
    assert snapshot == CacheStats(hit=1, miss=0)
    assert tracked.stats() == CacheStats()
    assert tracked.stats().hit_rate == 0.0
    assert tracked.cache.get("a") == 1


def test_has_is_forwarded_without_counting(clock, tmp_path):
    tracked = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    tracked.set("a", 1)
    assert tracked.has("a")
    assert "a" in tracked
    assert tracked.stats() == CacheStats()


def test_set_ttl_changes_freshness(clock, tmp_path):
    tracked = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    tracked.set("a", 1)
    clock.advance(20)
    assert tracked.get("a") is None
    tracked.set_ttl(30)
    assert tracked.ttl_s == 30
    assert tracked.get("a") == 1


def test_stats_cache_persists_through_wrapped_cache(clock, tmp_path):
    tracked = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    tracked.set("a", 1).dump()
    restored = StatsTrackingCache(_cache(clock, tmp_path, ttl_s=10))
    assert restored.load() is restored
    assert restored.get("a") == 1
    assert restored.name == "test/cache"


# ============================================================================
# durable_cache
# ============================================================================

def test_durable_cache_never_goes_stale(clock, tmp_path):
    store = durable_cache("gh/state", cache_dir=tmp_path, clock=clock)
    assert store.ttl_s == DURABLE_TTL_S and math.isinf(store.ttl_s)
    assert store._timer is None

    store.set("k", {"marker": "m", "items": []})
    clock.advance(10 * 365 * 24 * 3600)
    store.invalidate()
    assert store.get("k") == {"marker": "m", "items": []}

    store.dump()
    assert durable_cache("gh/state", cache_dir=tmp_path, clock=clock).load().get("k") is not None
