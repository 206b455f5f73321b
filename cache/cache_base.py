#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Time-bounded key/value caches with optional JSON persistence.

Building blocks shared by every GitHub mirror resource:
- TimedEntry: a value stamped with its insertion time
- TTLCache: key -> TimedEntry mapping, staleness checked lazily on read,
  optional periodic sweep, one JSON file per named cache
- StatsTrackingCache: wraps a TTLCache and counts get() hits/misses
- durable_cache(): TTLCache with unbounded TTL and no sweep, i.e. a persisted dict

Staleness is a read-time predicate, not removal: `get(key, allow_stale=True)`
still returns the last known value until invalidate() removes it. The sync
engine relies on this to resume from "last known good" state.

Disk format (one file per cache name, <cache_dir>/<name>.json):
    [
      ["w3c/respec@HEAD~5", {"inserted_at": 1737705600.25, "value": {...}}],
      ...
    ]
Legacy entries written as {"time": <epoch ms>, "value": ...} are accepted on load.
"""

from __future__ import annotations

import json
import logging
import math
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, List, Optional, Tuple, TypeVar, Union

_logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

# "Never stale": used by durable caches whose freshness is managed by the caller.
DURABLE_TTL_S: float = math.inf


@dataclass(frozen=True)
class TimedEntry(Generic[V]):
    """A cached value and the wall-clock time (epoch seconds) it was set."""

    inserted_at: float
    value: V

    def to_json(self) -> Dict[str, Any]:
        return {"inserted_at": self.inserted_at, "value": self.value}

    @classmethod
    def from_json(cls, raw: Any) -> "TimedEntry[Any]":
        if not isinstance(raw, dict) or "value" not in raw:
            raise ValueError(f"malformed cache entry: {raw!r}")
        if "inserted_at" in raw:
            inserted_at = float(raw["inserted_at"])
        elif "time" in raw:
            # Legacy schema stored epoch milliseconds.
            inserted_at = float(raw["time"]) / 1000.0
        else:
            raise ValueError(f"cache entry has no timestamp: {raw!r}")
        return cls(inserted_at=inserted_at, value=raw["value"])


@dataclass
class CacheStats:
    """Hit/miss counters for StatsTrackingCache.get()."""
    hit: int = 0
    miss: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hit + self.miss
        return (self.hit / total) if total else 0.0


class TTLCache(Generic[K, V]):
    """Key/value cache where entries older than `ttl_s` are treated as absent.

    Args:
        ttl_s: Maximum entry age in seconds (`DURABLE_TTL_S` for never stale).
        name: Storage slot name; required for dump()/load() and the periodic sweep.
        auto_evict: Run invalidate() every `ttl_s` seconds on a daemon timer
            (only when a name is given and the TTL is finite).
        data: Initial `(key, TimedEntry)` pairs.
        cache_dir: Base directory for the storage slot (default: gh_mirror_cache_dir()).
        clock: Returns "now" in epoch seconds; injectable for tests.

    Example:
        cache = TTLCache(3600, name="gh/contributors", auto_evict=True).load()
        cache.set("w3c-respec", [{"login": "octocat", "contributions": 3}])
        cache.get("w3c-respec")                   # value while fresh, None after 1h
        cache.get("w3c-respec", allow_stale=True)  # value until invalidate() drops it
        cache.dump()
    """

    def __init__(
        self,
        ttl_s: float = DURABLE_TTL_S,
        *,
        name: Optional[str] = None,
        auto_evict: bool = False,
        data: Optional[Iterable[Tuple[K, TimedEntry[V]]]] = None,
        cache_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._mu = Lock()
        self._entries: Dict[K, TimedEntry[V]] = dict(data or [])
        self.ttl_s = ttl_s
        self.name = name
        self._cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._clock = clock
        self._auto_evict = bool(auto_evict)
        self._timer: Optional[threading.Timer] = None
        self._closed = False

        if self._auto_evict and self.name and math.isfinite(float(ttl_s)) and ttl_s > 0:
            self._schedule_sweep()

    # ----------------------------
    # Read / write path
    # ----------------------------

    def set(self, key: K, value: V) -> "TTLCache[K, V]":
        """Insert or replace `key`, stamped with the current time."""
        entry = TimedEntry(inserted_at=self._clock(), value=value)
        with self._mu:
            self._entries[key] = entry
        return self

    def get(self, key: K, allow_stale: bool = False) -> Optional[V]:
        """Return the value for `key`, or None if missing (or stale and not `allow_stale`)."""
        with self._mu:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if not allow_stale and self._is_stale(entry):
            return None
        return entry.value

    def has(self, key: K, allow_stale: bool = False) -> bool:
        return self.get(key, allow_stale) is not None

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._mu:
            return len(self._entries)

    def _is_stale(self, entry: TimedEntry[V]) -> bool:
        return (self._clock() - entry.inserted_at) > self.ttl_s

    # ----------------------------
    # Eviction
    # ----------------------------

    def invalidate(self) -> None:
        """Remove every entry whose age exceeds the TTL."""
        with self._mu:
            busted = [k for (k, e) in self._entries.items() if self._is_stale(e)]
            for k in busted:
                del self._entries[k]
        if busted:
            _logger.debug("Evicted %d stale entries from cache %s", len(busted), self.name or "<unnamed>")

    def _schedule_sweep(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        timer = threading.Timer(float(self.ttl_s), self._sweep)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _sweep(self) -> None:
        if self._closed:
            return
        self.invalidate()
        # ttl_s may have been changed (set_ttl) since the timer was armed.
        if not self._closed and math.isfinite(float(self.ttl_s)) and self.ttl_s > 0:
            self._schedule_sweep()

    def close(self) -> None:
        """Stop the periodic sweep (entries are kept)."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ----------------------------
    # Persistence
    # ----------------------------

    def data(self) -> List[Tuple[K, TimedEntry[V]]]:
        """Non-stale `(key, entry)` pairs: exactly what dump() writes."""
        with self._mu:
            return [(k, e) for (k, e) in self._entries.items() if not self._is_stale(e)]

    def cache_file(self) -> Path:
        """Path of this cache's storage slot."""
        if not self.name:
            raise ValueError("unnamed cache has no storage slot")
        if self._cache_dir is not None:
            return self._cache_dir / f"{self.name}.json"
        from common import resolve_cache_path
        return resolve_cache_path(f"{self.name}.json")

    def dump(self) -> None:
        """Write the non-stale entries to the storage slot (atomic overwrite).

        Stale entries are dropped from the snapshot. I/O and serialization
        errors propagate to the caller.
        """
        path = self.cache_file()
        entries = self.data()
        payload = json.dumps([[k, e.to_json()] for (k, e) in entries], separators=(",", ":"))

        path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic write (tmp file + rename)
        tmp = path.with_name(f".{path.name}.tmp.{os.getpid()}")
        tmp.write_text(payload)
        os.replace(str(tmp), str(path))
        _logger.debug("Dumped %d entries to %s", len(entries), path)

    def load(self) -> "TTLCache[K, V]":
        """Merge entries from the storage slot into memory and return self.

        A missing or unreadable file leaves the cache as it was: the failure
        is logged, never raised.
        """
        if not self.name:
            return self
        path = self.cache_file()
        try:
            raw = json.loads(path.read_text())
            entries = _entries_from_json(raw)
        except FileNotFoundError:
            _logger.debug("No cache file for %s at %s", self.name, path)
            return self
        except (OSError, ValueError, TypeError) as e:
            _logger.warning("Failed to load cache: %s. %s", self.name, e)
            return self

        with self._mu:
            self._entries.update(entries)
        _logger.debug("Loaded %d entries for cache %s", len(entries), self.name)
        return self


def _entries_from_json(raw: Any) -> List[Tuple[Any, TimedEntry[Any]]]:
    if not isinstance(raw, list):
        raise ValueError("expected a JSON array of [key, entry] pairs")
    out: List[Tuple[Any, TimedEntry[Any]]] = []
    for pair in raw:
        if not isinstance(pair, list) or len(pair) != 2:
            raise ValueError(f"malformed cache pair: {pair!r}")
        key, entry = pair
        # JSON has no tuples; composite keys come back as lists.
        if isinstance(key, list):
            key = tuple(key)
        try:
            hash(key)
        except TypeError as e:
            raise ValueError(f"unhashable cache key: {key!r}") from e
        out.append((key, TimedEntry.from_json(entry)))
    return out


class StatsTrackingCache(Generic[K, V]):
    """TTLCache wrapper that counts hits and misses of get().

    Every other operation is forwarded unchanged; counters are process-local
    and never persisted. `set_ttl()` is the hook for an external policy that
    tunes freshness from the observed hit rate.
    """

    def __init__(self, cache: TTLCache[K, V]):
        self.cache = cache
        self._stats = CacheStats()

    def get(self, key: K, allow_stale: bool = False) -> Optional[V]:
        value = self.cache.get(key, allow_stale)
        if value is not None:
            self._stats.hit += 1
        else:
            self._stats.miss += 1
        return value

    def stats(self) -> CacheStats:
        """Snapshot copy of the counters."""
        return CacheStats(hit=self._stats.hit, miss=self._stats.miss)

    def clear_stats(self) -> None:
        self._stats.hit = 0
        self._stats.miss = 0

    def set_ttl(self, ttl_s: float) -> None:
        self.cache.ttl_s = ttl_s

    @property
    def ttl_s(self) -> float:
        return self.cache.ttl_s

    @property
    def name(self) -> Optional[str]:
        return self.cache.name

    def has(self, key: K, allow_stale: bool = False) -> bool:
        return self.cache.has(key, allow_stale)

    def __contains__(self, key: object) -> bool:
        return key in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    def set(self, key: K, value: V) -> "StatsTrackingCache[K, V]":
        self.cache.set(key, value)
        return self

    def invalidate(self) -> None:
        self.cache.invalidate()

    def data(self) -> List[Tuple[K, TimedEntry[V]]]:
        return self.cache.data()

    def dump(self) -> None:
        self.cache.dump()

    def load(self) -> "StatsTrackingCache[K, V]":
        self.cache.load()
        return self

    def close(self) -> None:
        self.cache.close()


def durable_cache(
    name: str,
    *,
    cache_dir: Optional[Union[str, Path]] = None,
    clock: Callable[[], float] = time.time,
) -> TTLCache[Any, Any]:
    """Persisted dictionary: unbounded TTL and no periodic sweep.

    Freshness of the stored values (e.g. a sync resume marker) is managed by
    the caller, so invalidate() never removes anything here.
    """
    return TTLCache(DURABLE_TTL_S, name=name, auto_evict=False, cache_dir=cache_dir, clock=clock)
