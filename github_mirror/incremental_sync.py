# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Incremental sync of paginated, append-only GitHub collections.

Re-reading a whole commit history or comment stream on every call is slow and
burns rate limit. Instead each collection key keeps a sync state in a
persisted cache:

    {"marker": "<timestamp or cursor>", "items": [<previously seen items>]}

A sync pass (IncrementalSync.run):
  1. Resume: load the state (warm) or ask the source for a bootstrap marker (cold)
  2. Drain: yield the previously seen items immediately, deduplicated
  3. Fetch: pull pages from the marker on, yield items not seen before
  4. Commit: only if something new was seen, rewrite the state and dump()

run() is a generator. A page is requested only after the consumer has taken
every item of the previous page, and stopping early (break / close()) skips
the commit. A fetch error propagates after the already-yielded items; the
state stays at the last committed marker, so the next pass redoes the failed
range instead of skipping it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Hashable, Iterator, List, Optional, Set, TypeVar, Union

from cache.cache_base import StatsTrackingCache, TTLCache

_logger = logging.getLogger(__name__)

R = TypeVar("R")  # raw record as returned by the fetcher
T = TypeVar("T")  # item delivered to the caller and stored in the sync state


class MarkerFrom(str, Enum):
    """Which record's position becomes the next marker."""

    FIRST = "first"  # first new record (newest-first streams such as commit history)
    LAST = "last"  # last record seen (oldest-first streams such as comments)


SyncStore = Union[TTLCache[str, Dict[str, Any]], StatsTrackingCache[str, Dict[str, Any]]]


@dataclass(frozen=True)
class Page(Generic[R]):
    """One page from a paged fetcher; `cursor` is None on the last page."""

    items: List[R]
    cursor: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return not self.cursor


@dataclass
class SyncState:
    """Persisted progress of one synchronized collection."""

    marker: str
    items: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"marker": self.marker, "items": list(self.items)}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["SyncState"]:
        """Parse a stored state; None when the entry is not a usable state."""
        if not isinstance(raw, dict):
            return None
        marker = raw.get("marker")
        items = raw.get("items")
        if not isinstance(marker, str) or not isinstance(items, list):
            return None
        return cls(marker=marker, items=list(items))


class IncrementalSource(ABC, Generic[R, T]):
    """What the sync engine needs to know about one kind of collection.

    Subclasses define:
    - how to get a cold-start marker
    - how to fetch pages from a marker
    - how a raw record maps to an item, its identity and its position (marker)
    """

    # Upstream range includes the record at the marker: drop the last record of
    # the final page so the boundary item is not re-delivered on every pass.
    inclusive_boundary: bool = False

    marker_from: MarkerFrom = MarkerFrom.LAST

    @abstractmethod
    def bootstrap_marker(self) -> str:
        """Marker for a collection with no sync state ("" means from the beginning).

        Raises SyncBootstrapError when the reference point cannot be resolved.
        """

    @abstractmethod
    def fetch_pages(self, marker: str) -> Iterator[Page[R]]:
        """Lazily yield pages starting at `marker`."""

    @abstractmethod
    def item_of(self, record: R) -> T:
        """Map a raw record to the delivered (and stored) item."""

    @abstractmethod
    def identity_of(self, item: T) -> Hashable:
        """Dedup key of an item (commit oid, user login, ...)."""

    @abstractmethod
    def marker_of(self, record: R) -> str:
        """Position of a raw record, usable as a resume marker."""


class IncrementalSync:
    """Drives IncrementalSource passes against a persisted state store.

    Args:
        store: Cache holding SyncState dicts. A durable cache is the normal
            choice; a TTL cache bounds how long a state may be resumed from.
        resume_stale: Read the state with `allow_stale=True`.
    """

    def __init__(self, store: SyncStore, *, resume_stale: bool = True):
        self.store = store
        self.resume_stale = bool(resume_stale)

    def load_state(self, key: str, source: Optional[IncrementalSource[Any, Any]] = None) -> Optional[SyncState]:
        """Stored state for `key`, or None when missing or malformed.

        With a `source`, every stored item must also yield a hashable identity.
        """
        raw = self.store.get(key, allow_stale=self.resume_stale)
        state = SyncState.from_dict(raw) if raw is not None else None
        if state is not None and source is not None:
            try:
                for item in state.items:
                    hash(source.identity_of(item))
            except (AttributeError, KeyError, TypeError):
                state = None
        if raw is not None and state is None:
            _logger.warning("Ignoring malformed sync state for %s", key)
        return state

    def run(self, key: str, source: IncrementalSource[Any, T]) -> Iterator[T]:
        """Yield every item of the collection: stored ones first, then new ones.

        Raises:
            ValueError: if `source.marker_from` is not a MarkerFrom value.
        """
        marker_from = MarkerFrom(source.marker_from)
        state = self.load_state(key, source)
        if state is None:
            # Cold: SyncBootstrapError propagates before anything is yielded.
            marker = source.bootstrap_marker()
            previous: List[T] = []
            _logger.debug("Sync %s: cold start from marker %r", key, marker)
        else:
            marker = state.marker
            previous = state.items
            _logger.debug("Sync %s: resuming from marker %r with %d items", key, marker, len(previous))

        seen: Set[Hashable] = set()
        items: List[T] = []
        for item in previous:
            ident = source.identity_of(item)
            if ident in seen:
                continue
            seen.add(ident)
            items.append(item)
            yield item

        new_marker: Optional[str] = None
        new_count = 0
        for page in source.fetch_pages(marker):
            records = list(page.items)
            if page.is_last and source.inclusive_boundary and records:
                records.pop()

            for record in records:
                if marker_from is MarkerFrom.FIRST:
                    if new_marker is None:
                        new_marker = source.marker_of(record)
                else:
                    new_marker = source.marker_of(record)

                item = source.item_of(record)
                ident = source.identity_of(item)
                if ident in seen:
                    continue
                seen.add(ident)
                items.append(item)
                new_count += 1
                yield item

        if not new_count:
            _logger.debug("Sync %s: no new items, state left at marker %r", key, marker)
            return

        committed = SyncState(marker=new_marker or marker, items=items)
        self.store.set(key, committed.to_dict())
        self.store.dump()
        _logger.debug("Sync %s: committed %d new items, marker %r", key, new_count, committed.marker)
