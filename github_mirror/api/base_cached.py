# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Base class for batch-lookup GitHub resources (issues, users).

Goal: make each cached resource readable + debuggable by enforcing a small interface:
- cache key format
- API call "display format"
- one network round trip for every key not fresh in the cache
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Hashable, Iterable, List, Optional, Set, TypeVar, TYPE_CHECKING

from cache.cache_base import StatsTrackingCache

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient

I = TypeVar("I", bound=Hashable)
T = TypeVar("T")

_logger = logging.getLogger(__name__)


def unique_in_order(values: Iterable[I]) -> List[I]:
    out: List[I] = []
    seen: Set[I] = set()
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class BatchLookupCachedBase(ABC, Generic[I, T]):
    """Shared get_many() flow: per-key cache lookup -> fetch all misses at once -> cache write.

    Subclasses define:
    - cache key format
    - the batched fetch (one request for every missing identifier)

    `fetch_missing()` may return None for an identifier that does not exist
    upstream; such results are returned but never cached. Identifiers absent
    from its result are absent from get_many()'s result too.
    """

    def __init__(self, api: "GitHubAPIClient", cache: StatsTrackingCache[str, Any]):
        self.api = api
        self.cache = cache

    @property
    @abstractmethod
    def cache_name(self) -> str:
        """Short name used in log lines (e.g. 'issues')."""

    @abstractmethod
    def api_call_format(self) -> str:
        """Human-readable description of the API call this resource performs."""

    @abstractmethod
    def cache_key(self, ident: I) -> str:
        """Return a stable cache key for one identifier."""

    @abstractmethod
    def fetch_missing(self, idents: List[I]) -> Dict[I, Optional[T]]:
        """Fetch every identifier in one network call."""

    def get_many(self, idents: Iterable[I]) -> Dict[I, Optional[T]]:
        result: Dict[I, Optional[T]] = {}
        missing: List[I] = []
        for ident in unique_in_order(idents):
            cached = self.cache.get(self.cache_key(ident))
            if cached is not None:
                result[ident] = cached
            else:
                missing.append(ident)

        if not missing:
            return result

        _logger.debug("%s: %d cached, fetching %d", self.cache_name, len(result), len(missing))
        fetched = self.fetch_missing(missing)
        for ident, value in fetched.items():
            result[ident] = value
            if value is not None:
                self.cache.set(self.cache_key(ident), value)
        return result
