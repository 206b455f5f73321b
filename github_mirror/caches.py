# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""All caches used by the GitHub mirror, created and loaded in one step.

Nothing is a module-level singleton: callers build a MirrorCaches with
`MirrorCaches.open()` (which returns only after every persisted cache has been
loaded) and pass it to the cached API functions.

    with MirrorCaches.open() as caches:
        for commit in iter_commits(api, caches, owner="w3c", repo="respec", ref="HEAD~5"):
            ...
        caches.dump()

Cache files (under gh_mirror_cache_dir()):
  gh/commits.json               commit-history sync states (15d TTL)
  gh/issue-commentors.json      commentor sync states (durable)
  gh/issue-commentors-list.json complete commentor lists (7d TTL)
  gh/contributors.json          contributor lists (7d TTL)
  gh/issues.json                issue details (12h TTL)
  gh/users.json                 user details (7d TTL)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from cache.cache_base import CacheStats, StatsTrackingCache, TTLCache, durable_cache
from common import (
    DEFAULT_COMMITS_SYNC_TTL_S,
    DEFAULT_CONTRIBUTORS_TTL_S,
    DEFAULT_ISSUE_COMMENTORS_TTL_S,
    DEFAULT_ISSUES_TTL_S,
    DEFAULT_USERS_TTL_S,
    ConfigError,
    gh_mirror_cache_dir,
)

_logger = logging.getLogger(__name__)


@dataclass
class MirrorCaches:
    commits_state: TTLCache[str, Dict[str, Any]]
    issue_commentors_state: TTLCache[str, Dict[str, Any]]
    issue_commentors: StatsTrackingCache[str, List[str]]
    contributors: StatsTrackingCache[str, List[Dict[str, Any]]]
    issues: StatsTrackingCache[str, Dict[str, Any]]
    users: StatsTrackingCache[str, Dict[str, Any]]

    @classmethod
    def open(
        cls,
        cache_dir: Optional[Union[str, Path]] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "MirrorCaches":
        """Create every cache and load its persisted entries.

        Raises:
            ConfigError: if the cache directory cannot be used.
        """
        base = Path(cache_dir) if cache_dir is not None else gh_mirror_cache_dir()
        if base.exists() and not base.is_dir():
            raise ConfigError(f"Cache directory is not a directory: {base}")

        def _tracked(ttl_s: int, name: str) -> StatsTrackingCache[str, Any]:
            return StatsTrackingCache(TTLCache(ttl_s, name=name, auto_evict=True, cache_dir=base, clock=clock))

        caches = cls(
            # Stale states are dropped on dump(), which bounds the file size.
            commits_state=TTLCache(DEFAULT_COMMITS_SYNC_TTL_S, name="gh/commits", cache_dir=base, clock=clock),
            issue_commentors_state=durable_cache("gh/issue-commentors", cache_dir=base, clock=clock),
            issue_commentors=_tracked(DEFAULT_ISSUE_COMMENTORS_TTL_S, "gh/issue-commentors-list"),
            contributors=_tracked(DEFAULT_CONTRIBUTORS_TTL_S, "gh/contributors"),
            issues=_tracked(DEFAULT_ISSUES_TTL_S, "gh/issues"),
            users=_tracked(DEFAULT_USERS_TTL_S, "gh/users"),
        )
        for cache in caches._all():
            cache.load()
        _logger.debug("Opened gh-mirror caches under %s", base)
        return caches

    def _all(self) -> List[Union[TTLCache[str, Any], StatsTrackingCache[str, Any]]]:
        return [
            self.commits_state,
            self.issue_commentors_state,
            self.issue_commentors,
            self.contributors,
            self.issues,
            self.users,
        ]

    def dump(self) -> None:
        """Persist every cache (write errors propagate)."""
        for cache in self._all():
            cache.dump()

    def close(self) -> None:
        """Stop periodic eviction timers."""
        for cache in self._all():
            cache.close()

    def stats(self) -> Dict[str, CacheStats]:
        """Hit/miss counters per stats-tracking cache, keyed by cache name."""
        tracked = [self.issue_commentors, self.contributors, self.issues, self.users]
        return {str(c.name): c.stats() for c in tracked}

    def __enter__(self) -> "MirrorCaches":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
