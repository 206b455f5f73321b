# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Logins of everyone who commented on a repo's issues (REST, incremental).

Resource:
  GET /repos/{owner}/{repo}/issues/comments?per_page=100[&since={marker}]

Example API Response (truncated):
  [
    {
      "id": 123456789,
      "user": {"login": "octocat"},
      "created_at": "2026-01-24T09:30:00Z",
      "author_association": "CONTRIBUTOR"
    }
  ]

Caching:
  - caches.issue_commentors (7d TTL, key "{owner}-{repo}"): complete list,
    served without any network call while fresh
  - caches.issue_commentors_state (durable, same key): sync state with
    marker = created_at of the last comment seen, items = unique logins

NOTE: the first pass over a busy repo walks the whole comment history and can
be slow. Commentors are not necessarily contributors.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, TYPE_CHECKING

from ..incremental_sync import IncrementalSource, IncrementalSync, MarkerFrom, Page

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient
    from ..caches import MirrorCaches


CACHE_KEY_FORMAT = "{owner}-{repo}"
ENDPOINT_FORMAT = "/repos/{owner}/{repo}/issues/comments"

# Comments by deleted accounts come back with "user": null.
GHOST_LOGIN = "ghost"


class IssueCommentsSource(IncrementalSource[Dict[str, Any], str]):
    marker_from = MarkerFrom.LAST

    def __init__(self, api: "GitHubAPIClient", *, owner: str, repo: str):
        self.api = api
        self.endpoint = ENDPOINT_FORMAT.format(owner=owner, repo=repo)

    def bootstrap_marker(self) -> str:
        # No reference lookup needed: start from the first comment.
        return ""

    def fetch_pages(self, marker: str) -> Iterator[Page[Dict[str, Any]]]:
        params = {"since": marker} if marker else {}
        return self.api.rest_pages(self.endpoint, params=params, per_page=100)

    def item_of(self, record: Dict[str, Any]) -> str:
        user = record.get("user") or {}
        return str(user.get("login") or GHOST_LOGIN)

    def identity_of(self, item: str) -> str:
        return item

    def marker_of(self, record: Dict[str, Any]) -> str:
        return str(record.get("created_at") or "")


def iter_issue_commentors(
    api: "GitHubAPIClient",
    caches: "MirrorCaches",
    *,
    owner: str,
    repo: str,
) -> Iterator[str]:
    """Yield unique commentor logins: known ones immediately, then new ones as pages arrive."""
    key = CACHE_KEY_FORMAT.format(owner=owner, repo=repo)
    cached = caches.issue_commentors.get(key)
    if cached is not None:
        yield from cached
        return

    logins: List[str] = []
    sync = IncrementalSync(caches.issue_commentors_state, resume_stale=True)
    for login in sync.run(key, IssueCommentsSource(api, owner=owner, repo=repo)):
        logins.append(login)
        yield login

    caches.issue_commentors.set(key, logins)
