# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Commit history since a ref, synced incrementally (GraphQL).

Resource:
  repository(owner, name).object(expression: "HEAD").history(since: $since, after: $cursor)

Example history node:
  {
    "messageHeadline": "Fix typo in README",
    "abbreviatedOid": "1a2b3c4",
    "committedDate": "2026-01-24T09:30:00Z",
    "author": {"user": {"login": "octocat", "name": "The Octocat"}}
  }

Sync state (caches.commits_state, key "{owner}/{repo}@{ref}"):
  marker: committedDate of the newest commit seen so far
          (cold start: committedDate of `ref` itself)
  items:  every commit since `ref`, in first-seen order

`history(since:)` is inclusive, so the last node of the final page is the
commit at the marker; it is skipped. The store has a 15 day TTL and is read
without allow_stale: an older state is rebuilt from `ref`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Optional, TYPE_CHECKING

from ..exceptions import GitHubNotFoundError, SyncBootstrapError
from ..incremental_sync import IncrementalSource, IncrementalSync, MarkerFrom, Page

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient
    from ..caches import MirrorCaches


CACHE_KEY_FORMAT = "{owner}/{repo}@{ref}"

SINCE_DATE_QUERY = """
query($org: String!, $repo: String!, $ref: String!) {
  repository(owner: $org, name: $repo) {
    object(expression: $ref) {
      ... on Commit {
        history(first: 1) {
          nodes {
            committedDate
          }
        }
      }
    }
  }
}
"""

HISTORY_QUERY = """
query($org: String!, $repo: String!, $since: GitTimestamp!, $cursor: String) {
  repository(owner: $org, name: $repo) {
    object(expression: "HEAD") {
      ... on Commit {
        history(since: $since, after: $cursor) {
          nodes {
            messageHeadline
            abbreviatedOid
            committedDate
            author {
              user {
                login
                name
              }
            }
          }
          pageInfo {
            endCursor
            hasNextPage
          }
        }
      }
    }
  }
}
"""


class CommitHistorySource(IncrementalSource[Dict[str, Any], Dict[str, Any]]):
    inclusive_boundary = True
    marker_from = MarkerFrom.FIRST

    def __init__(self, api: "GitHubAPIClient", *, owner: str, repo: str, ref: str):
        self.api = api
        self.owner = owner
        self.repo = repo
        self.ref = ref

    def bootstrap_marker(self) -> str:
        data = self.api.graphql(SINCE_DATE_QUERY, {"org": self.owner, "repo": self.repo, "ref": self.ref})
        repository = data.get("repository")
        if repository is None:
            raise SyncBootstrapError("Cannot find given repository")
        try:
            return str(repository["object"]["history"]["nodes"][0]["committedDate"])
        except (KeyError, IndexError, TypeError) as e:
            raise SyncBootstrapError("Cannot query `since` date using given ref") from e

    def fetch_pages(self, marker: str) -> Iterator[Page[Dict[str, Any]]]:
        cursor: Optional[str] = None
        while True:
            variables = {"org": self.owner, "repo": self.repo, "since": marker, "cursor": cursor}
            data = self.api.graphql(HISTORY_QUERY, variables)
            try:
                history = data["repository"]["object"]["history"]
            except (KeyError, TypeError) as e:
                raise GitHubNotFoundError(
                    status_code=404,
                    endpoint="graphql",
                    message=f"No commit history for {self.owner}/{self.repo}",
                ) from e
            page_info = history.get("pageInfo") or {}
            cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
            yield Page(items=list(history.get("nodes") or []), cursor=cursor)
            if not cursor:
                return

    def item_of(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return record

    def identity_of(self, item: Dict[str, Any]) -> str:
        return str(item.get("abbreviatedOid"))

    def marker_of(self, record: Dict[str, Any]) -> str:
        return str(record.get("committedDate"))


def iter_commits(
    api: "GitHubAPIClient",
    caches: "MirrorCaches",
    *,
    owner: str,
    repo: str,
    ref: str,
) -> Iterator[Dict[str, Any]]:
    """Yield commits made on HEAD since `ref` (excluding `ref`), cached ones first.

    Example:
        for commit in iter_commits(api, caches, owner="w3c", repo="respec", ref="HEAD~5"):
            print(commit["abbreviatedOid"], commit["messageHeadline"])
    """
    key = CACHE_KEY_FORMAT.format(owner=owner, repo=repo, ref=ref)
    sync = IncrementalSync(caches.commits_state, resume_stale=False)
    yield from sync.run(key, CommitHistorySource(api, owner=owner, repo=repo, ref=ref))
