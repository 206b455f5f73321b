# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Repo contributors cached API (REST).

Resource:
  GET /repos/{owner}/{repo}/contributors?per_page=100

Example API Response (truncated):
  [
    {"login": "octocat", "contributions": 42, "type": "User"},
    {"login": "hubot", "contributions": 7, "type": "User"}
  ]

Cache:
  caches.contributors (7d TTL), key "{owner}-{repo}", value: [{login, contributions}, ...]
  The list is cached only after the last page was read, so an interrupted
  listing is never served as complete.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient
    from ..caches import MirrorCaches


CACHE_KEY_FORMAT = "{owner}-{repo}"
ENDPOINT_FORMAT = "/repos/{owner}/{repo}/contributors"


def iter_contributors(
    api: "GitHubAPIClient",
    caches: "MirrorCaches",
    *,
    owner: str,
    repo: str,
) -> Iterator[Dict[str, Any]]:
    """Yield `{"login", "contributions"}` for every contributor of owner/repo."""
    key = CACHE_KEY_FORMAT.format(owner=owner, repo=repo)
    cached = caches.contributors.get(key)
    if cached is not None:
        yield from cached
        return

    contributors: List[Dict[str, Any]] = []
    for page in api.rest_pages(ENDPOINT_FORMAT.format(owner=owner, repo=repo), per_page=100):
        for raw in page.items:
            contributor = {
                "login": str(raw.get("login") or ""),
                "contributions": int(raw.get("contributions") or 0),
            }
            yield contributor
            contributors.append(contributor)

    caches.contributors.set(key, contributors)
