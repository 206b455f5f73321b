# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Issue details batch lookup (GraphQL).

Resource (one query for every issue number not fresh in the cache):
  query($owner: String!, $name: String!) {
    repository(owner: $owner, name: $name) {
      i123: issue(number: 123) { ...issue }
      i456: issue(number: 456) { ...issue }
    }
  }

Returned value per issue number:
  {"title": "...", "state": "OPEN"|"CLOSED", "labels": [{"name": "bug", "color": "d73a4a"}]}
  or None when the issue does not exist (not cached, re-queried next time).

Cache:
  caches.issues (12h TTL), key "{owner}/{name}/{number}"
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from ..exceptions import GitHubNotFoundError
from .base_cached import BatchLookupCachedBase

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient
    from ..caches import MirrorCaches


CACHE_NAME = "issues"
CACHE_KEY_FORMAT = "{owner}/{name}/{number}"

ISSUE_FRAGMENT = """
fragment issue on Issue {
  title
  state
  labels(first: 10) {
    nodes {
      name
      color
    }
  }
}
"""


# Numbers are not valid GraphQL aliases.
def alias(number: int) -> str:
    return f"i{int(number)}"


def anti_alias(field_name: str) -> int:
    return int(field_name[1:])


def build_issues_query(numbers: List[int]) -> str:
    sub_queries = "\n    ".join(f"{alias(n)}: issue(number: {int(n)}) {{ ...issue }}" for n in numbers)
    return (
        "query($owner: String!, $name: String!) {\n"
        "  repository(owner: $owner, name: $name) {\n"
        f"    {sub_queries}\n"
        "  }\n"
        "}\n"
        f"{ISSUE_FRAGMENT}"
    )


class IssuesCached(BatchLookupCachedBase[int, Dict[str, Any]]):
    def __init__(self, api: "GitHubAPIClient", caches: "MirrorCaches", *, owner: str, name: str):
        super().__init__(api, caches.issues)
        self.owner = owner
        self.name = name

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return "GraphQL repository(owner, name) { i<n>: issue(number: <n>) { title state labels } ... }"

    def cache_key(self, ident: int) -> str:
        return CACHE_KEY_FORMAT.format(owner=self.owner, name=self.name, number=int(ident))

    def fetch_missing(self, idents: List[int]) -> Dict[int, Optional[Dict[str, Any]]]:
        data = self.api.graphql(build_issues_query(idents), {"owner": self.owner, "name": self.name})
        repository = data.get("repository")
        if repository is None:
            raise GitHubNotFoundError(
                status_code=404,
                endpoint="graphql",
                message=f"Cannot find repository {self.owner}/{self.name}",
            )

        out: Dict[int, Optional[Dict[str, Any]]] = {}
        for field_name, details in repository.items():
            number = anti_alias(field_name)
            if not details:
                out[number] = None
                continue
            out[number] = {
                "title": details.get("title"),
                "state": details.get("state"),
                "labels": list((details.get("labels") or {}).get("nodes") or []),
            }
        return out


def get_issues(
    api: "GitHubAPIClient",
    caches: "MirrorCaches",
    *,
    owner: str,
    name: str,
    numbers: Iterable[int],
) -> Dict[int, Optional[Dict[str, Any]]]:
    """Details for each issue number (None for issues that do not exist)."""
    nums = [int(n) for n in numbers]
    return IssuesCached(api, caches, owner=owner, name=name).get_many(nums)
