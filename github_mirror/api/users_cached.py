# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""User details batch lookup (GraphQL).

Resource (one query for every login not fresh in the cache):
  query {
    u_octocat: user(login: "octocat") { ...user }
    u_some_one: user(login: "some-one") { ...user }
  }

Returned value per requested login: {"name": "The Octocat", "login": "octocat"}
("login" is the spelling GitHub returns). Unknown logins are left out of the result.

Cache:
  caches.users (7d TTL), key: lower-cased login (GitHub logins are case-insensitive)
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from .base_cached import BatchLookupCachedBase

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient
    from ..caches import MirrorCaches


CACHE_NAME = "users"

USER_FRAGMENT = """
fragment user on User {
  name
  login
}
"""


def alias(login: str) -> str:
    # Aliases allow only [_A-Za-z0-9] and must not start with a digit.
    return "u_" + re.sub(r"[^\w]", "_", login)


def build_users_query(logins: List[str]) -> str:
    sub_queries = "\n  ".join(f"{alias(login)}: user(login: {json.dumps(login)}) {{ ...user }}" for login in logins)
    return f"query {{\n  {sub_queries}\n}}\n{USER_FRAGMENT}"


class UsersCached(BatchLookupCachedBase[str, Dict[str, Any]]):
    def __init__(self, api: "GitHubAPIClient", caches: "MirrorCaches"):
        super().__init__(api, caches.users)

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return 'GraphQL { u_<login>: user(login: "<login>") { name login } ... }'

    def cache_key(self, ident: str) -> str:
        return ident.lower()

    def fetch_missing(self, idents: List[str]) -> Dict[str, Optional[Dict[str, Any]]]:
        data = self.api.graphql(build_users_query(idents))
        requested = {login.lower(): login for login in idents}
        out: Dict[str, Optional[Dict[str, Any]]] = {}
        for user in data.values():
            if not user:
                continue
            login = str(user["login"])
            out[requested.get(login.lower(), login)] = {"name": user.get("name"), "login": user["login"]}
        return out


def get_users_details(
    api: "GitHubAPIClient",
    caches: "MirrorCaches",
    logins: Iterable[str],
) -> Dict[str, Dict[str, Any]]:
    """Details for each known login, keyed by the login as requested."""
    found = UsersCached(api, caches).get_many([str(login) for login in logins])
    return {login: user for (login, user) in found.items() if user is not None}
