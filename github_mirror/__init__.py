# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GitHub API client for gh-mirror.

The client is the external "paged fetcher" the caches and the incremental sync
engine talk to:
- get():        one REST GET, JSON decoded
- rest_pages(): lazy REST pagination (Link: rel="next"), one request per page,
                restartable from any previously returned cursor (the next-page URL)
- graphql():    one GraphQL POST, returns the `data` object

No retries happen here; errors are mapped to `github_mirror.exceptions` types
and propagate to the caller.
"""

from __future__ import annotations

# Standard library imports
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

# Third-party imports
import requests
import yaml

# Local imports
from .exceptions import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubForbiddenError,
    GitHubNotFoundError,
    GitHubRequestError,
    SyncBootstrapError,
)
from .incremental_sync import Page

# Module logger
_logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE: int = 100

__all__ = [
    "GitHubAPIClient",
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubForbiddenError",
    "GitHubNotFoundError",
    "GitHubRequestError",
    "Page",
    "SyncBootstrapError",
]


class GitHubAPIClient:
    """GitHub API client with automatic token detection and per-run call accounting.

    Features:
    - Automatic token detection (token arg > GH_TOKEN env > GITHUB_TOKEN env > GitHub CLI config)
    - REST GET with pagination and GraphQL queries
    - HTTP failures mapped to GitHubAPIError subclasses

    Example:
        client = GitHubAPIClient()
        for page in client.rest_pages("/repos/w3c/respec/contributors"):
            print(len(page.items), page.cursor)
    """

    @staticmethod
    def get_github_token_from_cli() -> Optional[str]:
        """Get GitHub token from GitHub CLI configuration.

        Reads the token from ~/.config/gh/hosts.yml if available.

        Returns:
            GitHub token string, or None if not found
        """
        gh_config_path = Path.home() / '.config' / 'gh' / 'hosts.yml'
        try:
            if not gh_config_path.exists():
                return None
            with open(gh_config_path, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            _logger.debug("Could not read %s: %s", gh_config_path, e)
            return None

        if not isinstance(config, dict) or not isinstance(config.get('github.com'), dict):
            return None
        github_config = config['github.com']
        if 'oauth_token' in github_config:
            return github_config['oauth_token']
        users = github_config.get('users')
        if isinstance(users, dict):
            for _user, user_config in users.items():
                if isinstance(user_config, dict) and 'oauth_token' in user_config:
                    return user_config['oauth_token']
        return None

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        debug_rest: bool = False,
        base_url: str = "https://api.github.com",
        timeout: int = 10,
    ):
        """Initialize GitHub API client.

        Args:
            token: GitHub personal access token. If not provided, will try:
                   1. GH_TOKEN environment variable
                   2. GITHUB_TOKEN environment variable
                   3. GitHub CLI config (~/.config/gh/hosts.yml)
            debug_rest: Log every request URL at DEBUG level.
            base_url: API root (GitHub Enterprise installs differ).
            timeout: Per-request timeout in seconds.
        """
        self.token = token or os.environ.get('GH_TOKEN') or os.environ.get('GITHUB_TOKEN') or self.get_github_token_from_cli()
        self.base_url = base_url.rstrip("/")
        self.timeout = int(timeout)
        self.headers = {'Accept': 'application/vnd.github.v3+json'}
        self.logger = logging.getLogger(self.__class__.__name__)
        self._debug_rest = bool(debug_rest)

        if self.token:
            self.headers['Authorization'] = f'token {self.token}'

        # Per-run call accounting (helps debug "why so many API calls?").
        self._rest_calls_total: int = 0
        self._rest_calls_by_label: Dict[str, int] = {}
        self._graphql_calls_total: int = 0
        self._errors_total: int = 0
        self._errors_by_status: Dict[int, int] = {}
        self._time_total_s: float = 0.0

    def has_token(self) -> bool:
        """Check if a GitHub token is configured."""
        return self.token is not None

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}{endpoint}" if endpoint.startswith('/') else f"{self.base_url}/{endpoint}"

    def _rest_label_for_url(self, url: str) -> str:
        """Coarse label for a REST request URL (keeps owners/numbers from exploding cardinality)."""
        u = str(url or "")
        if re.search(r"/repos/[^/]+/[^/]+/issues/comments\b", u):
            return "issue_comments"
        if re.search(r"/repos/[^/]+/[^/]+/contributors\b", u):
            return "contributors"
        if "/rate_limit" in u:
            return "rate_limit"
        m = re.search(r"https?://[^/]+(/[^?]*)", u)
        path = m.group(1) if m else u
        parts = [p for p in path.split("/") if p]
        return "/".join(parts[:4]) if parts else "unknown"

    def _record_error(self, status_code: int) -> None:
        self._errors_total += 1
        self._errors_by_status[status_code] = int(self._errors_by_status.get(status_code, 0)) + 1

    def _raise_for_status(self, response: requests.Response, endpoint: str) -> None:
        code = int(response.status_code or 0)
        if code < 400:
            return
        self._record_error(code)
        body = (response.text or "")[:500]
        if code == 401:
            raise GitHubAuthError(status_code=code, endpoint=endpoint, message=f"GitHub API returned 401 Unauthorized for {endpoint}")
        if code == 403:
            if response.headers.get('X-RateLimit-Remaining') == '0':
                raise GitHubForbiddenError(
                    status_code=code,
                    endpoint=endpoint,
                    message="GitHub API rate limit exceeded. Provide --token (or login with gh so ~/.config/gh/hosts.yml exists).",
                )
            raise GitHubForbiddenError(status_code=code, endpoint=endpoint, message=f"GitHub API returned 403 Forbidden: {body}")
        if code == 404:
            raise GitHubNotFoundError(status_code=code, endpoint=endpoint, message=f"GitHub API returned 404 Not Found for {endpoint}")
        raise GitHubRequestError(status_code=code, endpoint=endpoint, message=f"GitHub API returned {code} for {endpoint}: {body}")

    def _rest_get(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """requests.get wrapper that increments per-run counters and maps errors."""
        label = self._rest_label_for_url(url)
        self._rest_calls_total += 1
        self._rest_calls_by_label[label] = int(self._rest_calls_by_label.get(label, 0)) + 1
        if self._debug_rest:
            self.logger.debug("GH REST GET [%s] %s params=%s", label, url, params or {})

        t0 = time.monotonic()
        try:
            response = requests.get(url, headers=dict(self.headers), params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            self._record_error(0)
            raise GitHubRequestError(status_code=0, endpoint=url, message=f"GitHub API request failed for {url}: {e}") from e
        finally:
            self._time_total_s += max(0.0, time.monotonic() - t0)

        self._raise_for_status(response, url)
        return response

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make GET request to GitHub API.

        Args:
            endpoint: API endpoint (e.g., "/repos/owner/repo/contributors") or absolute URL
            params: Query parameters

        Returns:
            Decoded JSON response (dict or list)
        """
        return self._rest_get(self._url(endpoint), params=params).json()

    def rest_pages(
        self,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        per_page: Optional[int] = DEFAULT_PER_PAGE,
        cursor: Optional[str] = None,
    ) -> Iterator[Page]:
        """Lazily page through a REST list endpoint.

        Each yielded Page carries the decoded items and the next-page URL as
        its cursor (None on the last page). The next request is only sent
        when the consumer asks for the next page.

        Args:
            endpoint: List endpoint, e.g. "/repos/w3c/respec/issues/comments"
            params: Extra query parameters for the first request
            per_page: Page size (None leaves the server default)
            cursor: Resume from a cursor returned by a previous page

        Example:
            pages = client.rest_pages("/repos/w3c/respec/issues/comments", params={"since": "2026-01-01T00:00:00Z"})
            first = next(pages)
            # later, in another process:
            rest = client.rest_pages("/repos/w3c/respec/issues/comments", cursor=first.cursor)
        """
        if cursor:
            url: Optional[str] = cursor
            query: Optional[Dict[str, Any]] = None
        else:
            url = self._url(endpoint)
            query = dict(params or {})
            if per_page:
                query.setdefault("per_page", int(per_page))

        while url:
            response = self._rest_get(url, params=query)
            # 204 No Content: e.g. /contributors of an empty repository.
            items = [] if int(response.status_code or 0) == 204 else response.json()
            if not isinstance(items, list):
                raise GitHubRequestError(
                    status_code=int(response.status_code or 0),
                    endpoint=url,
                    message=f"Expected a JSON list from {url}, got {type(items).__name__}",
                )
            # The next-page URL already carries every query parameter.
            next_url = (response.links or {}).get("next", {}).get("url")
            yield Page(items=items, cursor=next_url)
            url, query = next_url, None

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its `data` object.

        Partial errors (e.g. NOT_FOUND for one aliased field) are logged and
        the partial data is returned; a response without `data` raises.
        """
        url = f"{self.base_url}/graphql"
        self._graphql_calls_total += 1
        if self._debug_rest:
            self.logger.debug("GH GRAPHQL POST %s variables=%s", url, variables or {})

        t0 = time.monotonic()
        try:
            response = requests.post(
                url,
                headers=dict(self.headers),
                json={"query": query, "variables": dict(variables or {})},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            self._record_error(0)
            raise GitHubRequestError(status_code=0, endpoint=url, message=f"GitHub GraphQL request failed: {e}") from e
        finally:
            self._time_total_s += max(0.0, time.monotonic() - t0)

        self._raise_for_status(response, url)
        payload = response.json()
        errors = payload.get("errors") if isinstance(payload, dict) else None
        data = payload.get("data") if isinstance(payload, dict) else None
        if data is None:
            self._record_error(int(response.status_code or 0))
            messages = "; ".join(str(e.get("message", e)) for e in (errors or []) if isinstance(e, dict)) or "no data"
            raise GitHubRequestError(status_code=int(response.status_code or 0), endpoint=url, message=f"GitHub GraphQL error: {messages}")
        if errors:
            self.logger.debug("GraphQL returned partial errors: %s", errors)
        return data

    def api_call_stats(self) -> Dict[str, Any]:
        """Snapshot of per-run call counters (for CLI/debug output)."""
        return {
            "rest_calls_total": self._rest_calls_total,
            "rest_calls_by_label": dict(self._rest_calls_by_label),
            "graphql_calls_total": self._graphql_calls_total,
            "errors_total": self._errors_total,
            "errors_by_status": dict(self._errors_by_status),
            "time_total_s": round(self._time_total_s, 3),
        }
