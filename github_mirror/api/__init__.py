"""Resource-specific GitHub API wrappers with caching.

Each module in this package owns:
- the API calls for one resource (via GitHubAPIClient)
- the cache key/value format
- how the resource is kept fresh (TTL lookup or incremental sync)
"""

from .commits_cached import iter_commits
from .contributors_cached import iter_contributors
from .issue_commentors_cached import iter_issue_commentors
from .issues_cached import get_issues
from .users_cached import get_users_details

__all__ = [
    "get_issues",
    "get_users_details",
    "iter_commits",
    "iter_contributors",
    "iter_issue_commentors",
]
