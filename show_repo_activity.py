#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Show GitHub repository activity through the gh-mirror caches.

Commits and issue commentors are synced incrementally: repeated runs only
fetch what changed since the previous run. Contributors, issues and users are
served from TTL caches. All caches persist under $GH_MIRROR_CACHE_DIR
(default ~/.cache/gh-mirror).
"""

import argparse
import json
import logging
import sys
from typing import Any, List, Optional, Tuple

from common import ConfigError, setup_logging
from github_mirror import GitHubAPIClient, GitHubAPIError, SyncBootstrapError
from github_mirror.api import (
    get_issues,
    get_users_details,
    iter_commits,
    iter_contributors,
    iter_issue_commentors,
)
from github_mirror.caches import MirrorCaches

_logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _owner_repo(value: str) -> Tuple[str, str]:
    owner, sep, repo = value.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise argparse.ArgumentTypeError(f"expected OWNER/REPO, got {value!r}")
    return owner, repo


def _emit(obj: Any, *, as_json: bool, text: str) -> None:
    print(json.dumps(obj) if as_json else text, flush=True)


def _run_commits(api, caches, args) -> None:
    owner, repo = args.repo
    for commit in iter_commits(api, caches, owner=owner, repo=repo, ref=args.ref):
        user = ((commit.get("author") or {}).get("user") or {})
        _emit(
            commit,
            as_json=args.json,
            text=f"{commit.get('abbreviatedOid')}  {commit.get('committedDate')}  "
                 f"{user.get('login') or '-'}  {commit.get('messageHeadline')}",
        )


def _run_commentors(api, caches, args) -> None:
    owner, repo = args.repo
    for login in iter_issue_commentors(api, caches, owner=owner, repo=repo):
        _emit(login, as_json=args.json, text=login)


def _run_contributors(api, caches, args) -> None:
    owner, repo = args.repo
    for contributor in iter_contributors(api, caches, owner=owner, repo=repo):
        _emit(contributor, as_json=args.json, text=f"{contributor['login']}  {contributor['contributions']}")


def _run_issues(api, caches, args) -> None:
    owner, repo = args.repo
    issues = get_issues(api, caches, owner=owner, name=repo, numbers=args.numbers)
    for number in args.numbers:
        issue = issues.get(number)
        if issue is None:
            _emit({"number": number, "issue": None}, as_json=args.json, text=f"#{number}  (not found)")
            continue
        labels = ",".join(label.get("name", "") for label in issue.get("labels") or [])
        _emit(
            {"number": number, "issue": issue},
            as_json=args.json,
            text=f"#{number}  {issue.get('state')}  {issue.get('title')}  [{labels}]",
        )


def _run_users(api, caches, args) -> None:
    users = get_users_details(api, caches, args.logins)
    for login, user in users.items():
        _emit(user, as_json=args.json, text=f"{login}  {user.get('name') or '-'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Show GitHub repository activity with incremental, cached fetching',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Commits on HEAD since a ref (first run walks history, later runs are incremental)
  %(prog)s commits w3c/respec HEAD~20

  # Everyone who commented on issues
  %(prog)s commentors w3c/payment-request

  # Issue details and user names
  %(prog)s issues w3c/respec 1 2 3 --json
  %(prog)s users octocat hubot
"""
    )
    parser.add_argument('--cache-dir', help='Cache directory (default: $GH_MIRROR_CACHE_DIR or ~/.cache/gh-mirror)')
    parser.add_argument('--token', help='GitHub token (optional, will use GH_TOKEN/GITHUB_TOKEN env or gh CLI config)')
    parser.add_argument('--json', action='store_true', help='Print one JSON document per line')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging (includes cache stats)')
    parser.add_argument('--debug-rest', action='store_true', help='Log every GitHub API request')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('commits', help='Commits on HEAD since REF')
    p.add_argument('repo', type=_owner_repo, help='OWNER/REPO')
    p.add_argument('ref', help='Commit-ish to start after (e.g. HEAD~5, a tag or a SHA)')
    p.set_defaults(handler=_run_commits)

    p = sub.add_parser('commentors', help='Unique logins of issue commentors')
    p.add_argument('repo', type=_owner_repo, help='OWNER/REPO')
    p.set_defaults(handler=_run_commentors)

    p = sub.add_parser('contributors', help='Contributors and their contribution counts')
    p.add_argument('repo', type=_owner_repo, help='OWNER/REPO')
    p.set_defaults(handler=_run_contributors)

    p = sub.add_parser('issues', help='Issue title/state/labels')
    p.add_argument('repo', type=_owner_repo, help='OWNER/REPO')
    p.add_argument('numbers', type=int, nargs='+', help='Issue numbers')
    p.set_defaults(handler=_run_issues)

    p = sub.add_parser('users', help='User display names')
    p.add_argument('logins', nargs='+', help='GitHub logins')
    p.set_defaults(handler=_run_users)

    return parser


def _log_stats(api: GitHubAPIClient, caches: MirrorCaches) -> None:
    for name, stats in caches.stats().items():
        if stats.hit or stats.miss:
            _logger.debug("cache %s: hit=%d miss=%d (%.0f%%)", name, stats.hit, stats.miss, 100.0 * stats.hit_rate)
    _logger.debug("api calls: %s", api.api_call_stats())


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        caches = MirrorCaches.open(args.cache_dir)
    except ConfigError as e:
        _logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    api = GitHubAPIClient(token=args.token, debug_rest=args.debug_rest)
    if not api.has_token():
        _logger.warning("No GitHub token found; using anonymous API access (low rate limit)")

    rc = EXIT_OK
    with caches:
        try:
            args.handler(api, caches, args)
        except (GitHubAPIError, SyncBootstrapError) as e:
            _logger.error("%s", e)
            rc = EXIT_API_ERROR
        finally:
            caches.dump()
            _log_stats(api, caches)
    return rc


if __name__ == '__main__':
    sys.exit(main())
