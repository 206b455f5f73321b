# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""
gh-mirror shared constants and utilities.

Cache policy constants, cache location resolution and logging setup used by
the cache layer, the GitHub mirror package and the CLI scripts.
"""

import logging
import os
import sys
from pathlib import Path

# Global logger for the module
_logger = logging.getLogger(__name__)

#
# Cache policy constants (single source of truth)
#
# Defined at module level so call sites don't duplicate literals (15d / 7d / 12h)
# across the per-entity modules.
#
DEFAULT_COMMITS_SYNC_TTL_S: int = 15 * 24 * 3600
# ^ TTL (seconds) for persisted commit-history sync states.
#   Example: a state last rewritten 16 days ago is treated as missing and the
#   history for that ref is rebuilt, which keeps gh/commits.json from growing forever.
DEFAULT_ISSUE_COMMENTORS_TTL_S: int = 7 * 24 * 3600
# ^ TTL (seconds) for the complete commentor list of a repo.
#   Example: within a week the list is served without any network call; after that
#   the incremental sync resumes from the last recorded comment timestamp.
DEFAULT_CONTRIBUTORS_TTL_S: int = 7 * 24 * 3600
# ^ TTL (seconds) for repo contributor lists (login + contribution count).
DEFAULT_USERS_TTL_S: int = 7 * 24 * 3600
# ^ TTL (seconds) for user details (display names rarely change).
DEFAULT_ISSUES_TTL_S: int = 12 * 3600
# ^ TTL (seconds) for issue details (title/state/labels change more often).


class ConfigError(Exception):
    """Unrecoverable configuration problem (e.g. unusable cache directory)."""


# ======================================================================================
# Cache location policy (gh-mirror)
#
# All *persistent* caches MUST live under:
#   - $GH_MIRROR_CACHE_DIR       (explicit override), else
#   - ~/.cache/gh-mirror         (default)
#
# Every named cache owns exactly one file below that directory: "<name>.json".
# Names may contain "/" (e.g. "gh/commits" -> ~/.cache/gh-mirror/gh/commits.json).
# ======================================================================================

def gh_mirror_cache_dir() -> Path:
    """Return the cache directory for gh-mirror.

    Resolution order:
    - GH_MIRROR_CACHE_DIR (explicit override)
    - ~/.cache/gh-mirror

    Raises:
        ConfigError: if the resolved path exists but is not a directory.
    """
    override = os.environ.get("GH_MIRROR_CACHE_DIR")
    if override:
        path = Path(override).expanduser()
    else:
        path = Path.home() / ".cache" / "gh-mirror"

    if path.exists() and not path.is_dir():
        raise ConfigError(f"Cache directory is not a directory: {path}")
    return path


def resolve_cache_path(cache_file: str) -> Path:
    """Resolve a cache file path into the global gh-mirror cache directory.

    - Absolute paths are used as-is.
    - Relative paths are rooted under `gh_mirror_cache_dir()`.
    """
    p = Path(cache_file).expanduser()
    if p.is_absolute():
        return p

    # Normalize any leading "./"
    rel = Path(*p.parts[1:]) if p.parts[:1] == (".",) else p
    return gh_mirror_cache_dir() / rel


class _ConsoleFormatter(logging.Formatter):
    """Plain messages by default; level + logger/function location when verbose."""

    def __init__(self, *, verbose: bool) -> None:
        super().__init__()
        self.verbose = verbose

    def format(self, record: logging.LogRecord) -> str:
        if self.verbose:
            location = f"{record.name}.{record.funcName}" if record.funcName != '<module>' else record.name
            return f"{record.levelname} - [{location}] {record.getMessage()}"
        if record.levelno >= logging.WARNING:
            return f"{record.levelname}: {record.getMessage()}"
        return record.getMessage()


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for CLI scripts (stderr, DEBUG when verbose).

    Library modules only create loggers; handlers are installed here so that
    importing the package never changes the host application's logging.
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(_ConsoleFormatter(verbose=verbose))

    # Avoid duplicate handlers when main() is called more than once (tests).
    root.handlers = [h for h in root.handlers if not getattr(h, "_gh_mirror", False)]
    handler._gh_mirror = True  # type: ignore[attr-defined]
    root.addHandler(handler)
