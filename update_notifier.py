#!/usr/bin/env python3
"""
Update Notifier
===============

SessionStart advisory hook. Fetches the guard's own git repository and, if
upstream has commits that are not checked out locally, tells the agent how
many so it can mention the update to the operator.

Any git problem (no repository, no upstream, no network, timeout) is silent:
the hook writes nothing and exits 0.
"""

import json
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, TextIO

from dotenv import load_dotenv

load_dotenv()

from env_constants import REPO_DIR_ENV_VAR
from guard_config import configure_logging

logger = logging.getLogger(__name__)

# Seconds allowed for each git invocation; fetch gets the most
FETCH_TIMEOUT = 10
GIT_TIMEOUT = 5


def get_repo_dir() -> Path:
    """Repository to check: SESSION_GUARD_REPO_DIR, else the checkout this file lives in."""
    override = os.environ.get(REPO_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parent


def _git(repo_dir: Path, *args: str, timeout: float = GIT_TIMEOUT) -> Optional[str]:
    """Run a git command and return its stripped stdout, or None on any failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(repo_dir),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"git {' '.join(args)} failed: {e}")
        return None
    if result.returncode != 0:
        logger.debug(f"git {' '.join(args)} exited {result.returncode}: {result.stderr.strip()}")
        return None
    return result.stdout.strip()


def count_new_upstream_commits(repo_dir: Path, fetch: bool = True) -> Optional[int]:
    """
    Count commits on the upstream branch that are not in HEAD.

    Args:
        repo_dir: Path inside the git checkout
        fetch: Run ``git fetch`` first

    Returns:
        Number of new upstream commits, or None if it could not be determined
    """
    if fetch and _git(repo_dir, "fetch", "--quiet", timeout=FETCH_TIMEOUT) is None:
        return None

    local = _git(repo_dir, "rev-parse", "HEAD")
    upstream = _git(repo_dir, "rev-parse", "@{u}")
    if not local or not upstream:
        return None
    if local == upstream:
        return 0

    count = _git(repo_dir, "rev-list", "--count", "HEAD..@{u}")
    if count is None:
        return None
    try:
        return int(count)
    except ValueError:
        logger.debug(f"Unexpected rev-list output: {count!r}")
        return None


def build_notice(count: int) -> str:
    plural = "commit" if count == 1 else "commits"
    return (
        f"Session guard update available: {count} new upstream {plural}. "
        "Mention this to the operator; they can run `git pull` in the session-guard checkout."
    )


def run(stdout: TextIO, repo_dir: Optional[Path] = None) -> int:
    count = count_new_upstream_commits(repo_dir or get_repo_dir())
    if count:
        reply = {
            "hookSpecificOutput": {
                "hookEventName": "SessionStart",
                "additionalContext": build_notice(count),
            }
        }
        stdout.write(json.dumps(reply) + "\n")
        stdout.flush()
    return 0


def main() -> int:
    configure_logging()
    return run(sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
