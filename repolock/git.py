"""Thin wrappers around the git command line."""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from repolock.constants import GIT_TIMEOUT
from repolock.models import GitInfo

logger = logging.getLogger(__name__)


def run_git(args: List[str], cwd: Path) -> Optional[str]:
    """Run ``git -C cwd <args>`` and return stripped stdout, or None on failure."""
    cmd = ["git", "-C", str(cwd), *args]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"git timed out: {' '.join(cmd)}")
        return None
    except OSError as e:
        logger.debug(f"git unavailable: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"git failed ({result.returncode}): {' '.join(cmd)}: {result.stderr.strip()}")
        return None
    return result.stdout.strip()


def head_commit(repo: Path) -> Optional[str]:
    return run_git(["rev-parse", "HEAD"], repo)


def toplevel(path: Path) -> Optional[Path]:
    """Root of the work tree containing ``path``."""
    out = run_git(["rev-parse", "--show-toplevel"], path)
    return Path(out).resolve() if out else None


def show_file(repo: Path, rev: str, relpath: str) -> Optional[str]:
    """Content of ``relpath`` at revision ``rev``; None if absent there."""
    return run_git(["show", f"{rev}:{relpath}"], repo)


def default_branch(repo: Path) -> Optional[str]:
    """Default branch of the ``origin`` remote."""
    ref = run_git(["symbolic-ref", "--short", "refs/remotes/origin/HEAD"], repo)
    if not ref:
        return None
    return ref.split("/", 1)[1] if "/" in ref else ref


def get_info(plugin_dir: Path) -> Optional[GitInfo]:
    """Current branch and commit of a plugin checkout.

    A detached HEAD reports the remote's default branch.
    """
    if not plugin_dir.is_dir():
        return None

    commit = head_commit(plugin_dir)
    if not commit:
        return None

    branch = run_git(["rev-parse", "--abbrev-ref", "HEAD"], plugin_dir)
    if not branch or branch == "HEAD":
        branch = default_branch(plugin_dir)
    if not branch:
        return None

    return GitInfo(branch=branch, commit=commit)
