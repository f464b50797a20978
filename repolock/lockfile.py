"""Lock file reading/writing and the cached lock file from git HEAD."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from repolock import git
from repolock.models import LockEntry

logger = logging.getLogger(__name__)

Lockfile = Dict[str, LockEntry]


def parse_lockfile(data: Any) -> Lockfile:
    """Build lock entries from decoded JSON, dropping malformed ones."""
    entries: Lockfile = {}
    if not isinstance(data, dict):
        return entries
    for name, raw in data.items():
        if not isinstance(raw, dict):
            continue
        try:
            entries[name] = LockEntry(**raw)
        except (TypeError, ValidationError):
            logger.debug(f"Dropping malformed lock entry for {name}")
    return entries


def read_lockfile(path: Path) -> Lockfile:
    """Read a lock file; missing or malformed files read as empty."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.debug(f"Treating unreadable lockfile {path} as empty: {e}")
        return {}
    return parse_lockfile(data)


def dumps_lockfile(entries: Mapping[str, LockEntry]) -> str:
    """Serialize in the host's layout: one sorted entry per line."""
    names = sorted(entries)
    if not names:
        return "{\n}\n"

    lines = []
    for name in names:
        fields = ", ".join(
            f"{json.dumps(key)}: {json.dumps(value, ensure_ascii=False)}"
            for key, value in entries[name].to_dict().items()
        )
        lines.append(f"  {json.dumps(name, ensure_ascii=False)}: {{ {fields} }}")
    return "{\n" + ",\n".join(lines) + "\n}\n"


def write_lockfile(path: Path, entries: Mapping[str, LockEntry]) -> None:
    """Overwrite ``path`` with ``entries``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(dumps_lockfile(entries))


class HistoricalLockfile:
    """The host lock file as committed at git HEAD, cached on disk.

    Cache format:
    {
        "timestamp": 1700000000,
        "commit": "<HEAD sha>",
        "lockfile": { "plugin": { "branch": "main", "commit": "abc" } }
    }

    The cache is reused while its commit is still HEAD.
    """

    def __init__(self, lockfile: Path, cache_file: Path):
        self.lockfile = lockfile
        self.cache_file = cache_file

    def _read_cache(self) -> Optional[Dict[str, Any]]:
        if not self.cache_file.is_file():
            return None
        try:
            data = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.debug(f"Ignoring unreadable lockfile cache: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _write_cache(self, commit: str, lockfile: Any) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            payload = {"timestamp": int(time.time()), "commit": commit, "lockfile": lockfile}
            self.cache_file.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to write lockfile cache {self.cache_file}: {e}")

    def get(self) -> Optional[Lockfile]:
        """Lock entries from HEAD, or None outside git or when not committed."""
        lock_dir = self.lockfile.parent
        if not lock_dir.is_dir():
            return None

        root = git.toplevel(lock_dir)
        if root is None:
            return None
        commit = git.head_commit(root)
        if not commit:
            return None

        cached = self._read_cache()
        if cached and cached.get("commit") == commit:
            return parse_lockfile(cached.get("lockfile"))

        try:
            relpath = self.lockfile.resolve().relative_to(root).as_posix()
        except ValueError:
            return None

        content = git.show_file(root, "HEAD", relpath)
        if content is None:
            return None
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Lockfile at HEAD is not valid JSON: {e}")
            return None

        self._write_cache(commit, data)
        logger.debug(f"Cached lockfile from {commit[:7]}")
        return parse_lockfile(data)

    def clear(self) -> None:
        """Remove the on-disk cache."""
        if self.cache_file.exists():
            try:
                self.cache_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove lockfile cache {self.cache_file}: {e}")
