"""Source index - tracks which repository declares each plugin."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from repolock.constants import BOOTSTRAP_PLUGIN
from repolock.errors import SourceNotFoundError
from repolock.models import SourceEntry

logger = logging.getLogger(__name__)


class SourceCache:
    """Small persistent plugin -> source cache, best effort.

    Stored as ``{"plugin": {"repo": "/path", "parent": null}}``. A missing or
    corrupt file is an empty cache; write failures are logged and ignored.
    """

    def __init__(self, cache_file: Optional[Path] = None):
        self.cache_file = cache_file
        self._entries: Optional[Dict[str, SourceEntry]] = None
        self._dirty = False

    def _load(self) -> Dict[str, SourceEntry]:
        if self._entries is not None:
            return self._entries

        entries: Dict[str, SourceEntry] = {}
        if self.cache_file and self.cache_file.exists():
            try:
                data = json.loads(self.cache_file.read_text(encoding="utf-8"))
                for name, raw in data.items():
                    if isinstance(raw, dict) and isinstance(raw.get("repo"), str):
                        entries[name] = SourceEntry(Path(raw["repo"]), raw.get("parent"))
            except (json.JSONDecodeError, OSError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable source cache {self.cache_file}: {e}")
                entries = {}

        self._entries = entries
        return entries

    def get(self, name: str) -> Optional[SourceEntry]:
        return self._load().get(name)

    def set(self, name: str, entry: SourceEntry) -> None:
        entries = self._load()
        if entries.get(name) != entry:
            entries[name] = entry
            self._dirty = True

    def prune(self, keep: Iterable[str]) -> None:
        """Drop every entry whose name is not in ``keep``."""
        keep = set(keep)
        self.forget([name for name in self._load() if name not in keep])

    def forget(self, names: Iterable[str]) -> None:
        entries = self._load()
        for name in names:
            if entries.pop(name, None) is not None:
                self._dirty = True
        self.flush()

    def flush(self) -> None:
        """Write pending changes to disk."""
        if not self._dirty or not self.cache_file:
            return
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            data = {name: entry.to_dict() for name, entry in sorted(self._load().items())}
            self.cache_file.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
            self._dirty = False
        except OSError as e:
            logger.warning(f"Failed to write source cache {self.cache_file}: {e}")

    def clear(self) -> None:
        """Drop every entry, including the file on disk."""
        self._entries = {}
        self._dirty = False
        if self.cache_file and self.cache_file.exists():
            try:
                self.cache_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove source cache {self.cache_file}: {e}")


class SourceIndex:
    """In-memory plugin -> source mapping built by the index builder.

    The index is replaced wholesale by a build, or retargeted for a subset of
    names by a targeted refresh. Once published, entries are only ever
    changed through those two paths.
    """

    def __init__(self, cache: Optional[SourceCache] = None, bootstrap_plugin: str = BOOTSTRAP_PLUGIN):
        self.cache = cache if cache is not None else SourceCache()
        self.bootstrap_plugin = bootstrap_plugin
        self._entries: Optional[Dict[str, SourceEntry]] = None

    @property
    def is_built(self) -> bool:
        return self._entries is not None

    def entries(self) -> Dict[str, SourceEntry]:
        """Snapshot of the current index."""
        return dict(self._entries or {})

    def get(self, name: str) -> Optional[SourceEntry]:
        """Raw index lookup, without cache or bootstrap handling."""
        if self._entries is None:
            return None
        return self._entries.get(name)

    def replace(self, entries: Dict[str, SourceEntry]) -> None:
        """Publish a freshly built index.

        Cached sources of names the build no longer finds are dropped.
        """
        self._entries = dict(entries)
        self.cache.prune(self._entries)
        logger.debug(f"Published source index with {len(self._entries)} plugin(s)")

    def retarget(self, entries: Dict[str, SourceEntry], names: Iterable[str]) -> None:
        """Take only ``names`` from a fresh build, keeping every other entry."""
        if self._entries is None:
            self.replace(entries)
            return
        for name in names:
            if name in entries:
                self._entries[name] = entries[name]
            else:
                self._entries.pop(name, None)
                self.cache.forget([name])

    def clear(self) -> None:
        """Forget the in-memory index."""
        self._entries = None

    def resolve(self, name: str, repositories: Sequence[Path]) -> Optional[SourceEntry]:
        """Find the repository (and recipe parent) that declares ``name``.

        The bootstrap plugin always maps to the first repository. Otherwise
        the persistent cache is consulted first; a cached repository that is
        no longer configured counts as a miss. Index hits are written back to
        the cache.

        Returns:
            SourceEntry, or None if the plugin is not declared anywhere
        """
        if name == self.bootstrap_plugin:
            if not repositories:
                return None
            return SourceEntry(repositories[0], None)

        cached = self.cache.get(name)
        if cached is not None and cached.repo in repositories:
            return cached

        entry = self.get(name)
        if entry is not None:
            self.cache.set(name, entry)
            return entry

        return None

    def require(self, name: str, repositories: Sequence[Path]) -> SourceEntry:
        """Like ``resolve`` but raises SourceNotFoundError on a miss."""
        entry = self.resolve(name, repositories)
        if entry is None:
            raise SourceNotFoundError(name)
        return entry

    def names_in(self, repo: Path) -> List[str]:
        """Indexed plugin names owned by ``repo``."""
        return sorted(name for name, entry in (self._entries or {}).items() if entry.repo == repo)
