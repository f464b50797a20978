"""Restore lock entries the host dropped when it uninstalled plugins."""

import logging
from pathlib import Path
from typing import Dict, List, Sequence

from repolock.config import ConfigService
from repolock.index import SourceIndex
from repolock.lockfile import Lockfile, read_lockfile, write_lockfile

logger = logging.getLogger(__name__)

Snapshot = Dict[Path, Lockfile]


def capture_snapshot(config: ConfigService) -> Snapshot:
    """Read every repository's lock file before an uninstall."""
    return {repo: read_lockfile(config.lockfile_for(repo)) for repo in config.repository_paths()}


def restore_removed(
    snapshot: Snapshot,
    config: ConfigService,
    index: SourceIndex,
    repositories: Sequence[Path] = (),
) -> Dict[Path, List[str]]:
    """Re-admit entries that vanished but are still declared.

    An entry missing after the uninstall comes back when the index still
    resolves the plugin to the same repository, or when its recipe parent is
    still in that repository's lock file. Only repositories that regained
    entries are rewritten.

    Returns:
        Restored plugin names per repository
    """
    repositories = list(repositories) or config.repository_paths()
    restored: Dict[Path, List[str]] = {}

    for repo in repositories:
        path = config.lockfile_for(repo)
        current = read_lockfile(path)
        previous = snapshot.get(repo, {})

        names = []
        # parents before recipe children
        for name in sorted(previous, key=lambda n: (previous[n].source is not None, n)):
            if name in current:
                continue
            entry = previous[name]
            source = index.resolve(name, repositories)
            keep = source is not None and source.repo == repo
            if not keep and entry.source and entry.source in current:
                keep = True
            if keep:
                current[name] = entry
                names.append(name)

        if not names:
            continue
        try:
            write_lockfile(path, current)
        except OSError as e:
            logger.error(f"Error restoring entries in {path}: {e}")
            continue
        logger.info(f"Restored {len(names)} plugin(s) in {path}: {', '.join(names)}")
        restored[repo] = names

    return restored
