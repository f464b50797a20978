"""Declaration scanner - finds declaration files and extracts plugin names."""

import fnmatch
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional

from repolock.constants import DECLARATION_GLOB, DECLARATIONS_DIR

logger = logging.getLogger(__name__)

# "owner/name" in single or double quotes, never spanning a newline
_OWNER_NAME_RE = re.compile(r"""["']([^/"'\s]+)/([^"'\n]+)["']""")
# name = "plugin-name"
_NAME_ASSIGN_RE = re.compile(r"""name\s*=\s*["']([^"'\n]+)["']""")
# dir = "path/to/plugin-name"
_DIR_ASSIGN_RE = re.compile(r"""dir\s*=\s*["']([^"'\n]+)["']""")

_VALID_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_NUMERIC_RE = re.compile(r"^\d+$")


def is_plugin_name(name: str) -> bool:
    """Conservative check that a string looks like a plugin name."""
    return bool(name) and bool(_VALID_NAME_RE.match(name)) and not _NUMERIC_RE.match(name)


def extract_plugin_names(content: str) -> List[str]:
    """Extract plugin names mentioned in declaration file content.

    Three forms are recognised, in this order: ``"owner/name"`` strings,
    ``name = "..."`` assignments and ``dir = "..."`` assignments (the last
    path segment is the name). The result is deduplicated and keeps the
    order of first appearance.
    """
    names: List[str] = []
    seen = set()

    def add(name: Optional[str]) -> None:
        if name and name not in seen and is_plugin_name(name):
            seen.add(name)
            names.append(name)

    for match in _OWNER_NAME_RE.finditer(content):
        add(match.group(2))

    for match in _NAME_ASSIGN_RE.finditer(content):
        add(match.group(1))

    for match in _DIR_ASSIGN_RE.finditer(content):
        add(match.group(1).rstrip("/").rsplit("/", 1)[-1])

    return names


def _is_within(path: Path, root: Path) -> bool:
    return str(path).startswith(str(root) + os.sep)


def _owner(path: Path, roots: Iterable[Path]) -> Optional[Path]:
    """Deepest root containing ``path``."""
    owner = None
    for root in roots:
        if _is_within(path, root) and (owner is None or len(str(root)) > len(str(owner))):
            owner = root
    return owner


class DeclarationScanner:
    """Enumerates candidate declaration files under a repository root."""

    def __init__(self, declarations_dir: str = DECLARATIONS_DIR, pattern: str = DECLARATION_GLOB):
        self.declarations_dir = declarations_dir
        self.pattern = pattern

    def _candidates(self, repo: Path) -> List[Path]:
        """Files matching ``**/<declarations_dir>/**/<pattern>``, following symlinked directories.

        Hidden directories are not entered. A real directory is walked at most
        once inside and once outside a declarations directory, which also stops
        symlink cycles.
        """
        found = []
        visited = set()
        for dirpath, dirnames, filenames in os.walk(repo, followlinks=True):
            current = Path(dirpath)
            in_declarations = self.declarations_dir in current.relative_to(repo).parts
            key = (os.path.realpath(dirpath), in_declarations)
            if key in visited:
                dirnames[:] = []
                continue
            visited.add(key)
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]

            if not in_declarations:
                continue
            for filename in filenames:
                if fnmatch.fnmatchcase(filename, self.pattern):
                    found.append(current / filename)
        return sorted(found)

    def scan(self, repo: Path, repositories: Iterable[Path] = ()) -> List[Path]:
        """List declaration files belonging to ``repo``.

        Files are those matching ``**/<declarations_dir>/**/<pattern>``,
        in sorted order. A file whose real path lies inside another configured
        repository (a nested repository, or a symlink into a sibling) belongs
        to the deepest repository containing it and is left out here.

        Args:
            repo: Resolved repository root
            repositories: All resolved repository roots

        Returns:
            Candidate file paths
        """
        if not repo.is_dir():
            return []

        repo = repo.resolve()
        roots = [repo] + [other for other in repositories if other != repo]

        files = []
        for path in self._candidates(repo):
            if not path.is_file():
                continue
            owner = _owner(path.resolve(), roots)
            if owner is not None and owner != repo:
                logger.debug(f"Skipping {path}: belongs to {owner}")
                continue
            files.append(path)

        return files

    @staticmethod
    def read_names(path: Path) -> List[str]:
        """Read a file and extract plugin names; unreadable files yield none."""
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Could not read {path}: {e}")
            return []
        return extract_plugin_names(content)
