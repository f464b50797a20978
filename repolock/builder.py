"""Source index builder - scans repositories in priority order."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from repolock.config import ConfigService
from repolock.driver import TaskDriver
from repolock.host import HostPluginManager
from repolock.index import SourceIndex
from repolock.models import SourceEntry
from repolock.scanner import DeclarationScanner
from repolock.utils import format_path

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class RepositoryPlan:
    """Declaration files to scan for one repository."""

    repo: Path
    files: List[Path] = field(default_factory=list)


class _Progress:
    """Counts completed files across the whole build."""

    def __init__(self, total: int, callback: Optional[ProgressCallback]):
        self.total = total
        self.completed = 0
        self.callback = callback

    def advance(self, path: Path) -> None:
        self.completed += 1
        if self.callback and self.total > 0:
            self.callback(self.completed, self.total, f"Indexed {path.name}")


class IndexBuilder:
    """Builds the plugin -> repository index.

    Repositories are processed strictly one after another in configured
    order and the first repository to mention a plugin owns it. Within a
    repository, direct declarations are merged before recipe declarations of
    that repository's installed plugins.
    """

    def __init__(
        self,
        config: ConfigService,
        index: SourceIndex,
        host: HostPluginManager,
        scanner: Optional[DeclarationScanner] = None,
        driver: Optional[TaskDriver] = None,
    ):
        self.config = config
        self.index = index
        self.host = host
        self.scanner = scanner or DeclarationScanner(
            config.settings.declarations_dir, config.settings.declaration_glob
        )
        self.driver = driver or TaskDriver()

    def plan(self) -> List[RepositoryPlan]:
        """Glob every repository up front so progress totals are known."""
        repositories = self.config.repository_paths()
        return [RepositoryPlan(repo, self.scanner.scan(repo, repositories)) for repo in repositories]

    @staticmethod
    def _merge(
        entries: Dict[str, SourceEntry],
        repo: Path,
        names: Iterable[str],
        parent: Optional[str] = None,
    ) -> List[str]:
        """Add names not yet indexed; return the ones that were added."""
        added = []
        for name in names:
            if name not in entries:
                entries[name] = SourceEntry(repo, parent)
                added.append(name)
        return added

    def _recipe_files(self, direct: Iterable[str]) -> List[Tuple[str, Path]]:
        """Recipe files of directly declared plugins that are installed."""
        recipes = []
        for name in direct:
            plugin_dir = self.host.plugin_dir(name)
            if plugin_dir is None:
                continue
            recipe = plugin_dir / self.config.settings.recipe_file
            if recipe.is_file():
                recipes.append((name, recipe))
        return recipes

    def _publish(self, entries: Dict[str, SourceEntry], targets: Optional[List[str]]) -> Dict[str, SourceEntry]:
        if targets:
            self.index.retarget(entries, targets)
        else:
            self.index.replace(entries)
        logger.info(f"Indexed {len(entries)} plugin(s)")
        return entries

    def build(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> Dict[str, SourceEntry]:
        """Build the index synchronously and publish it.

        Args:
            progress: Called with (files_completed, files_total, message)
            targets: Only retarget these names in the published index

        Returns:
            The freshly built mapping
        """
        plans = self.plan()
        counter = _Progress(sum(len(p.files) for p in plans), progress)
        entries: Dict[str, SourceEntry] = {}

        for plan in plans:
            if not plan.files:
                continue

            direct: List[str] = []
            for path in plan.files:
                direct.extend(self._merge(entries, plan.repo, self.scanner.read_names(path)))
                counter.advance(path)

            for parent, recipe in self._recipe_files(direct):
                self._merge(entries, plan.repo, self.scanner.read_names(recipe), parent)

        return self._publish(entries, targets)

    async def build_async(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> Dict[str, SourceEntry]:
        """Build the index without blocking the event loop.

        One repository is processed per driver tick. File reads within a
        repository run concurrently; their names are merged in enumeration
        order once all reads finish, so the result equals ``build()``.

        Raises:
            BatchCancelled: if a newer batch superseded this build
        """
        plans = self.plan()
        total = sum(len(p.files) for p in plans)
        entries: Dict[str, SourceEntry] = {}
        if total == 0:
            # still supersedes whatever batch is in flight
            self.driver.cancel_current()
            return self._publish(entries, targets)

        counter = _Progress(total, progress)

        async def read(path: Path, count: bool) -> List[str]:
            names = await asyncio.to_thread(self.scanner.read_names, path)
            if count:
                counter.advance(path)
            return names

        async def process_repo(plan: RepositoryPlan) -> None:
            if not plan.files:
                return

            results = await asyncio.gather(*(read(path, True) for path in plan.files))
            direct: List[str] = []
            for names in results:
                direct.extend(self._merge(entries, plan.repo, names))

            recipes = self._recipe_files(direct)
            if not recipes:
                return
            recipe_results = await asyncio.gather(*(read(path, False) for _, path in recipes))
            for (parent, _), names in zip(recipes, recipe_results):
                self._merge(entries, plan.repo, names, parent)

        await self.driver.process(
            plans,
            process_repo,
            title="Indexing plugin sources",
            get_item_name=lambda plan: format_path(plan.repo),
        )
        return self._publish(entries, targets)
