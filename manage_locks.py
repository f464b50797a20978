#!/usr/bin/env python3
"""Repolock management CLI tool."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables FIRST (before importing project modules)
load_dotenv(".env")

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress
from rich.table import Table

from repolock.constants import CONFIG_FILE, DATA_DIR
from repolock.health import HealthLevel, run_checks
from repolock.manager import LockManager
from repolock.models import RefreshStatus
from repolock.utils import format_path

console = Console()

LEVEL_STYLES = {
    HealthLevel.OK: "[green]OK[/green]",
    HealthLevel.INFO: "[cyan]INFO[/cyan]",
    HealthLevel.WARN: "[yellow]WARN[/yellow]",
    HealthLevel.ERROR: "[red]ERROR[/red]",
}

STATUS_STYLES = {
    RefreshStatus.DETECTED: "green",
    RefreshStatus.MOVED: "yellow",
    RefreshStatus.UNCHANGED: "dim",
    RefreshStatus.NOT_FOUND: "red",
}


def get_manager(args) -> LockManager:
    """Create a LockManager from the CLI options."""
    return LockManager.from_config(Path(args.config), Path(args.data_dir))


def _run_with_progress(title: str, func):
    """Run ``func(progress_callback)`` under a rich progress bar."""
    with Progress(console=console, transient=True) as progress:
        task = progress.add_task(title, total=None)

        def report(current: int, total: int, message: str) -> None:
            progress.update(task, total=total, completed=current, description=f"{title}: {message}")

        return func(report)


def cmd_sync(args):
    """Regenerate every repository lockfile."""
    manager = get_manager(args)
    if args.use_async:
        result = _run_with_progress("Syncing lockfiles", lambda report: asyncio.run(manager.sync_async(report)))
    else:
        result = _run_with_progress("Syncing lockfiles", manager.sync)

    if result is None:
        console.print("[red]Lockfile sync failed, see log output.[/red]")
        sys.exit(1)

    for path in result.written:
        count = len(result.lockfiles.get(path.parent, {}))
        console.print(f"Wrote {format_path(path)} ({count} plugin(s))")
    for path, error in result.failed.items():
        console.print(f"[red]Failed to write {format_path(path)}: {error}[/red]")
    if result.failed:
        sys.exit(1)


def cmd_refresh(args):
    """Rebuild plugin sources (all, or only the named plugins)."""
    manager = get_manager(args)
    reports = _run_with_progress("Refreshing", lambda report: manager.refresh(args.plugins, report))

    if not args.plugins:
        console.print("Refreshed plugin source index and regenerated lockfiles")
        return

    table = Table(title="Refresh")
    table.add_column("Plugin")
    table.add_column("Status")
    table.add_column("Old source")
    table.add_column("New source")
    for r in reports:
        style = STATUS_STYLES[r.status]
        table.add_row(
            r.name,
            f"[{style}]{r.status.value}[/{style}]",
            format_path(r.old_repo) if r.old_repo else "-",
            format_path(r.new_repo) if r.new_repo else "-",
        )
    console.print(table)


def cmd_where(args):
    """Show which repository declares a plugin."""
    manager = get_manager(args)
    entry = manager.source_of(args.plugin)
    if entry is None:
        console.print(f"Plugin '{args.plugin}' source: unknown")
        sys.exit(1)

    console.print(f"Plugin: {args.plugin}")
    console.print(f"  Source: {format_path(entry.repo)}")
    if entry.parent:
        console.print(f"  Recipe: {entry.parent}")


def cmd_index(args):
    """List the full source index."""
    manager = get_manager(args)
    manager.builder.build()
    entries = manager.index.entries()

    if not entries:
        console.print("No plugins found.")
        return

    table = Table(title=f"Source index ({len(entries)} plugins)")
    table.add_column("Plugin")
    table.add_column("Repository")
    table.add_column("Recipe parent")
    for name in sorted(entries):
        entry = entries[name]
        table.add_row(name, format_path(entry.repo), entry.parent or "")
    console.print(table)


def cmd_clear(args):
    """Clear the source index and caches."""
    manager = get_manager(args)
    manager.clear_all()
    console.print("Cleared plugin source index and caches.")


def cmd_repos(args):
    """List or set the configured repositories."""
    manager = get_manager(args)
    if args.set:
        manager.config.set_repositories(args.set)

    resolved = manager.config.repository_paths()
    for i, entry in enumerate(manager.config.settings.repositories, 1):
        real_path = Path(entry).expanduser().resolve()
        mark = "" if real_path in resolved else " [red](missing)[/red]"
        console.print(f"{i}. {entry}{mark}")


def cmd_doctor(args):
    """Run health checks."""
    manager = get_manager(args)
    checks = run_checks(manager.config)

    lines = []
    for check in checks:
        lines.append(f"{LEVEL_STYLES[check.level]} {check.message}")
        for advice in check.advice:
            lines.append(f"      - {advice}")
    console.print(Panel("\n".join(lines), title="repolock health"))

    if any(check.level == HealthLevel.ERROR for check in checks):
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Per-repository plugin lockfiles")
    parser.add_argument("--config", default=str(CONFIG_FILE), help="Path to config.json")
    parser.add_argument("--data-dir", default=str(DATA_DIR), help="Cache directory")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync
    sync_parser = subparsers.add_parser("sync", help="Regenerate repository lockfiles")
    sync_parser.add_argument("--async", dest="use_async", action="store_true", help="Use the event-loop driver")

    # refresh
    refresh_parser = subparsers.add_parser("refresh", help="Rebuild plugin sources")
    refresh_parser.add_argument("plugins", nargs="*", help="Plugin names (default: all)")

    # where
    where_parser = subparsers.add_parser("where", help="Show a plugin's source repository")
    where_parser.add_argument("plugin", help="Plugin name")

    # index
    subparsers.add_parser("index", help="List the source index")

    # clear
    subparsers.add_parser("clear", help="Clear the source index and caches")

    # repos
    repos_parser = subparsers.add_parser("repos", help="List or set repositories")
    repos_parser.add_argument("--set", nargs="+", metavar="DIR", help="Replace repositories (priority order)")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "sync": cmd_sync,
        "refresh": cmd_refresh,
        "where": cmd_where,
        "index": cmd_index,
        "clear": cmd_clear,
        "repos": cmd_repos,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
