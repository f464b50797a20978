"""Health checks for a repolock setup."""

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from repolock.config import ConfigService
from repolock.scanner import DeclarationScanner


class HealthLevel(str, Enum):
    OK = "ok"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass
class HealthCheck:
    level: HealthLevel
    message: str
    advice: List[str] = field(default_factory=list)


def run_checks(config: ConfigService) -> List[HealthCheck]:
    """Check configuration, repositories and tooling."""
    checks: List[HealthCheck] = []
    settings = config.settings

    if shutil.which("git"):
        checks.append(HealthCheck(HealthLevel.OK, "git is installed"))
    else:
        checks.append(
            HealthCheck(
                HealthLevel.ERROR,
                "git is not installed",
                ["Plugin commits and the committed lockfile are read with git"],
            )
        )

    if not settings.repositories:
        checks.append(
            HealthCheck(
                HealthLevel.ERROR,
                "No repositories configured",
                ["Configure at least one repository directory"],
            )
        )
        return checks

    checks.append(HealthCheck(HealthLevel.OK, f"Configured with {len(settings.repositories)} repository directory(s)"))

    repositories = config.repository_paths()
    scanner = DeclarationScanner(settings.declarations_dir, settings.declaration_glob)
    for i, entry in enumerate(settings.repositories, 1):
        real_path = Path(entry).expanduser().resolve()
        if not real_path.is_dir():
            checks.append(
                HealthCheck(HealthLevel.ERROR, f"[{i}] {entry} (does not exist)", ["Please ensure the directory exists"])
            )
            continue

        checks.append(HealthCheck(HealthLevel.OK, f"[{i}] {real_path} (exists)"))

        lockfile = config.lockfile_for(real_path)
        if lockfile.is_file():
            checks.append(HealthCheck(HealthLevel.INFO, f"    {lockfile} exists"))
        else:
            checks.append(HealthCheck(HealthLevel.INFO, f"    {lockfile} will be created on next update"))

        files = scanner.scan(real_path, repositories)
        if files:
            checks.append(HealthCheck(HealthLevel.INFO, f"    Found {len(files)} plugin file(s)"))
        else:
            checks.append(
                HealthCheck(
                    HealthLevel.WARN,
                    f"    No {settings.declarations_dir}/ directory with declarations found",
                    [f"Add plugin declarations under {settings.declarations_dir}/ or lua/{settings.declarations_dir}/"],
                )
            )

    host_lockfile = config.host_lockfile()
    if host_lockfile.is_file():
        checks.append(HealthCheck(HealthLevel.OK, f"Host lockfile {host_lockfile} exists"))
    else:
        checks.append(HealthCheck(HealthLevel.WARN, f"Host lockfile {host_lockfile} not found"))

    plugins_dir = config.plugins_dir()
    if plugins_dir.is_dir():
        checks.append(HealthCheck(HealthLevel.OK, f"Plugin directory {plugins_dir} exists"))
    else:
        checks.append(
            HealthCheck(
                HealthLevel.WARN,
                f"Plugin directory {plugins_dir} not found",
                ["Set plugins_dir in the repolock config"],
            )
        )

    return checks
