"""Data models shared by the index builder and the reconciliation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LockEntry(BaseModel):
    """One plugin's record in a per-repository lock file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    branch: str = Field(..., description="Branch the plugin is tracking")
    commit: str = Field(..., description="Commit the plugin is locked to")
    source: Optional[str] = Field(
        default=None,
        description="Parent plugin whose recipe declares this plugin (recipe children only)",
    )

    def to_dict(self) -> dict:
        """Serialize, omitting ``source`` when absent."""
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class SourceEntry:
    """Where a plugin is declared: the owning repository and optional recipe parent."""

    repo: Path
    parent: Optional[str] = None

    def to_dict(self) -> dict:
        return {"repo": str(self.repo), "parent": self.parent}


@dataclass(frozen=True)
class GitInfo:
    """Live version-control state of an installed plugin."""

    branch: str
    commit: str


@dataclass
class HostPlugin:
    """A plugin as known to the host plugin manager."""

    name: str
    dir: Optional[Path] = None
    installed: bool = False
    is_local: bool = False  # unmanaged override, never locked


class RefreshStatus(str, Enum):
    """Outcome of retargeting one plugin during a refresh."""

    DETECTED = "detected"
    MOVED = "moved"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


@dataclass
class RefreshReport:
    """Per-plugin result of a targeted refresh."""

    name: str
    status: RefreshStatus
    old_repo: Optional[Path] = None
    new_repo: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "old_repo": str(self.old_repo) if self.old_repo else None,
            "new_repo": str(self.new_repo) if self.new_repo else None,
        }


@dataclass
class SyncResult:
    """What a reconciliation pass wrote."""

    lockfiles: Dict[Path, Dict[str, LockEntry]] = field(default_factory=dict)
    written: List[Path] = field(default_factory=list)
    failed: Dict[Path, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
