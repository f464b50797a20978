"""Per-repository lock files for a single-lockfile plugin manager.

Imports are lazy so lightweight pieces like the scanner or the lockfile codec
can be used without pulling in the whole engine.
"""

__all__ = [
    "ConfigService",
    "RepoLockSettings",
    "DeclarationScanner",
    "SourceIndex",
    "SourceCache",
    "IndexBuilder",
    "TaskDriver",
    "Reconciler",
    "LockManager",
    "DirectoryHost",
    "HostPluginManager",
    "LockEntry",
    "SourceEntry",
    "RepoLockError",
    "SourceNotFoundError",
    "BatchCancelled",
]


def __getattr__(name):
    if name in ("ConfigService", "RepoLockSettings"):
        from repolock import config
        return getattr(config, name)
    if name == "DeclarationScanner":
        from repolock.scanner import DeclarationScanner
        return DeclarationScanner
    if name in ("SourceIndex", "SourceCache"):
        from repolock import index
        return getattr(index, name)
    if name == "IndexBuilder":
        from repolock.builder import IndexBuilder
        return IndexBuilder
    if name == "TaskDriver":
        from repolock.driver import TaskDriver
        return TaskDriver
    if name == "Reconciler":
        from repolock.reconcile import Reconciler
        return Reconciler
    if name == "LockManager":
        from repolock.manager import LockManager
        return LockManager
    if name in ("DirectoryHost", "HostPluginManager"):
        from repolock import host
        return getattr(host, name)
    if name in ("LockEntry", "SourceEntry"):
        from repolock import models
        return getattr(models, name)
    if name in ("RepoLockError", "SourceNotFoundError", "BatchCancelled"):
        from repolock import errors
        return getattr(errors, name)
    raise AttributeError(f"module 'repolock' has no attribute {name!r}")
