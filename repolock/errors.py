"""Exception types raised by repolock."""


class RepoLockError(Exception):
    """Base class for repolock errors."""


class SourceNotFoundError(RepoLockError, LookupError):
    """A plugin is not declared in any configured repository."""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin {plugin_name} not found in any configured lockfile repository."
        )


class BatchCancelled(RepoLockError):
    """A driver batch was superseded before it completed."""
