"""Small display helpers."""

import os
from pathlib import Path
from typing import Union


def format_path(path: Union[str, Path]) -> str:
    """Resolve a path and abbreviate the home directory as ``~``."""
    resolved = str(Path(path).expanduser().resolve())
    home = str(Path.home())
    if resolved == home:
        return "~"
    if resolved.startswith(home + os.sep):
        return "~" + resolved[len(home):]
    return resolved
