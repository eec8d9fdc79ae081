"""Path utilities for monorepo detection.

Provides path normalization and the small amount of path arithmetic the
detection walk and workspace discovery need.
"""

from __future__ import annotations

import os
from pathlib import Path


def normalize_path(path: str | Path) -> Path:
    """Normalize a filesystem path.

    Expands ~ and environment variables and resolves symlinks.

    Args:
        path: Path to normalize.

    Returns:
        Normalized absolute Path.
    """
    p = Path(os.path.expandvars(os.path.expanduser(str(path))))
    try:
        p = p.resolve()
    except OSError:
        p = p.absolute()
    return p


def search_directory(path: str | Path | None = None) -> Path:
    """Get the directory a detection walk should start from.

    Directories are used as-is; anything else (a file, or a path that does
    not exist yet such as an unsaved buffer) is replaced by its parent.

    Args:
        path: File or directory path. Defaults to the current directory.

    Returns:
        Normalized absolute directory path.
    """
    if path is None or str(path) == "":
        return normalize_path(Path.cwd())
    p = normalize_path(path)
    if p.is_dir():
        return p
    return p.parent


def relative_parts(path: Path, root: Path) -> tuple[str, ...]:
    """Get the path segments of ``path`` below ``root``.

    Returns:
        The segments, or an empty tuple if ``path`` is not below ``root``.
    """
    try:
        return path.relative_to(root).parts
    except ValueError:
        return ()


def is_within(path: Path, directory: Path) -> bool:
    """Check whether ``path`` is ``directory`` itself or lies below it."""
    return path == directory or directory in path.parents
