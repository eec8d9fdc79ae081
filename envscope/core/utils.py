"""Utility functions for envscope core."""

from __future__ import annotations

import json
import logging
import os
import time
import tomllib
from collections.abc import Iterable
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def monotonic_ms() -> float:
    """Get a monotonic clock reading in milliseconds.

    All cache timestamps and TTLs in envscope are expressed in milliseconds.

    Returns:
        Milliseconds from an arbitrary, monotonically increasing origin.
    """
    return time.monotonic() * 1000.0


def is_readable_file(path: str | Path) -> bool:
    """Check whether a path is an existing, readable regular file."""
    try:
        return os.path.isfile(path) and os.access(path, os.R_OK)
    except (OSError, ValueError):
        return False


def is_directory(path: str | Path) -> bool:
    """Check whether a path is an existing directory."""
    try:
        return os.path.isdir(path)
    except (OSError, ValueError):
        return False


def read_json_file(path: str | Path) -> Any | None:
    """Read and parse a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        The parsed document, or None if the file is missing, unreadable
        or not valid JSON.
    """
    if not is_readable_file(path):
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.debug("Unparseable JSON in %s: %s", path, e)
        return None


def read_toml_file(path: str | Path) -> dict[str, Any] | None:
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        The parsed document, or None if the file is missing, unreadable
        or not valid TOML.
    """
    if not is_readable_file(path):
        return None
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as e:
        logger.debug("Unparseable TOML in %s: %s", path, e)
        return None


def read_text_file(path: str | Path) -> str | None:
    """Read a UTF-8 text file, returning None on any failure."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def unique(items: Iterable[T]) -> list[T]:
    """Remove duplicates while preserving first-occurrence order."""
    seen: set[T] = set()
    result: list[T] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def merge_unique(base: Iterable[T], extra: Iterable[T]) -> list[T]:
    """Append items from ``extra`` that are not already in ``base``."""
    return unique([*base, *extra])


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Nested dictionaries are merged; every other value in ``override``
    replaces the one in ``base`` (lists are replaced, not concatenated).
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
