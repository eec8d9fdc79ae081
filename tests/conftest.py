"""Pytest fixtures for envscope tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

from envscope.config import Settings, override_settings, reset_settings
from envscope.core.cache import DetectionCache
from envscope.factory import ServiceContainer, ServiceFactory

TreeBuilder = Callable[[Path, Mapping[str, Any]], Path]


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def write_tree(root: Path, files: Mapping[str, Any]) -> Path:
    """Create files under ``root``.

    Keys are POSIX relative paths. A key ending in ``/`` creates a directory.
    Dict and list values are written as JSON, anything else as text.

    Returns:
        The resolved root.
    """
    for relative, content in files.items():
        target = root / relative
        if relative.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, (dict, list)):
            target.write_text(json.dumps(content))
        else:
            target.write_text(str(content))
    return root.resolve()


# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable millisecond clock."""
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> DetectionCache:
    """Provide a cache driven by the fake clock."""
    return DetectionCache(clock=clock)


@pytest.fixture
def make_tree() -> TreeBuilder:
    """Provide the directory tree builder."""
    return write_tree


@pytest.fixture
def services(clock: FakeClock) -> ServiceContainer:
    """Provide a fresh, fully wired set of services without providers."""
    return ServiceFactory(clock=clock).create_all()


@pytest.fixture
def turbo_repo(tmp_path: Path) -> Path:
    """Provide a Turborepo with one app workspace and root/app env files."""
    return write_tree(
        tmp_path / "root",
        {
            "turbo.json": {"tasks": {"build": {}}},
            "package.json": {"name": "root", "private": True},
            ".env": "ROOT=1\n",
            "apps/web/package.json": {"name": "web"},
            "apps/web/.env": "WEB=1\n",
            "apps/web/src/index.ts": "export {};\n",
        },
    )


@pytest.fixture
def test_settings() -> Generator[Settings, None, None]:
    """Provide settings installed as the process-wide instance."""
    settings = Settings(log_level="DEBUG")
    override_settings(settings)
    yield settings
    reset_settings()
