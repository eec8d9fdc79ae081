"""Protocol interface for monorepo providers.

A provider recognizes one monorepo tool (Turborepo, Nx, ...) and describes
where its workspaces live and how environment files are layered. Built-in
providers derive from ``envscope.providers.base.BaseProvider``, but any
object satisfying this protocol can be registered.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from envscope.core.models import EnvResolutionConfig

DetectOutcome = tuple[bool, int, dict[str, Any] | None]


class MonorepoProvider(Protocol):
    """Protocol for monorepo providers.

    Only ``name`` and ``detect`` are checked at registration time. Services
    fall back to defaults for the optional query methods where a sensible
    default exists.
    """

    name: str
    priority: int

    def detect(self, path: Path) -> DetectOutcome:
        """Check whether ``path`` is a monorepo root of this provider's kind.

        Args:
            path: Absolute directory to inspect.

        Returns:
            Tuple of (found, confidence 0..100, metadata or None). A
            confidence of 0 means not detected. Must never raise for
            missing or malformed marker files.
        """
        ...

    def get_workspace_patterns(self) -> list[str]:
        """Glob patterns, relative to the root, that match workspaces."""
        ...

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Workspace patterns refined with metadata captured at detection."""
        ...

    def get_workspace_priority(self) -> list[str]:
        """Workspace type names in sort order."""
        ...

    def get_env_resolution(self) -> EnvResolutionConfig:
        """Environment file precedence configuration."""
        ...

    def get_package_managers(self) -> list[str]:
        """Marker files that make a directory a valid workspace."""
        ...

    def get_cache_duration(self) -> int:
        """TTL in milliseconds for results derived from this provider."""
        ...

    def get_max_depth(self) -> int:
        """Maximum workspace depth below the root."""
        ...

    def get_cache_key(self, path: Path | str, suffix: str | None = None) -> str:
        """Provider-scoped cache key for ``path``."""
        ...
