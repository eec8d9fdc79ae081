"""Environment file resolution.

Given a workspace (or none) inside a monorepo root, decides which ``.env*``
files apply and in which order. The provider's ``EnvResolutionConfig``
selects the strategy:

- workspace_only: the workspace directory alone
- workspace_first: the workspace, then the root if inheritance is on
- root_first: the root, then the workspace
- merge: both, concatenated in ``override_order``

Earlier files take precedence for consumers applying first-match-wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from envscope.core.cache import DetectionCache
from envscope.core.models import (
    DEFAULT_ENV_RESOLUTION,
    EnvResolutionConfig,
    EnvStrategy,
    ResolveOptions,
    Workspace,
)
from envscope.core.utils import unique
from envscope.ports.providers import MonorepoProvider
from envscope.services.bulk_resolver import BulkResolver, hoist_preferred

logger = logging.getLogger(__name__)

DEFAULT_ENV_PATTERNS: tuple[str, ...] = (".env", ".envrc", ".env.*")


def get_env_resolution(provider: MonorepoProvider) -> EnvResolutionConfig:
    """The provider's resolution config, or the default if it has none."""
    get_resolution = getattr(provider, "get_env_resolution", None)
    if not callable(get_resolution):
        return DEFAULT_ENV_RESOLUTION
    resolution: Any = get_resolution()
    if isinstance(resolution, EnvResolutionConfig):
        return resolution
    return EnvResolutionConfig.model_validate(resolution or {})


def search_order(
    resolution: EnvResolutionConfig, workspace_dir: Path | None, root: Path
) -> list[Path]:
    """Directories whose files make up the result, in precedence order."""
    strategy = resolution.strategy
    if strategy is EnvStrategy.WORKSPACE_ONLY:
        return [workspace_dir] if workspace_dir else []
    if strategy is EnvStrategy.WORKSPACE_FIRST:
        order = [workspace_dir] if workspace_dir else []
        if resolution.inheritance:
            order.append(root)
        return order
    if strategy is EnvStrategy.ROOT_FIRST:
        return [root, workspace_dir] if workspace_dir else [root]

    locations = {"root": root, "workspace": workspace_dir}
    return [d for d in (locations.get(token) for token in resolution.override_order) if d]


class EnvironmentResolver:
    """Resolves ordered environment file lists through the bulk resolver.

    Example:
        resolver = EnvironmentResolver(cache, bulk)
        files = resolver.resolve_env_files(workspace, root, provider)
    """

    def __init__(self, cache: DetectionCache, bulk_resolver: BulkResolver) -> None:
        self._cache = cache
        self._bulk = bulk_resolver

    def resolve_env_files(
        self,
        workspace: Workspace | None,
        root_path: Path | str,
        provider: MonorepoProvider,
        patterns: Sequence[str] | None = None,
        opts: ResolveOptions | None = None,
    ) -> list[Path]:
        """Resolve the environment files that apply to ``workspace``.

        Args:
            workspace: Current workspace, or None for files outside any.
            root_path: Monorepo root.
            provider: Provider of the monorepo.
            patterns: File globs; defaults to ``.env``, ``.envrc``, ``.env.*``.
            opts: Preferred environment and optional sort key.

        Returns:
            Absolute file paths, deduplicated, in precedence order.
        """
        root = Path(root_path)
        patterns = list(patterns if patterns is not None else DEFAULT_ENV_PATTERNS)
        opts = opts or ResolveOptions()

        resolution = get_env_resolution(provider)
        directories = search_order(resolution, workspace.path if workspace else None, root)

        cache_key = self._cache_key(workspace, root, provider, patterns, opts, directories)
        ttl = provider.get_cache_duration() if hasattr(provider, "get_cache_duration") else None
        cached = self._cache.get_env_files(cache_key, ttl)
        if cached is not None:
            return self._apply_sort_key(cached, opts)

        found = self._bulk.bulk_resolve_env_files(directories, patterns, provider, opts)

        files = unique(f for directory in directories for f in found.get(directory, []))
        files = hoist_preferred(files, opts.preferred_environment)

        self._cache.set_env_files(cache_key, files, ttl)
        logger.debug(
            "Resolved %d env files for %s (strategy=%s)",
            len(files),
            workspace.name if workspace else root,
            resolution.strategy.value,
        )
        return self._apply_sort_key(files, opts)

    def resolve_all_workspace_files(
        self,
        workspaces: Iterable[Workspace],
        root_path: Path | str,
        provider: MonorepoProvider,
        patterns: Sequence[str] | None = None,
        opts: ResolveOptions | None = None,
    ) -> list[Path]:
        """Resolve the files of every workspace with a single bulk lookup.

        Each workspace's list is built with the provider's strategy; the
        lists are concatenated in workspace order and deduplicated.
        """
        workspaces = list(workspaces)
        if not workspaces:
            return []

        root = Path(root_path)
        patterns = list(patterns if patterns is not None else DEFAULT_ENV_PATTERNS)
        opts = opts or ResolveOptions()
        resolution = get_env_resolution(provider)

        orders = [search_order(resolution, ws.path, root) for ws in workspaces]
        directories = unique(d for order in orders for d in order)
        found = self._bulk.bulk_resolve_env_files(directories, patterns, provider, opts)

        files = unique(f for order in orders for d in order for f in found.get(d, []))
        files = hoist_preferred(files, opts.preferred_environment)
        return self._apply_sort_key(files, opts)

    def clear_cache(
        self, workspace: Workspace | None, root_path: Path | str, provider: MonorepoProvider
    ) -> int:
        """Forget cached results for one workspace (or the no-workspace case).

        Bulk lookups that touched the root are dropped as well.

        Returns:
            Number of cache entries removed.
        """
        root = re.escape(str(Path(root_path)))
        target = re.escape(str(workspace.path)) if workspace else "no_workspace"
        name = re.escape(provider.name)
        removed = self._cache.evict_pattern(rf"^env_files:{name}:{root}:{target}:")
        removed += self._cache.evict_pattern(rf"^bulk_env_files:{name}:.*{root}")
        return removed

    @staticmethod
    def _cache_key(
        workspace: Workspace | None,
        root: Path,
        provider: MonorepoProvider,
        patterns: list[str],
        opts: ResolveOptions,
        directories: list[Path],
    ) -> str:
        return ":".join(
            [
                "env_files",
                provider.name,
                str(root),
                str(workspace.path) if workspace else "no_workspace",
                ",".join(patterns),
                opts.preferred_environment or "no_pref",
                ",".join(str(d) for d in directories),
            ]
        )

    @staticmethod
    def _apply_sort_key(files: list[Path], opts: ResolveOptions) -> list[Path]:
        if opts.sort_key is not None:
            return sorted(files, key=opts.sort_key)
        return list(files)
