"""Workspace discovery inside a detected monorepo root."""

from __future__ import annotations

import glob
import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from envscope.core.cache import DetectionCache
from envscope.core.models import Workspace, WorkspaceMetadata
from envscope.core.path_utils import relative_parts
from envscope.core.utils import merge_unique
from envscope.ports.providers import MonorepoProvider
from envscope.services.bulk_resolver import BulkResolver

logger = logging.getLogger(__name__)

UNLISTED_TYPE_PRIORITY = 999


class WorkspaceFinder:
    """Expands a provider's workspace globs into validated workspaces.

    A directory is a workspace when it matches one of the provider's
    patterns, lies no deeper than ``provider.get_max_depth()`` below the
    root and contains one of ``provider.get_package_managers()``.
    """

    def __init__(self, cache: DetectionCache, bulk_resolver: BulkResolver) -> None:
        self._cache = cache
        self._bulk = bulk_resolver

    def find_workspaces(
        self,
        root_path: Path | str,
        provider: MonorepoProvider,
        detection_metadata: dict[str, Any] | None = None,
    ) -> list[Workspace]:
        """Find every workspace under ``root_path``.

        Args:
            root_path: Detected monorepo root.
            provider: Provider that detected the root.
            detection_metadata: Metadata from detection, used to add the
                patterns the tool's own configuration declares.

        Returns:
            Workspaces ordered by type priority, then name.
        """
        root = Path(root_path)
        patterns = self._patterns(provider, detection_metadata)
        if not patterns:
            return []

        cache_key = provider.get_cache_key(root, "workspaces:" + ",".join(patterns))
        ttl = provider.get_cache_duration()
        cached = self._cache.get_workspaces(cache_key, ttl)
        if cached is not None:
            return list(cached)

        max_depth = provider.get_max_depth()
        markers = provider.get_package_managers()

        candidates: list[Path] = []
        for pattern in patterns:
            matches = sorted(glob.glob(os.path.join(glob.escape(str(root)), pattern)))
            candidates.extend(Path(m) for m in matches if os.path.isdir(m))

        workspaces = []
        seen: set[Path] = set()
        for directory in candidates:
            if directory in seen:
                continue
            seen.add(directory)
            workspace = self._build_workspace(directory, root, provider, markers)
            if workspace is None:
                continue
            if workspace.metadata.depth > max_depth or not workspace.metadata.has_package_manager:
                continue
            workspaces.append(workspace)

        workspaces = self.sort_workspaces(workspaces, provider.get_workspace_priority())
        self._cache.set_workspaces(cache_key, workspaces, ttl)
        logger.debug(
            "Found %d workspaces under %s (%d candidates, provider=%s)",
            len(workspaces),
            root,
            len(candidates),
            provider.name,
        )
        return list(workspaces)

    def _patterns(
        self, provider: MonorepoProvider, detection_metadata: dict[str, Any] | None
    ) -> list[str]:
        patterns = list(provider.get_workspace_patterns() or [])
        if detection_metadata:
            get_dynamic = getattr(provider, "get_dynamic_workspace_patterns", None)
            if callable(get_dynamic):
                patterns = merge_unique(patterns, get_dynamic(detection_metadata) or [])
        return patterns

    def _build_workspace(
        self,
        directory: Path,
        root: Path,
        provider: MonorepoProvider,
        markers: Iterable[str],
    ) -> Workspace | None:
        parts = relative_parts(directory, root)
        if not parts:
            return None
        exists = self._bulk.batch_file_exists(directory / marker for marker in markers)
        return Workspace(
            path=directory,
            name=directory.name,
            relative_path="/".join(parts),
            type=parts[0],
            provider=provider,
            metadata=WorkspaceMetadata(depth=len(parts), has_package_manager=any(exists.values())),
        )

    @staticmethod
    def sort_workspaces(workspaces: Iterable[Workspace], priority: list[str]) -> list[Workspace]:
        """Order by position of the type in ``priority`` (unlisted last), then name."""
        rank = {type_name: index for index, type_name in enumerate(priority)}
        return sorted(
            workspaces,
            key=lambda ws: (rank.get(ws.type, UNLISTED_TYPE_PRIORITY), ws.name),
        )

    @staticmethod
    def find_by_name(workspaces: Iterable[Workspace], name: str) -> Workspace | None:
        return next((ws for ws in workspaces if ws.name == name), None)

    @staticmethod
    def find_by_type(workspaces: Iterable[Workspace], workspace_type: str) -> list[Workspace]:
        return [ws for ws in workspaces if ws.type == workspace_type]

    def clear_cache(self, root_path: Path | str, provider: MonorepoProvider | None = None) -> int:
        """Forget cached workspace lists for ``root_path``.

        Args:
            root_path: Monorepo root.
            provider: Limit to this provider's entry; all providers if None.

        Returns:
            Number of cache entries removed.
        """
        if provider is not None:
            prefix = re.escape(provider.get_cache_key(Path(root_path), "workspaces"))
            return self._cache.evict_pattern(rf"^{prefix}:")
        pattern = rf"^provider:[^:]+:{re.escape(str(Path(root_path)))}:workspaces:"
        return self._cache.evict_pattern(pattern)
