"""Current-workspace state and workspace list helpers."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from envscope.core.models import Workspace
from envscope.core.path_utils import is_within, normalize_path
from envscope.services.plugin_system import PluginSystem
from envscope.services.workspace_finder import WorkspaceFinder

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Workspace | None, Workspace | None], Any]


class WorkspaceManager:
    """Tracks the current workspace and notifies listeners when it changes.

    Listeners and the ``before_workspace_switch``/``after_workspace_switch``
    hooks receive ``(new_workspace, previous_workspace)``. Setting the same
    workspace again is a no-op.
    """

    def __init__(self, plugin_system: PluginSystem | None = None) -> None:
        self._plugins = plugin_system
        self._current: Workspace | None = None
        self._listeners: list[ChangeListener] = []

    def set_current(self, workspace: Workspace | None) -> bool:
        """Make ``workspace`` current.

        Returns:
            True if the current workspace changed.
        """
        previous = self._current
        if previous == workspace:
            return False

        if self._plugins is not None:
            self._plugins.call_hooks("before_workspace_switch", workspace, previous)

        self._current = workspace
        for listener in list(self._listeners):
            try:
                listener(workspace, previous)
            except Exception:
                logger.error("Workspace change listener failed", exc_info=True)

        if self._plugins is not None:
            self._plugins.call_hooks("after_workspace_switch", workspace, previous)

        logger.debug(
            "Current workspace: %s -> %s",
            previous.name if previous else None,
            workspace.name if workspace else None,
        )
        return True

    def get_current(self) -> Workspace | None:
        return self._current

    def add_change_listener(self, listener: ChangeListener) -> None:
        if callable(listener):
            self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> bool:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def clear_state(self) -> None:
        """Forget the current workspace without notifying anyone."""
        self._current = None

    # ------------------------------------------------------------------
    # Workspace list helpers
    # ------------------------------------------------------------------

    @staticmethod
    def find_workspace_for_file(
        file_path: Path | str | None, workspaces: Iterable[Workspace]
    ) -> Workspace | None:
        """The workspace whose directory most closely contains ``file_path``.

        Nested workspaces resolve to the deepest match.
        """
        if file_path is None or str(file_path) == "":
            return None
        path = normalize_path(file_path)

        best: Workspace | None = None
        for workspace in workspaces:
            if is_within(path, workspace.path):
                if best is None or len(workspace.path.parts) > len(best.path.parts):
                    best = workspace
        return best

    @staticmethod
    def filter_by_type(workspaces: Iterable[Workspace], workspace_type: str) -> list[Workspace]:
        return WorkspaceFinder.find_by_type(workspaces, workspace_type)

    @staticmethod
    def sort_by_priority(workspaces: Iterable[Workspace], priority: list[str]) -> list[Workspace]:
        return WorkspaceFinder.sort_workspaces(workspaces, priority)

    @staticmethod
    def get_stats(workspaces: Iterable[Workspace]) -> dict[str, Any]:
        workspaces = list(workspaces)
        return {
            "total": len(workspaces),
            "by_type": dict(Counter(ws.type for ws in workspaces)),
            "by_provider": dict(Counter(ws.provider_name or "unknown" for ws in workspaces)),
        }

    @staticmethod
    def get_display_name(workspace: Workspace | None, root_path: Path | str | None = None) -> str:
        """Human-readable label, e.g. ``apps/web (apps)``."""
        if workspace is None:
            return "No workspace"
        label = workspace.name
        if root_path is not None:
            try:
                label = workspace.path.relative_to(Path(root_path)).as_posix()
            except ValueError:
                pass
        if workspace.type:
            label = f"{label} ({workspace.type})"
        return label

    @staticmethod
    def validate_workspace(workspace: Any) -> tuple[bool, str | None]:
        """Check that an object has the shape of a workspace.

        Returns:
            Tuple of (valid, error message or None).
        """
        if not isinstance(workspace, Workspace):
            return False, "Workspace must be a Workspace instance"
        if not isinstance(workspace.path, Path) or not workspace.path.is_absolute():
            return False, "Workspace path must be an absolute path"
        if not workspace.name:
            return False, "Workspace name must be a non-empty string"
        if not workspace.type:
            return False, "Workspace type must be a non-empty string"
        return True, None
