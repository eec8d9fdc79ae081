"""Automatic workspace switching as the host moves between files.

Nothing here runs on a timer. The host reports file changes with
``AutoSwitcher.handle_file_change``; the most recent one waits in a
pending slot and is processed by ``process_pending`` once the debounce
delay has elapsed. ``SwitchThrottle`` then decides whether the check is
worth doing at all.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from envscope.config import AutoSwitchThrottleConfig
from envscope.core.models import DetectionResult, Workspace
from envscope.core.path_utils import is_within, normalize_path
from envscope.core.utils import monotonic_ms
from envscope.services.workspace_finder import WorkspaceFinder
from envscope.services.workspace_manager import WorkspaceManager

logger = logging.getLogger(__name__)

RATE_WINDOW_MS = 1000

Notifier = Callable[[str, Workspace, Workspace | None], Any]


class SwitchThrottle:
    """Decides whether a file change should trigger a workspace check.

    Reasons returned by ``should_throttle``:
        rate_limit_exceeded: too many checks within one second
        same_file: the file was the last one checked
        min_interval: the last check was too recent
        same_workspace_boundary: the file is inside the current workspace
        not_throttled: go ahead
    """

    def __init__(
        self,
        config: AutoSwitchThrottleConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or AutoSwitchThrottleConfig()
        self._clock = clock or monotonic_ms
        self.reset()

    def should_throttle(self, file_path: Path | str) -> tuple[bool, str]:
        """Check whether a workspace check for ``file_path`` should be skipped.

        Returns:
            Tuple of (throttled, reason).
        """
        now = self._clock()
        path = normalize_path(file_path)

        if self._check_count > 0 and self._last_check_time is not None:
            if now - self._last_check_time < RATE_WINDOW_MS:
                if self._check_count >= self._config.max_checks_per_second:
                    return self._skip("rate_limit_exceeded")
            else:
                self._check_count = 0

        if self._config.same_file_skip and path == self._last_file:
            return self._skip("same_file")

        if (
            self._last_check_time is not None
            and now - self._last_check_time < self._config.min_interval
        ):
            return self._skip("min_interval")

        if (
            self._config.workspace_boundary_only
            and self._last_workspace is not None
            and is_within(path, self._last_workspace.path)
        ):
            return self._skip("same_workspace_boundary")

        return False, "not_throttled"

    def _skip(self, reason: str) -> tuple[bool, str]:
        self._skip_count += 1
        return True, reason

    def record_check(self, file_path: Path | str) -> None:
        """Note that a check for ``file_path`` is being performed."""
        self._last_check_time = self._clock()
        self._last_file = normalize_path(file_path)
        self._check_count += 1

    def update_workspace(self, workspace: Workspace | None) -> None:
        self._last_workspace = workspace

    def get_stats(self) -> dict[str, Any]:
        return {
            "check_count": self._check_count,
            "skip_count": self._skip_count,
            "last_check_time": self._last_check_time,
            "last_file": str(self._last_file) if self._last_file else None,
            "last_workspace": self._last_workspace.name if self._last_workspace else None,
            "config": self._config.model_dump(),
        }

    def configure(self, config: AutoSwitchThrottleConfig) -> None:
        self._config = config

    @property
    def config(self) -> AutoSwitchThrottleConfig:
        return self._config

    def reset(self) -> None:
        self._last_check_time: float | None = None
        self._last_file: Path | None = None
        self._last_workspace: Workspace | None = None
        self._check_count = 0
        self._skip_count = 0


class AutoSwitcher:
    """Switches the current workspace to follow the file being edited.

    Example:
        switcher = AutoSwitcher(detect, finder, manager, SwitchThrottle())
        switcher.handle_file_change("/repo/apps/web/src/index.ts")
        ...
        switcher.process_pending()  # called from the host's idle loop
    """

    def __init__(
        self,
        detect: Callable[[Path | str], DetectionResult],
        finder: WorkspaceFinder,
        manager: WorkspaceManager,
        throttle: SwitchThrottle | None = None,
        notify_on_switch: bool = False,
        notifier: Notifier | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the switcher.

        Args:
            detect: Root detection function (normally the facade's, so
                detection hooks fire).
            finder: Workspace finder.
            manager: Holder of the current workspace.
            throttle: Throttle; a default one is created if omitted.
            notify_on_switch: Announce switches through the notifier.
            notifier: Callback receiving ``(message, new, previous)``.
            clock: Millisecond clock, shared with the default throttle.
        """
        self._detect = detect
        self._finder = finder
        self._manager = manager
        self._clock = clock or monotonic_ms
        self._throttle = throttle or SwitchThrottle(clock=self._clock)
        self._notify_on_switch = notify_on_switch
        self._notifier = notifier
        self._enabled = False
        self._pending: tuple[Path, float] | None = None
        self._current_root: Path | None = None
        self._switch_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def enable(self) -> None:
        self._enabled = True
        logger.debug("Auto-switch enabled")

    def disable(self) -> None:
        self._enabled = False
        self._pending = None
        self._throttle.reset()
        logger.debug("Auto-switch disabled")

    def is_enabled(self) -> bool:
        return self._enabled

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_file_change(self, file_path: Path | str | None) -> bool:
        """Queue a file change. A newer change replaces an older pending one.

        Returns:
            True if the change was queued.
        """
        if not self._enabled or file_path is None or str(file_path) == "":
            return False
        self._pending = (normalize_path(file_path), self._clock())
        return True

    def process_pending(self, force: bool = False) -> bool:
        """Run the queued check once its debounce delay has elapsed.

        Args:
            force: Ignore the debounce delay.

        Returns:
            True if the current workspace changed.
        """
        if self._pending is None or not self._enabled:
            return False
        file_path, queued_at = self._pending
        delay = self._throttle.config.debounce_delay
        if not force and self._clock() - queued_at < delay:
            return False
        self._pending = None

        throttled, reason = self._throttle.should_throttle(file_path)
        if throttled:
            logger.debug("Workspace check for %s skipped: %s", file_path, reason)
            return False
        self._throttle.record_check(file_path)
        return self.perform_workspace_check(file_path)

    def has_pending(self) -> bool:
        return self._pending is not None

    def manual_switch(self, file_path: Path | str) -> bool:
        """Check ``file_path`` immediately, bypassing debounce and throttling.

        Returns:
            True if the current workspace changed.
        """
        self._pending = None
        self._throttle.record_check(file_path)
        return self.perform_workspace_check(file_path)

    def perform_workspace_check(self, file_path: Path | str) -> bool:
        """Detect the monorepo of ``file_path`` and make its workspace current.

        Leaving a monorepo clears the current workspace.

        Returns:
            True if the current workspace changed.
        """
        result = self._detect(file_path)
        if not result.found:
            if self._current_root is not None:
                logger.debug("Left monorepo %s", self._current_root)
                self._current_root = None
                self._throttle.update_workspace(None)
                return self._manager.set_current(None)
            return False

        assert result.root_path is not None and result.provider is not None
        self._current_root = result.root_path
        metadata = result.detection_info.metadata if result.detection_info else None
        workspaces = self._finder.find_workspaces(result.root_path, result.provider, metadata)
        workspace = WorkspaceManager.find_workspace_for_file(file_path, workspaces)

        previous = self._manager.get_current()
        if workspace is None or workspace == previous:
            return False

        self._manager.set_current(workspace)
        self._throttle.update_workspace(workspace)
        self._switch_count += 1
        self._notify(workspace, previous)
        return True

    def _notify(self, workspace: Workspace, previous: Workspace | None) -> None:
        if not self._notify_on_switch:
            return
        if previous is not None:
            message = f"Switched workspace: {previous.name} -> {workspace.name}"
        else:
            message = f"Entered workspace: {workspace.name}"
        logger.info(message)
        if self._notifier is not None:
            try:
                self._notifier(message, workspace, previous)
            except Exception:
                logger.error("Workspace switch notifier failed", exc_info=True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_current_monorepo(self) -> Path | None:
        return self._current_root

    def configure(
        self,
        enabled: bool | None = None,
        notify_on_switch: bool | None = None,
        throttle: AutoSwitchThrottleConfig | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        if throttle is not None:
            self._throttle.configure(throttle)
        if notify_on_switch is not None:
            self._notify_on_switch = notify_on_switch
        if notifier is not None:
            self._notifier = notifier
        if enabled is True:
            self.enable()
        elif enabled is False:
            self.disable()

    def get_stats(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "current_monorepo": str(self._current_root) if self._current_root else None,
            "pending": str(self._pending[0]) if self._pending else None,
            "switch_count": self._switch_count,
            "throttle": self._throttle.get_stats(),
        }

    def reset(self) -> None:
        """Forget the current monorepo, the pending change and throttle state."""
        self._pending = None
        self._current_root = None
        self._switch_count = 0
        self._throttle.reset()
