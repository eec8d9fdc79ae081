"""Tests for SwitchThrottle and AutoSwitcher."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from envscope.config import AutoSwitchThrottleConfig
from envscope.core.models import Workspace, WorkspaceMetadata
from envscope.factory import ServiceContainer, ServiceFactory
from envscope.services.auto_switch import AutoSwitcher, SwitchThrottle
from tests.conftest import FakeClock, TreeBuilder


def _throttle(clock: FakeClock, **overrides: Any) -> SwitchThrottle:
    return SwitchThrottle(AutoSwitchThrottleConfig(**overrides), clock=clock)


@pytest.fixture
def repo(turbo_repo: Path, make_tree: TreeBuilder) -> Path:
    """Turborepo with two app workspaces."""
    return make_tree(
        turbo_repo,
        {"apps/api/package.json": {"name": "api"}, "apps/api/src/main.ts": ""},
    )


@pytest.fixture
def wired(services: ServiceContainer) -> ServiceContainer:
    services.detection.load_builtin_providers()
    services.auto_switcher.enable()
    return services


@pytest.mark.unit
class TestSwitchThrottle:
    """Tests for SwitchThrottle.should_throttle."""

    def test_first_check_not_throttled(self, clock: FakeClock) -> None:
        assert _throttle(clock).should_throttle("/repo/a.ts") == (False, "not_throttled")

    def test_same_file(self, clock: FakeClock) -> None:
        throttle = _throttle(clock)
        throttle.record_check("/repo/a.ts")
        clock.advance(500)
        assert throttle.should_throttle("/repo/a.ts") == (True, "same_file")

    def test_same_file_skip_disabled(self, clock: FakeClock) -> None:
        throttle = _throttle(clock, same_file_skip=False)
        throttle.record_check("/repo/a.ts")
        clock.advance(500)
        assert throttle.should_throttle("/repo/a.ts") == (False, "not_throttled")

    def test_min_interval(self, clock: FakeClock) -> None:
        throttle = _throttle(clock, min_interval=100)
        throttle.record_check("/repo/a.ts")
        clock.advance(99)
        assert throttle.should_throttle("/repo/b.ts") == (True, "min_interval")
        clock.advance(1)
        assert throttle.should_throttle("/repo/b.ts") == (False, "not_throttled")

    def test_rate_limit(self, clock: FakeClock) -> None:
        throttle = _throttle(clock, max_checks_per_second=2, min_interval=0)
        throttle.record_check("/repo/a.ts")
        clock.advance(10)
        throttle.record_check("/repo/b.ts")
        clock.advance(10)
        assert throttle.should_throttle("/repo/c.ts") == (True, "rate_limit_exceeded")

    def test_rate_window_resets(self, clock: FakeClock) -> None:
        throttle = _throttle(clock, max_checks_per_second=1, min_interval=0)
        throttle.record_check("/repo/a.ts")
        clock.advance(1000)
        assert throttle.should_throttle("/repo/b.ts") == (False, "not_throttled")
        assert throttle.get_stats()["check_count"] == 0

    def test_workspace_boundary(self, clock: FakeClock, tmp_path: Path) -> None:
        root = tmp_path.resolve()
        throttle = _throttle(clock)
        throttle.update_workspace(
            Workspace(
                path=root / "apps/web",
                name="web",
                relative_path="apps/web",
                type="apps",
                metadata=WorkspaceMetadata(depth=2, has_package_manager=True),
            )
        )
        assert throttle.should_throttle(root / "apps/web/src/x.ts") == (
            True,
            "same_workspace_boundary",
        )
        assert throttle.should_throttle(root / "apps/api/x.ts")[0] is False

    def test_workspace_boundary_disabled(self, clock: FakeClock, tmp_path: Path) -> None:
        root = tmp_path.resolve()
        throttle = _throttle(clock, workspace_boundary_only=False)
        throttle.update_workspace(
            Workspace(path=root / "apps/web", name="web", relative_path="apps/web", type="apps")
        )
        assert throttle.should_throttle(root / "apps/web/src/x.ts")[0] is False

    def test_stats_and_reset(self, clock: FakeClock) -> None:
        throttle = _throttle(clock)
        throttle.record_check("/repo/a.ts")
        throttle.should_throttle("/repo/a.ts")

        stats = throttle.get_stats()
        assert stats["check_count"] == 1
        assert stats["skip_count"] == 1
        assert stats["last_file"] == str(Path("/repo/a.ts").resolve())
        assert stats["config"]["debounce_delay"] == 250

        throttle.reset()
        assert throttle.get_stats()["check_count"] == 0
        assert throttle.get_stats()["last_file"] is None

    def test_configure(self, clock: FakeClock) -> None:
        throttle = _throttle(clock)
        throttle.configure(AutoSwitchThrottleConfig(debounce_delay=0))
        assert throttle.config.debounce_delay == 0


@pytest.mark.unit
class TestAutoSwitcherEvents:
    """Tests for queuing, debouncing and processing file changes."""

    def test_disabled_ignores_changes(self, services: ServiceContainer, repo: Path) -> None:
        switcher = services.auto_switcher
        assert switcher.is_enabled() is False
        assert switcher.handle_file_change(repo / "apps/web/src/index.ts") is False
        assert switcher.has_pending() is False

    def test_empty_path_ignored(self, wired: ServiceContainer) -> None:
        assert wired.auto_switcher.handle_file_change("") is False
        assert wired.auto_switcher.handle_file_change(None) is False

    def test_debounced_switch(
        self, wired: ServiceContainer, clock: FakeClock, repo: Path
    ) -> None:
        switcher = wired.auto_switcher
        assert switcher.handle_file_change(repo / "apps/web/src/index.ts") is True

        clock.advance(249)
        assert switcher.process_pending() is False
        assert switcher.has_pending() is True

        clock.advance(1)
        assert switcher.process_pending() is True
        current = wired.workspace_manager.get_current()
        assert current is not None and current.name == "web"
        assert switcher.get_current_monorepo() == repo
        assert switcher.has_pending() is False

    def test_newer_change_replaces_pending(
        self, wired: ServiceContainer, clock: FakeClock, repo: Path
    ) -> None:
        switcher = wired.auto_switcher
        switcher.handle_file_change(repo / "apps/web/src/index.ts")
        clock.advance(200)
        switcher.handle_file_change(repo / "apps/api/src/main.ts")

        clock.advance(100)
        assert switcher.process_pending() is False

        clock.advance(150)
        assert switcher.process_pending() is True
        current = wired.workspace_manager.get_current()
        assert current is not None and current.name == "api"

    def test_force_skips_debounce(self, wired: ServiceContainer, repo: Path) -> None:
        switcher = wired.auto_switcher
        switcher.handle_file_change(repo / "apps/web/src/index.ts")
        assert switcher.process_pending(force=True) is True

    def test_nothing_pending(self, wired: ServiceContainer) -> None:
        assert wired.auto_switcher.process_pending(force=True) is False

    def test_boundary_skip_within_workspace(
        self, wired: ServiceContainer, clock: FakeClock, repo: Path, make_tree: TreeBuilder
    ) -> None:
        make_tree(repo, {"apps/web/src/other.ts": ""})
        switcher = wired.auto_switcher
        switcher.manual_switch(repo / "apps/web/src/index.ts")

        clock.advance(500)
        switcher.handle_file_change(repo / "apps/web/src/other.ts")
        clock.advance(250)

        assert switcher.process_pending() is False
        assert switcher.get_stats()["throttle"]["skip_count"] == 1

    def test_switch_between_workspaces(
        self, wired: ServiceContainer, clock: FakeClock, repo: Path
    ) -> None:
        switcher = wired.auto_switcher
        switcher.manual_switch(repo / "apps/web/src/index.ts")
        clock.advance(500)
        switcher.handle_file_change(repo / "apps/api/src/main.ts")
        clock.advance(250)

        assert switcher.process_pending() is True
        assert switcher.get_stats()["switch_count"] == 2

    def test_root_file_keeps_workspace(
        self, wired: ServiceContainer, clock: FakeClock, repo: Path
    ) -> None:
        switcher = wired.auto_switcher
        switcher.manual_switch(repo / "apps/web/src/index.ts")
        clock.advance(500)
        assert switcher.manual_switch(repo / "package.json") is False
        current = wired.workspace_manager.get_current()
        assert current is not None and current.name == "web"

    def test_leaving_monorepo_clears_workspace(
        self, wired: ServiceContainer, repo: Path, tmp_path: Path, make_tree: TreeBuilder
    ) -> None:
        outside = make_tree(tmp_path / "elsewhere", {"notes.txt": "x"})
        switcher = wired.auto_switcher
        switcher.manual_switch(repo / "apps/web/src/index.ts")

        assert switcher.manual_switch(outside / "notes.txt") is True
        assert wired.workspace_manager.get_current() is None
        assert switcher.get_current_monorepo() is None

    def test_disable_drops_pending(self, wired: ServiceContainer, repo: Path) -> None:
        switcher = wired.auto_switcher
        switcher.handle_file_change(repo / "apps/web/src/index.ts")
        switcher.disable()
        assert switcher.has_pending() is False
        assert switcher.process_pending(force=True) is False


@pytest.mark.unit
class TestAutoSwitcherNotifications:
    """Tests for switch notifications."""

    def _switcher(
        self, clock: FakeClock, notifier: Any, notify_on_switch: bool = True
    ) -> tuple[AutoSwitcher, ServiceContainer]:
        services = ServiceFactory(clock=clock, notifier=notifier).create_all()
        services.detection.load_builtin_providers()
        services.auto_switcher.configure(enabled=True, notify_on_switch=notify_on_switch)
        return services.auto_switcher, services

    def test_enter_and_switch_messages(
        self, clock: FakeClock, repo: Path
    ) -> None:
        messages: list[str] = []
        switcher, _ = self._switcher(clock, lambda msg, new, prev: messages.append(msg))

        switcher.manual_switch(repo / "apps/web/src/index.ts")
        clock.advance(500)
        switcher.manual_switch(repo / "apps/api/src/main.ts")

        assert messages == ["Entered workspace: web", "Switched workspace: web -> api"]

    def test_disabled_notifications(self, clock: FakeClock, repo: Path) -> None:
        messages: list[str] = []
        switcher, _ = self._switcher(
            clock, lambda msg, new, prev: messages.append(msg), notify_on_switch=False
        )
        switcher.manual_switch(repo / "apps/web/src/index.ts")
        assert messages == []

    def test_failing_notifier_logged(
        self, clock: FakeClock, repo: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        def fail(msg: str, new: Any, prev: Any) -> None:
            raise RuntimeError("notifier down")

        switcher, services = self._switcher(clock, fail)
        with caplog.at_level(logging.ERROR):
            assert switcher.manual_switch(repo / "apps/web/src/index.ts") is True

        assert "Workspace switch notifier failed" in caplog.text
        assert services.workspace_manager.get_current() is not None

    def test_reset(self, wired: ServiceContainer, repo: Path) -> None:
        switcher = wired.auto_switcher
        switcher.manual_switch(repo / "apps/web/src/index.ts")
        switcher.reset()
        stats = switcher.get_stats()
        assert stats["current_monorepo"] is None
        assert stats["switch_count"] == 0
        assert stats["enabled"] is True
