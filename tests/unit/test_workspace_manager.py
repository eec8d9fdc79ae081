"""Tests for WorkspaceManager."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from envscope.core.models import Workspace, WorkspaceMetadata
from envscope.factory import ServiceContainer
from envscope.providers import TurborepoProvider
from envscope.services.workspace_manager import WorkspaceManager


def _workspace(relative: str, root: Path = Path("/repo"), provider: Any = None) -> Workspace:
    path = root / relative
    return Workspace(
        path=path,
        name=path.name,
        relative_path=relative,
        type=relative.split("/")[0],
        provider=provider,
        metadata=WorkspaceMetadata(depth=len(relative.split("/")), has_package_manager=True),
    )


@pytest.fixture
def manager(services: ServiceContainer) -> WorkspaceManager:
    return services.workspace_manager


@pytest.mark.unit
class TestCurrentWorkspace:
    """Tests for set_current and change notification."""

    def test_initially_none(self, manager: WorkspaceManager) -> None:
        assert manager.get_current() is None

    def test_set_and_notify(self, manager: WorkspaceManager) -> None:
        web = _workspace("apps/web")
        events: list[tuple[Any, Any]] = []
        manager.add_change_listener(lambda new, previous: events.append((new, previous)))

        assert manager.set_current(web) is True
        assert manager.get_current() == web
        assert events == [(web, None)]

    def test_same_workspace_is_noop(self, manager: WorkspaceManager) -> None:
        web = _workspace("apps/web")
        events: list[Any] = []
        manager.set_current(web)
        manager.add_change_listener(lambda new, previous: events.append(new))

        assert manager.set_current(_workspace("apps/web")) is False
        assert events == []

    def test_switch_reports_previous(self, manager: WorkspaceManager) -> None:
        web, api = _workspace("apps/web"), _workspace("apps/api")
        events: list[tuple[Any, Any]] = []
        manager.set_current(web)
        manager.add_change_listener(lambda new, previous: events.append((new, previous)))

        manager.set_current(api)
        manager.set_current(None)

        assert events == [(api, web), (None, api)]

    def test_hooks_wrap_listeners(
        self, manager: WorkspaceManager, services: ServiceContainer
    ) -> None:
        order: list[str] = []
        services.plugins.register_hook(
            "before_workspace_switch", lambda new, previous: order.append("before")
        )
        services.plugins.register_hook(
            "after_workspace_switch", lambda new, previous: order.append("after")
        )
        manager.add_change_listener(lambda new, previous: order.append("listener"))

        manager.set_current(_workspace("apps/web"))

        assert order == ["before", "listener", "after"]

    def test_failing_listener_isolated(
        self, manager: WorkspaceManager, caplog: pytest.LogCaptureFixture
    ) -> None:
        events: list[Any] = []

        def fail(new: Any, previous: Any) -> None:
            raise RuntimeError("listener failed")

        manager.add_change_listener(fail)
        manager.add_change_listener(lambda new, previous: events.append(new))

        with caplog.at_level(logging.ERROR):
            assert manager.set_current(_workspace("apps/web")) is True

        assert len(events) == 1
        assert "Workspace change listener failed" in caplog.text

    def test_remove_listener(self, manager: WorkspaceManager) -> None:
        events: list[Any] = []

        def listener(new: Any, previous: Any) -> None:
            events.append(new)

        manager.add_change_listener(listener)
        assert manager.remove_change_listener(listener) is True
        assert manager.remove_change_listener(listener) is False
        manager.set_current(_workspace("apps/web"))
        assert events == []

    def test_clear_state_is_silent(self, manager: WorkspaceManager) -> None:
        events: list[Any] = []
        manager.set_current(_workspace("apps/web"))
        manager.add_change_listener(lambda new, previous: events.append(new))
        manager.clear_state()
        assert manager.get_current() is None
        assert events == []

    def test_without_plugin_system(self) -> None:
        manager = WorkspaceManager()
        assert manager.set_current(_workspace("apps/web")) is True


@pytest.mark.unit
class TestFindWorkspaceForFile:
    """Tests for find_workspace_for_file."""

    def test_file_inside_workspace(self, turbo_repo: Path) -> None:
        web = _workspace("apps/web", turbo_repo)
        found = WorkspaceManager.find_workspace_for_file(
            turbo_repo / "apps/web/src/index.ts", [web]
        )
        assert found == web

    def test_workspace_directory_itself(self, turbo_repo: Path) -> None:
        web = _workspace("apps/web", turbo_repo)
        assert WorkspaceManager.find_workspace_for_file(turbo_repo / "apps/web", [web]) == web

    def test_deepest_match_wins(self, tmp_path: Path) -> None:
        tmp_path = tmp_path.resolve()
        outer = _workspace("packages/tools", tmp_path)
        inner = _workspace("packages/tools/cli", tmp_path)
        found = WorkspaceManager.find_workspace_for_file(
            tmp_path / "packages/tools/cli/main.ts", [outer, inner]
        )
        assert found == inner

    def test_prefix_sibling_not_matched(self, tmp_path: Path) -> None:
        """apps/web must not claim apps/web-admin."""
        tmp_path = tmp_path.resolve()
        web = _workspace("apps/web", tmp_path)
        found = WorkspaceManager.find_workspace_for_file(
            tmp_path / "apps/web-admin/index.ts", [web]
        )
        assert found is None

    def test_root_file_has_no_workspace(self, turbo_repo: Path) -> None:
        web = _workspace("apps/web", turbo_repo)
        assert WorkspaceManager.find_workspace_for_file(turbo_repo / "README.md", [web]) is None

    @pytest.mark.parametrize("path", [None, ""])
    def test_empty_path(self, path: Any) -> None:
        assert WorkspaceManager.find_workspace_for_file(path, [_workspace("apps/web")]) is None


@pytest.mark.unit
class TestWorkspaceHelpers:
    """Tests for the static workspace list helpers."""

    def test_filter_and_sort(self) -> None:
        workspaces = [_workspace("packages/ui"), _workspace("apps/web"), _workspace("apps/api")]
        assert [ws.name for ws in WorkspaceManager.filter_by_type(workspaces, "apps")] == [
            "web",
            "api",
        ]
        ordered = WorkspaceManager.sort_by_priority(workspaces, ["apps", "packages"])
        assert [ws.name for ws in ordered] == ["api", "web", "ui"]

    def test_stats(self) -> None:
        provider = TurborepoProvider()
        workspaces = [
            _workspace("apps/web", provider=provider),
            _workspace("apps/api", provider=provider),
            _workspace("packages/ui"),
        ]
        assert WorkspaceManager.get_stats(workspaces) == {
            "total": 3,
            "by_type": {"apps": 2, "packages": 1},
            "by_provider": {"turborepo": 2, "unknown": 1},
        }

    def test_display_name(self) -> None:
        web = _workspace("apps/web")
        assert WorkspaceManager.get_display_name(None) == "No workspace"
        assert WorkspaceManager.get_display_name(web) == "web (apps)"
        assert WorkspaceManager.get_display_name(web, "/repo") == "apps/web (apps)"
        assert WorkspaceManager.get_display_name(web, "/elsewhere") == "web (apps)"

    def test_validate_workspace(self) -> None:
        assert WorkspaceManager.validate_workspace(_workspace("apps/web")) == (True, None)
        assert WorkspaceManager.validate_workspace({"path": "/x"})[0] is False
        relative = Workspace(
            path=Path("apps/web"), name="web", relative_path="apps/web", type="apps"
        )
        assert WorkspaceManager.validate_workspace(relative) == (
            False,
            "Workspace path must be an absolute path",
        )
        untyped = Workspace(path=Path("/repo/x"), name="x", relative_path="x", type="")
        assert WorkspaceManager.validate_workspace(untyped)[1] == (
            "Workspace type must be a non-empty string"
        )
