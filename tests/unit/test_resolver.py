"""Tests for environment file resolution."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from envscope.core.models import (
    DEFAULT_ENV_RESOLUTION,
    EnvResolutionConfig,
    EnvStrategy,
    ResolveOptions,
    Workspace,
)
from envscope.factory import ServiceContainer
from envscope.providers import TurborepoProvider
from envscope.services.resolver import (
    EnvironmentResolver,
    get_env_resolution,
    search_order,
)
from tests.conftest import TreeBuilder

ROOT = Path("/repo")
WS = Path("/repo/apps/web")


def _turbo(strategy: str, **extra: Any) -> TurborepoProvider:
    return TurborepoProvider({"env_resolution": {"strategy": strategy, **extra}})


def _web(services: ServiceContainer, root: Path, provider: Any) -> Workspace:
    workspaces = services.workspace_finder.find_workspaces(root, provider)
    web = services.workspace_finder.find_by_name(workspaces, "web")
    assert web is not None
    return web


@pytest.fixture
def resolver(services: ServiceContainer) -> EnvironmentResolver:
    return services.resolver


@pytest.mark.unit
class TestSearchOrder:
    """Tests for the directory order of each strategy."""

    @pytest.mark.parametrize(
        ("resolution", "expected"),
        [
            (EnvResolutionConfig(strategy=EnvStrategy.WORKSPACE_ONLY), [WS]),
            (EnvResolutionConfig(strategy=EnvStrategy.WORKSPACE_FIRST), [WS, ROOT]),
            (
                EnvResolutionConfig(strategy=EnvStrategy.WORKSPACE_FIRST, inheritance=False),
                [WS],
            ),
            (EnvResolutionConfig(strategy=EnvStrategy.ROOT_FIRST), [ROOT, WS]),
            (EnvResolutionConfig(strategy=EnvStrategy.MERGE), [WS, ROOT]),
            (
                EnvResolutionConfig(
                    strategy=EnvStrategy.MERGE, override_order=["root", "workspace"]
                ),
                [ROOT, WS],
            ),
        ],
    )
    def test_with_workspace(self, resolution: EnvResolutionConfig, expected: list[Path]) -> None:
        assert search_order(resolution, WS, ROOT) == expected

    @pytest.mark.parametrize(
        ("strategy", "expected"),
        [
            (EnvStrategy.WORKSPACE_ONLY, []),
            (EnvStrategy.WORKSPACE_FIRST, [ROOT]),
            (EnvStrategy.ROOT_FIRST, [ROOT]),
            (EnvStrategy.MERGE, [ROOT]),
        ],
    )
    def test_without_workspace(self, strategy: EnvStrategy, expected: list[Path]) -> None:
        assert search_order(EnvResolutionConfig(strategy=strategy), None, ROOT) == expected

    def test_merge_ignores_unknown_tokens(self) -> None:
        resolution = EnvResolutionConfig(
            strategy=EnvStrategy.MERGE, override_order=["shared", "root"]
        )
        assert search_order(resolution, WS, ROOT) == [ROOT]


@pytest.mark.unit
class TestGetEnvResolution:
    """Tests for get_env_resolution."""

    def test_provider_without_method_uses_default(self) -> None:
        class Bare:
            name = "bare"
            priority = 1

        assert get_env_resolution(Bare()) is DEFAULT_ENV_RESOLUTION  # type: ignore[arg-type]

    def test_mapping_is_validated(self) -> None:
        class MappingProvider:
            name = "m"
            priority = 1

            def get_env_resolution(self) -> dict[str, Any]:
                return {"strategy": "root_first"}

        resolution = get_env_resolution(MappingProvider())  # type: ignore[arg-type]
        assert resolution.strategy is EnvStrategy.ROOT_FIRST

    def test_builtin_respects_configuration(self) -> None:
        resolution = get_env_resolution(_turbo("merge", override_order=["root"]))
        assert resolution.strategy is EnvStrategy.MERGE
        assert resolution.override_order == ["root"]


@pytest.mark.unit
class TestResolveEnvFiles:
    """Tests for EnvironmentResolver.resolve_env_files."""

    def test_workspace_first(
        self, services: ServiceContainer, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(web, turbo_repo, provider)
        assert files == [turbo_repo / "apps/web/.env", turbo_repo / ".env"]

    def test_root_first(
        self, services: ServiceContainer, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        provider = _turbo("root_first")
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(web, turbo_repo, provider)
        assert files == [turbo_repo / ".env", turbo_repo / "apps/web/.env"]

    def test_workspace_only(
        self, services: ServiceContainer, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        provider = _turbo("workspace_only")
        web = _web(services, turbo_repo, provider)
        assert resolver.resolve_env_files(web, turbo_repo, provider) == [
            turbo_repo / "apps/web/.env"
        ]

    def test_no_workspace_uses_root(
        self, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        files = resolver.resolve_env_files(None, turbo_repo, TurborepoProvider())
        assert files == [turbo_repo / ".env"]

    def test_pattern_order_within_directory(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        make_tree(turbo_repo, {"apps/web/.env.local": "A=1\n"})
        provider = _turbo("workspace_only")
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(web, turbo_repo, provider, [".env.local", ".env"])
        assert [f.name for f in files] == [".env.local", ".env"]

    def test_default_patterns(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        make_tree(
            turbo_repo,
            {
                "apps/web/.envrc": "use nix\n",
                "apps/web/.env.production": "P=1\n",
                "apps/web/.env.local": "L=1\n",
                "apps/web/env.txt": "no\n",
            },
        )
        provider = _turbo("workspace_only")
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(web, turbo_repo, provider)
        assert [f.name for f in files] == [".env", ".envrc", ".env.local", ".env.production"]

    def test_preferred_environment_hoisted(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        make_tree(
            turbo_repo,
            {"apps/web/.env.local": "L=1\n", "apps/web/.env.production": "P=1\n"},
        )
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(
            web, turbo_repo, provider, opts=ResolveOptions(preferred_environment="production")
        )
        assert files == [
            turbo_repo / "apps/web/.env.production",
            turbo_repo / "apps/web/.env",
            turbo_repo / "apps/web/.env.local",
            turbo_repo / ".env",
        ]

    def test_sort_key_applied_last(
        self, services: ServiceContainer, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        opts = ResolveOptions(sort_key=lambda p: len(p.parts))
        files = resolver.resolve_env_files(web, turbo_repo, provider, opts=opts)
        assert files == [turbo_repo / ".env", turbo_repo / "apps/web/.env"]

    def test_merge_override_order(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        (turbo_repo / "apps/web/.env").unlink()
        make_tree(turbo_repo, {"apps/web/.env.local": "L=1\n"})
        provider = _turbo("merge", override_order=["workspace", "root"])
        web = _web(services, turbo_repo, provider)
        assert resolver.resolve_env_files(web, turbo_repo, provider) == [
            turbo_repo / "apps/web/.env.local",
            turbo_repo / ".env",
        ]

        root_wins = _turbo("merge", override_order=["root", "workspace"])
        assert resolver.resolve_env_files(web, turbo_repo, root_wins) == [
            turbo_repo / ".env",
            turbo_repo / "apps/web/.env.local",
        ]

    def test_overlapping_patterns_yield_each_file_once(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        make_tree(turbo_repo, {"apps/web/.env.local": "L=1\n"})
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        files = resolver.resolve_env_files(web, turbo_repo, provider, [".env", ".env*"])
        assert files == [
            turbo_repo / "apps/web/.env",
            turbo_repo / "apps/web/.env.local",
            turbo_repo / ".env",
        ]

    def test_explicit_empty_patterns(
        self, services: ServiceContainer, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        assert resolver.resolve_env_files(web, turbo_repo, provider, []) == []
        assert resolver.resolve_all_workspace_files([web], turbo_repo, provider, []) == []

    def test_missing_workspace_directory(
        self, resolver: EnvironmentResolver, turbo_repo: Path
    ) -> None:
        ghost = Workspace(
            path=turbo_repo / "apps" / "ghost",
            name="ghost",
            relative_path="apps/ghost",
            type="apps",
        )
        files = resolver.resolve_env_files(ghost, turbo_repo, TurborepoProvider())
        assert files == [turbo_repo / ".env"]

    def test_results_cached_until_cleared(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        provider = TurborepoProvider()
        web = _web(services, turbo_repo, provider)
        first = resolver.resolve_env_files(web, turbo_repo, provider)
        make_tree(turbo_repo, {"apps/web/.env.test": "T=1\n"})
        assert resolver.resolve_env_files(web, turbo_repo, provider) == first

        assert resolver.clear_cache(web, turbo_repo, provider) >= 2
        refreshed = resolver.resolve_env_files(web, turbo_repo, provider)
        assert turbo_repo / "apps/web/.env.test" in refreshed


@pytest.mark.unit
class TestResolveAllWorkspaceFiles:
    """Tests for resolve_all_workspace_files."""

    def test_concatenated_and_deduplicated(
        self,
        services: ServiceContainer,
        resolver: EnvironmentResolver,
        turbo_repo: Path,
        make_tree: TreeBuilder,
    ) -> None:
        make_tree(turbo_repo, {"apps/api/package.json": {}, "apps/api/.env": "API=1\n"})
        provider = TurborepoProvider()
        workspaces = services.workspace_finder.find_workspaces(turbo_repo, provider)

        files = resolver.resolve_all_workspace_files(workspaces, turbo_repo, provider)

        assert [ws.name for ws in workspaces] == ["api", "web"]
        assert files == [
            turbo_repo / "apps/api/.env",
            turbo_repo / ".env",
            turbo_repo / "apps/web/.env",
        ]

    def test_empty(self, resolver: EnvironmentResolver, turbo_repo: Path) -> None:
        assert resolver.resolve_all_workspace_files([], turbo_repo, TurborepoProvider()) == []
