"""Public query surface of the monorepo engine.

``Monorepo`` owns one ``ServiceContainer`` and exposes the operations a
host integration needs: detect the root of a file's monorepo, list its
workspaces, pick the workspace a file belongs to and resolve the ordered
environment files for it.

While the engine is disabled every query returns an empty result.

Example:
    monorepo = Monorepo({"enabled": True})
    resolution = monorepo.resolve_for_file("/repo/apps/web/src/index.ts")
    for env_file in resolution.env_files:
        print(env_file)
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from envscope.config import (
    CustomProviderSpec,
    MonorepoConfig,
    merge_and_validate,
    validate_config,
)
from envscope.core.errors import ConfigurationError
from envscope.core.models import (
    NOT_FOUND,
    DetectionResult,
    FileResolution,
    ResolveOptions,
    Workspace,
)
from envscope.core.path_utils import normalize_path
from envscope.factory import ServiceContainer, ServiceFactory
from envscope.ports.providers import MonorepoProvider
from envscope.providers.factory import create_simple_provider
from envscope.services.auto_switch import Notifier
from envscope.services.detection import DEFAULT_NEGATIVE_TTL_MS
from envscope.services.plugin_system import Plugin
from envscope.services.workspace_manager import ChangeListener, WorkspaceManager

logger = logging.getLogger(__name__)


def _import_provider(target: str, config: Mapping[str, Any]) -> MonorepoProvider:
    """Load a provider from ``"pkg.mod:attr"`` or ``"pkg.mod"``.

    ``attr`` may be a provider instance or a callable building one from
    ``config``. A bare module must expose ``create_provider(config)``.

    Raises:
        ConfigurationError: If the module or attribute cannot be loaded.
    """
    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
        obj = getattr(module, attr or "create_provider")
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Failed to load custom provider: {target}", [str(e)]) from e

    if callable(getattr(obj, "detect", None)):
        return obj
    if callable(obj):
        return obj(dict(config))
    raise ConfigurationError(f"Custom provider {target} is neither a provider nor a factory")


class Monorepo:
    """Monorepo detection and environment file resolution."""

    def __init__(
        self,
        config: MonorepoConfig | Mapping[str, Any] | bool | None = None,
        *,
        clock: Callable[[], float] | None = None,
        negative_ttl: float = DEFAULT_NEGATIVE_TTL_MS,
        notifier: Notifier | None = None,
    ) -> None:
        """Create the engine, running ``setup`` when ``config`` is given.

        Args:
            config: Configuration, or a bool to enable with defaults.
            clock: Millisecond clock override for testing.
            negative_ttl: TTL in milliseconds for "no monorepo" results.
            notifier: Callback for workspace switch notifications.
        """
        self._clock = clock
        self._negative_ttl = negative_ttl
        self._notifier = notifier
        self._config: MonorepoConfig | None = None
        self._services: ServiceContainer | None = None
        self._enabled = False
        self._initialized = False
        if config is not None:
            self.setup(config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup(self, config: MonorepoConfig | Mapping[str, Any] | bool | None = None) -> None:
        """Validate ``config`` and build the services.

        Args:
            config: Configuration mapping or model. ``True`` enables the
                engine with defaults; ``False`` disables it.

        Raises:
            ConfigurationError: If the configuration is invalid or a custom
                provider cannot be loaded.
        """
        if self._services is not None:
            self.shutdown()

        if config is False:
            self._enabled = False
            return
        if config is True:
            config = {"enabled": True}

        if isinstance(config, MonorepoConfig):
            result = validate_config(config)
        else:
            result = merge_and_validate(MonorepoConfig().model_dump(), config or {})
        if not result.ok or result.config is None:
            raise ConfigurationError("Invalid monorepo configuration", errors=result.errors)

        self._config = result.config
        self._enabled = result.config.enabled
        if not self._enabled:
            return

        services = ServiceFactory(
            result.config,
            clock=self._clock,
            negative_ttl=self._negative_ttl,
            notifier=self._notifier,
        ).create_all(detect=self.detect_monorepo_root)
        self._services = services

        services.detection.load_builtin_providers(result.config.providers.builtin)
        self._load_custom_providers(result.config.providers.custom)

        if not services.detection.get_providers():
            logger.warning("No monorepo providers available; disabling monorepo support")
            self._enabled = False
            return

        if result.config.auto_switch:
            services.auto_switcher.enable()
        self._initialized = True
        logger.info(
            "Monorepo support enabled with providers: %s",
            ", ".join(p.name for p in services.detection.get_providers()),
        )

    def _load_custom_providers(self, specs: Iterable[CustomProviderSpec]) -> None:
        assert self._services is not None
        for spec in specs:
            if spec.module is not None:
                provider = _import_provider(spec.module, spec.config)
            elif spec.provider is not None:
                provider = spec.provider
            else:
                provider = create_simple_provider(spec.to_declaration())
            self._services.detection.register_provider(provider)

    def shutdown(self) -> None:
        """Stop auto-switching, drop listeners, state and caches, and disable."""
        services = self._services
        if services is not None:
            services.auto_switcher.disable()
            services.workspace_manager.clear_listeners()
            services.workspace_manager.clear_state()
            services.detection.clear_cache()
            services.bulk.clear_exists_cache()
        self._services = None
        self._enabled = False
        self._initialized = False

    def is_enabled(self) -> bool:
        return self._enabled

    def get_config(self) -> MonorepoConfig | None:
        return self._config

    @property
    def services(self) -> ServiceContainer | None:
        return self._services

    def _active(self) -> ServiceContainer | None:
        return self._services if self._enabled else None

    def configure(self, overrides: Mapping[str, Any]) -> None:
        """Apply configuration overrides to the running engine.

        Cache sizing and auto-switch settings take effect immediately;
        provider lists only on the next ``setup``.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        services = self._active()
        if services is None or self._config is None:
            return

        result = merge_and_validate(self._config.model_dump(), overrides)
        if not result.ok or result.config is None:
            raise ConfigurationError("Invalid monorepo configuration", errors=result.errors)
        self._config = result.config

        services.detection.configure(result.config.performance.cache.model_dump())
        services.auto_switcher.configure(
            enabled=result.config.auto_switch,
            notify_on_switch=result.config.notify_on_switch,
            throttle=result.config.performance.auto_switch_throttle,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def detect_monorepo_root(self, path: Path | str | None = None) -> DetectionResult:
        """Detect the monorepo containing ``path`` (default: current directory).

        Fires the ``before_detection`` and ``after_detection`` hooks.
        """
        services = self._active()
        if services is None:
            return NOT_FOUND
        services.plugins.call_hooks("before_detection", path)
        result = services.detection.detect_monorepo(path)
        services.plugins.call_hooks("after_detection", path, result)
        return result

    def get_workspaces(
        self,
        root_path: Path | str | None,
        provider: MonorepoProvider | None,
        detection_metadata: dict[str, Any] | None = None,
    ) -> list[Workspace]:
        services = self._active()
        if services is None or root_path is None or provider is None:
            return []
        return services.workspace_finder.find_workspaces(
            Path(root_path), provider, detection_metadata
        )

    def find_current_workspace(
        self, file_path: Path | str | None, workspaces: Iterable[Workspace]
    ) -> Workspace | None:
        if not self._enabled:
            return None
        return WorkspaceManager.find_workspace_for_file(file_path, workspaces)

    def set_current_workspace(self, workspace: Workspace | None) -> bool:
        services = self._active()
        if services is None:
            return False
        return services.workspace_manager.set_current(workspace)

    def get_current_workspace(self) -> Workspace | None:
        services = self._active()
        return services.workspace_manager.get_current() if services else None

    def resolve_env_files(
        self,
        workspace: Workspace | None,
        root_path: Path | str,
        provider: MonorepoProvider,
        patterns: Sequence[str] | None = None,
        opts: ResolveOptions | None = None,
    ) -> list[Path]:
        services = self._active()
        if services is None:
            return []
        return services.resolver.resolve_env_files(workspace, root_path, provider, patterns, opts)

    def resolve_all_workspace_files(
        self,
        workspaces: Iterable[Workspace],
        root_path: Path | str,
        provider: MonorepoProvider,
        patterns: Sequence[str] | None = None,
        opts: ResolveOptions | None = None,
    ) -> list[Path]:
        services = self._active()
        if services is None:
            return []
        return services.resolver.resolve_all_workspace_files(
            workspaces, root_path, provider, patterns, opts
        )

    def resolve_for_file(
        self,
        file_path: Path | str,
        patterns: Sequence[str] | None = None,
        opts: ResolveOptions | None = None,
    ) -> FileResolution:
        """Run the whole pipeline for one file.

        Returns:
            The detected root, its workspaces, the workspace holding the
            file and the environment files that apply to it. Outside a
            monorepo only ``file_path`` is set.
        """
        path = normalize_path(file_path)
        result = self.detect_monorepo_root(path)
        if not result.found:
            return FileResolution(file_path=path)

        assert result.root_path is not None and result.provider is not None
        metadata = result.detection_info.metadata if result.detection_info else None
        workspaces = self.get_workspaces(result.root_path, result.provider, metadata)
        workspace = self.find_current_workspace(path, workspaces)
        env_files = self.resolve_env_files(
            workspace, result.root_path, result.provider, patterns, opts
        )
        return FileResolution(
            file_path=path,
            root_path=result.root_path,
            provider=result.provider,
            workspaces=tuple(workspaces),
            workspace=workspace,
            env_files=tuple(env_files),
        )

    # ------------------------------------------------------------------
    # Providers and plugins
    # ------------------------------------------------------------------

    def register_provider(self, provider: MonorepoProvider) -> None:
        """Register a provider instance.

        Raises:
            ProviderContractError: If the provider lacks ``name`` or ``detect``.
        """
        services = self._active()
        if services is not None:
            services.detection.register_provider(provider)

    def get_providers(self) -> list[MonorepoProvider]:
        services = self._active()
        return services.detection.get_providers() if services else []

    def register_plugin(self, plugin: Plugin | Mapping[str, Any]) -> bool:
        """Register a plugin.

        Raises:
            PluginError: If the plugin declaration is invalid.
        """
        services = self._active()
        if services is None:
            return False
        return services.plugins.register_plugin(plugin)

    def unregister_plugin(self, name: str) -> bool:
        services = self._active()
        return services.plugins.unregister_plugin(name) if services else False

    def get_plugins(self) -> dict[str, Plugin]:
        services = self._active()
        return services.plugins.get_plugins() if services else {}

    def load_plugins_from_directory(self, plugin_dir: Path | str) -> list[str]:
        services = self._active()
        return services.plugins.load_plugins_from_directory(plugin_dir) if services else []

    # ------------------------------------------------------------------
    # Workspace switching
    # ------------------------------------------------------------------

    def add_workspace_change_listener(self, listener: ChangeListener) -> None:
        services = self._active()
        if services is not None:
            services.workspace_manager.add_change_listener(listener)

    def remove_workspace_change_listener(self, listener: ChangeListener) -> bool:
        services = self._active()
        if services is None:
            return False
        return services.workspace_manager.remove_change_listener(listener)

    def enable_auto_switch(self) -> None:
        services = self._active()
        if services is not None:
            services.auto_switcher.enable()

    def disable_auto_switch(self) -> None:
        services = self._active()
        if services is not None:
            services.auto_switcher.disable()

    def is_auto_switch_enabled(self) -> bool:
        services = self._active()
        return services.auto_switcher.is_enabled() if services else False

    def handle_file_change(self, file_path: Path | str | None) -> bool:
        services = self._active()
        return services.auto_switcher.handle_file_change(file_path) if services else False

    def process_pending(self, force: bool = False) -> bool:
        services = self._active()
        return services.auto_switcher.process_pending(force) if services else False

    def manual_switch(self, file_path: Path | str | None = None) -> bool:
        """Switch to the workspace of ``file_path`` (default: current directory)."""
        services = self._active()
        if services is None:
            return False
        return services.auto_switcher.manual_switch(file_path or Path.cwd())

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        services = self._active()
        if services is not None:
            services.detection.clear_cache()
            services.bulk.clear_exists_cache()

    def get_stats(self) -> dict[str, Any]:
        """Statistics for every component."""
        services = self._active()
        if services is None or self._config is None:
            return {"enabled": False, "initialized": False}

        stats: dict[str, Any] = {
            "enabled": self._enabled,
            "initialized": self._initialized,
            "config": self._config.model_dump(exclude={"providers": {"custom"}}),
            "detection": services.detection.get_stats(),
            "auto_switch": services.auto_switcher.get_stats(),
            "plugins": services.plugins.get_stats(),
        }
        current = services.workspace_manager.get_current()
        if current is not None:
            stats["current_workspace"] = {
                "name": current.name,
                "type": current.type,
                "path": str(current.path),
            }
        return stats
