"""Service factory for dependency injection and initialization.

This module creates and wires every service the ``Monorepo`` facade uses.
One factory call produces one independent set of services sharing a
single cache, so tests can build as many isolated instances as they need.

Usage:
    from envscope.factory import ServiceFactory

    factory = ServiceFactory(config)
    services = factory.create_all()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from envscope.config import MonorepoConfig
from envscope.core.cache import DetectionCache
from envscope.core.models import DetectionResult
from envscope.services.auto_switch import AutoSwitcher, Notifier, SwitchThrottle
from envscope.services.bulk_resolver import BulkResolver
from envscope.services.detection import DEFAULT_NEGATIVE_TTL_MS, DetectionRegistry
from envscope.services.plugin_system import PluginSystem
from envscope.services.resolver import EnvironmentResolver
from envscope.services.workspace_finder import WorkspaceFinder
from envscope.services.workspace_manager import WorkspaceManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all initialized services.

    Attributes:
        cache: Cache shared by every layer.
        bulk: Batched glob and existence checks.
        detection: Provider registry and root detection.
        workspace_finder: Workspace discovery.
        resolver: Environment file resolution.
        plugins: Plugin and hook registry.
        workspace_manager: Current workspace state.
        auto_switcher: Follows the edited file across workspaces.
    """

    cache: DetectionCache
    bulk: BulkResolver
    detection: DetectionRegistry
    workspace_finder: WorkspaceFinder
    resolver: EnvironmentResolver
    plugins: PluginSystem
    workspace_manager: WorkspaceManager
    auto_switcher: AutoSwitcher


class ServiceFactory:
    """Factory for creating and wiring all services.

    Example:
        factory = ServiceFactory(MonorepoConfig(enabled=True))
        services = factory.create_all()
        services.detection.load_builtin_providers()
    """

    def __init__(
        self,
        config: MonorepoConfig | None = None,
        clock: Callable[[], float] | None = None,
        negative_ttl: float = DEFAULT_NEGATIVE_TTL_MS,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            config: Engine configuration. Defaults to ``MonorepoConfig()``.
            clock: Millisecond clock override for testing.
            negative_ttl: TTL in milliseconds for "no monorepo" results.
            notifier: Callback for workspace switch notifications.
        """
        self._config = config or MonorepoConfig()
        self._clock = clock
        self._negative_ttl = negative_ttl
        self._notifier = notifier

    def create_cache(self) -> DetectionCache:
        """Create the shared cache.

        Returns:
            DetectionCache sized from ``performance.cache``.
        """
        settings = self._config.performance.cache
        return DetectionCache(
            max_entries=settings.max_entries,
            default_ttl=settings.default_ttl,
            cleanup_interval=settings.cleanup_interval,
            clock=self._clock,
        )

    def create_auto_switcher(
        self,
        detect: Callable[[Path | str], DetectionResult],
        finder: WorkspaceFinder,
        manager: WorkspaceManager,
    ) -> AutoSwitcher:
        """Create the auto-switcher.

        Args:
            detect: Root detection function.
            finder: Workspace finder.
            manager: Workspace manager.

        Returns:
            AutoSwitcher, disabled until the facade enables it.
        """
        throttle = SwitchThrottle(
            config=self._config.performance.auto_switch_throttle,
            clock=self._clock,
        )
        return AutoSwitcher(
            detect,
            finder,
            manager,
            throttle=throttle,
            notify_on_switch=self._config.notify_on_switch,
            notifier=self._notifier,
            clock=self._clock,
        )

    def create_all(
        self, detect: Callable[[Path | str], DetectionResult] | None = None
    ) -> ServiceContainer:
        """Create all services with proper dependency wiring.

        Args:
            detect: Detection function for the auto-switcher. Defaults to
                the registry's ``detect_monorepo``.

        Returns:
            ServiceContainer with all services initialized.
        """
        cache = self.create_cache()
        bulk = BulkResolver(cache, clock=self._clock)
        detection = DetectionRegistry(cache, negative_ttl=self._negative_ttl)
        finder = WorkspaceFinder(cache, bulk)
        resolver = EnvironmentResolver(cache, bulk)
        plugins = PluginSystem(detection)
        manager = WorkspaceManager(plugins)
        auto_switcher = self.create_auto_switcher(
            detect or detection.detect_monorepo, finder, manager
        )

        logger.debug(
            "Services created (max_entries=%d, default_ttl=%dms)",
            cache.max_entries,
            cache.default_ttl,
        )
        return ServiceContainer(
            cache=cache,
            bulk=bulk,
            detection=detection,
            workspace_finder=finder,
            resolver=resolver,
            plugins=plugins,
            workspace_manager=manager,
            auto_switcher=auto_switcher,
        )
