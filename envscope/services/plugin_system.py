"""Plugin system.

A plugin bundles provider declarations and lifecycle hooks. Everything a
plugin registers is tagged with the plugin's name, so unregistering it
removes exactly its own providers and hooks.

Hook points:
    before_detection(path)
    after_detection(path, result)
    before_workspace_switch(new_workspace, previous_workspace)
    after_workspace_switch(new_workspace, previous_workspace)

Example:
    plugins = PluginSystem(registry)
    plugins.register_plugin({
        "name": "rush",
        "providers": [{
            "type": "simple",
            "name": "rush",
            "detection": {"file_markers": ["rush.json"]},
        }],
        "hooks": {"after_detection": lambda path, result: print(result.root_path)},
    })
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from envscope.core.errors import ConfigurationError, PluginError, ProviderContractError
from envscope.ports.providers import MonorepoProvider
from envscope.providers.factory import (
    create_custom_provider,
    create_from_template,
    create_json_provider,
    create_simple_provider,
)
from envscope.services.detection import DetectionRegistry, check_provider_contract

logger = logging.getLogger(__name__)

HOOK_NAMES: tuple[str, ...] = (
    "before_detection",
    "after_detection",
    "before_workspace_switch",
    "after_workspace_switch",
)

_PROVIDER_FACTORIES: dict[str, Callable[[Mapping[str, Any]], MonorepoProvider]] = {
    "simple": create_simple_provider,
    "json": create_json_provider,
    "custom": create_custom_provider,
}


@dataclass
class Plugin:
    """A registered plugin declaration."""

    name: str
    providers: list[Any] = field(default_factory=list)
    hooks: dict[str, Any] = field(default_factory=dict)
    init: Callable[[], Any] | None = None
    cleanup: Callable[[], Any] | None = None
    description: str = ""
    version: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Plugin:
        """Build and validate a plugin from a plain mapping.

        Raises:
            PluginError: If the declaration is malformed.
        """
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise PluginError("Plugin name is required")

        providers = data.get("providers") or []
        if not isinstance(providers, (list, tuple)):
            raise PluginError("providers must be a list", plugin_name=name)
        hooks = data.get("hooks") or {}
        if not isinstance(hooks, Mapping):
            raise PluginError("hooks must be a mapping of hook name to callable", plugin_name=name)
        for key in ("init", "cleanup"):
            if data.get(key) is not None and not callable(data[key]):
                raise PluginError(f"{key} must be callable", plugin_name=name)

        return cls(
            name=name,
            providers=list(providers),
            hooks=dict(hooks),
            init=data.get("init"),
            cleanup=data.get("cleanup"),
            description=str(data.get("description", "")),
            version=str(data.get("version", "")),
        )


@dataclass
class _Hook:
    func: Callable[..., Any]
    owner: str | None


class PluginSystem:
    """Registers plugins, their providers and their hooks."""

    def __init__(self, detection: DetectionRegistry) -> None:
        self._detection = detection
        self._plugins: dict[str, Plugin] = {}
        self._hooks: dict[str, list[_Hook]] = {name: [] for name in HOOK_NAMES}

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def register_plugin(self, plugin: Plugin | Mapping[str, Any]) -> bool:
        """Register a plugin with its providers and hooks, then run its ``init``.

        Providers are built before anything is registered, so a bad
        declaration leaves no partial state behind.

        Returns:
            False if a plugin with the same name was already registered.

        Raises:
            PluginError: If the declaration or one of its providers is invalid.
        """
        if not isinstance(plugin, Plugin):
            plugin = Plugin.from_mapping(plugin)

        if plugin.name in self._plugins:
            logger.warning("Plugin '%s' is already registered", plugin.name)
            return False

        for hook_name, func in plugin.hooks.items():
            funcs = func if isinstance(func, (list, tuple)) else [func]
            if not all(callable(f) for f in funcs):
                raise PluginError(f"hook '{hook_name}' must be callable", plugin_name=plugin.name)

        providers = [self._build_provider(decl, plugin.name) for decl in plugin.providers]
        for provider in providers:
            try:
                check_provider_contract(provider)
            except ProviderContractError as e:
                raise PluginError(str(e), plugin.name) from e

        self._plugins[plugin.name] = plugin
        for provider in providers:
            self._detection.register_provider(provider, owner=plugin.name)
        for hook_name, func in plugin.hooks.items():
            for f in func if isinstance(func, (list, tuple)) else [func]:
                self.register_hook(hook_name, f, owner=plugin.name)

        if plugin.init is not None:
            try:
                plugin.init()
            except Exception:
                logger.error("Plugin '%s' initialization failed", plugin.name, exc_info=True)

        logger.info(
            "Registered plugin '%s' (%d providers, %d hooks)",
            plugin.name,
            len(providers),
            len(plugin.hooks),
        )
        return True

    def _build_provider(self, declaration: Any, plugin_name: str) -> MonorepoProvider:
        if not isinstance(declaration, Mapping):
            if callable(getattr(declaration, "detect", None)):
                return declaration
            raise PluginError(f"invalid provider declaration: {declaration!r}", plugin_name)

        if declaration.get("instance") is not None:
            return declaration["instance"]

        provider_type = declaration.get("type")
        try:
            if provider_type == "template":
                overrides = {k: v for k, v in declaration.items() if k not in ("type", "template")}
                return create_from_template(str(declaration.get("template")), overrides)
            factory = _PROVIDER_FACTORIES.get(str(provider_type))
            if factory is None:
                raise PluginError(f"Unknown provider type: {provider_type!r}", plugin_name)
            return factory(declaration)
        except ConfigurationError as e:
            raise PluginError(str(e), plugin_name) from e

    def unregister_plugin(self, name: str) -> bool:
        """Remove a plugin's providers and hooks, then run its ``cleanup``.

        Returns:
            True if the plugin was registered.
        """
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False

        removed = self._detection.unregister_owner(name)
        for hooks in self._hooks.values():
            hooks[:] = [hook for hook in hooks if hook.owner != name]

        if plugin.cleanup is not None:
            try:
                plugin.cleanup()
            except Exception:
                logger.error("Plugin '%s' cleanup failed", name, exc_info=True)

        logger.info("Unregistered plugin '%s' (%d providers removed)", name, len(removed))
        return True

    def get_plugins(self) -> dict[str, Plugin]:
        return {name: replace(plugin) for name, plugin in self._plugins.items()}

    def get_plugin(self, name: str) -> Plugin | None:
        plugin = self._plugins.get(name)
        return replace(plugin) if plugin else None

    def is_plugin_registered(self, name: str) -> bool:
        return name in self._plugins

    @staticmethod
    def create_simple_plugin(name: str, providers: list[Any]) -> Plugin:
        """A plugin that only contributes providers."""
        return Plugin(
            name=name,
            providers=list(providers),
            description=f"Simple plugin with {len(providers)} provider(s)",
            version="1.0.0",
        )

    def load_plugins_from_directory(self, plugin_dir: Path | str) -> list[str]:
        """Import every ``*.py`` file in ``plugin_dir`` and register its plugin.

        A file declares its plugin as a module-level ``PLUGIN`` or through a
        ``get_plugin()`` function. Files that fail to import or register are
        logged and skipped.

        Returns:
            Names of the plugins registered.
        """
        directory = Path(plugin_dir)
        if not directory.is_dir():
            return []

        loaded = []
        for plugin_file in sorted(directory.glob("*.py")):
            try:
                declaration = self._import_plugin_file(plugin_file)
                if declaration is None:
                    logger.debug("No PLUGIN or get_plugin() in %s", plugin_file)
                    continue
                if not isinstance(declaration, Plugin):
                    declaration = Plugin.from_mapping(declaration)
                plugin = declaration
                if self.register_plugin(plugin):
                    loaded.append(plugin.name)
            except Exception:
                logger.error("Failed to load plugin from %s", plugin_file, exc_info=True)
        return loaded

    @staticmethod
    def _import_plugin_file(plugin_file: Path) -> Any:
        module_name = f"envscope_plugin_{plugin_file.stem}"
        spec = importlib.util.spec_from_file_location(module_name, plugin_file)
        if spec is None or spec.loader is None:
            raise PluginError(f"cannot import {plugin_file}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        if hasattr(module, "PLUGIN"):
            return module.PLUGIN
        get_plugin = getattr(module, "get_plugin", None)
        return get_plugin() if callable(get_plugin) else None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(
        self, hook_name: str, func: Callable[..., Any], owner: str | None = None
    ) -> None:
        """Add a callback for ``hook_name``.

        Raises:
            PluginError: If ``func`` is not callable.
        """
        if not callable(func):
            raise PluginError(f"hook '{hook_name}' must be callable", plugin_name=owner)
        if hook_name not in HOOK_NAMES:
            logger.debug("Registering callback for non-standard hook '%s'", hook_name)
        self._hooks.setdefault(hook_name, []).append(_Hook(func, owner))

    def call_hooks(self, hook_name: str, *args: Any, **kwargs: Any) -> int:
        """Invoke every callback for ``hook_name`` in registration order.

        Each callback runs in its own failure boundary; an exception is
        logged and the remaining callbacks still run.

        Returns:
            The number of callbacks that raised.
        """
        failures = 0
        for hook in list(self._hooks.get(hook_name, [])):
            try:
                hook.func(*args, **kwargs)
            except Exception:
                failures += 1
                owner = f" (plugin: {hook.owner})" if hook.owner else ""
                logger.error("Hook '%s' failed%s", hook_name, owner, exc_info=True)
        return failures

    def get_hooks(self, hook_name: str) -> list[Callable[..., Any]]:
        return [hook.func for hook in self._hooks.get(hook_name, [])]

    def get_stats(self) -> dict[str, Any]:
        owned = sum(
            1
            for provider in self._detection.get_providers()
            if self._detection.get_owner(provider.name) in self._plugins
        )
        return {
            "plugins": len(self._plugins),
            "providers": owned,
            "hooks": sum(len(hooks) for hooks in self._hooks.values()),
            "hook_types": list(self._hooks),
        }

    def clear_all(self) -> None:
        """Unregister every plugin and drop every hook."""
        for name in list(self._plugins):
            self.unregister_plugin(name)
        self._hooks = {name: [] for name in HOOK_NAMES}
