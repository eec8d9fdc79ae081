"""Service layer for envscope."""

from envscope.services.auto_switch import AutoSwitcher, SwitchThrottle
from envscope.services.bulk_resolver import BulkResolver, hoist_preferred
from envscope.services.detection import DetectionRegistry, check_provider_contract
from envscope.services.plugin_system import HOOK_NAMES, Plugin, PluginSystem
from envscope.services.resolver import (
    DEFAULT_ENV_PATTERNS,
    EnvironmentResolver,
    get_env_resolution,
    search_order,
)
from envscope.services.workspace_finder import WorkspaceFinder
from envscope.services.workspace_manager import WorkspaceManager

__all__ = [
    # Auto-switch
    "AutoSwitcher",
    "SwitchThrottle",
    # Detection
    "DetectionRegistry",
    "check_provider_contract",
    # Plugins
    "HOOK_NAMES",
    "Plugin",
    "PluginSystem",
    # Resolution
    "BulkResolver",
    "DEFAULT_ENV_PATTERNS",
    "EnvironmentResolver",
    "get_env_resolution",
    "hoist_preferred",
    "search_order",
    # Workspaces
    "WorkspaceFinder",
    "WorkspaceManager",
]
