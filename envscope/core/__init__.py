"""Core components for envscope."""

from envscope.core.cache import CacheStats, DetectionCache
from envscope.core.errors import (
    ConfigurationError,
    EnvscopeError,
    PluginError,
    ProviderContractError,
)
from envscope.core.models import (
    NOT_FOUND,
    DetectionConfig,
    DetectionInfo,
    DetectionResult,
    EnvResolutionConfig,
    EnvStrategy,
    FileResolution,
    ProviderConfig,
    ResolveOptions,
    Workspace,
    WorkspaceConfig,
    WorkspaceMetadata,
)

__all__ = [
    # Cache
    "CacheStats",
    "DetectionCache",
    # Errors
    "ConfigurationError",
    "EnvscopeError",
    "PluginError",
    "ProviderContractError",
    # Models
    "NOT_FOUND",
    "DetectionConfig",
    "DetectionInfo",
    "DetectionResult",
    "EnvResolutionConfig",
    "EnvStrategy",
    "FileResolution",
    "ProviderConfig",
    "ResolveOptions",
    "Workspace",
    "WorkspaceConfig",
    "WorkspaceMetadata",
]
