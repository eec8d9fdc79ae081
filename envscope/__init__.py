"""envscope - Monorepo detection and environment file resolution."""

__version__ = "0.1.0"

# Re-export core components for convenience
from envscope.config import MonorepoConfig, Settings, get_settings, validate_config
from envscope.core import (
    NOT_FOUND,
    # Cache
    CacheStats,
    # Errors
    ConfigurationError,
    DetectionCache,
    # Models
    DetectionResult,
    EnvResolutionConfig,
    EnvscopeError,
    EnvStrategy,
    FileResolution,
    PluginError,
    ProviderConfig,
    ProviderContractError,
    ResolveOptions,
    Workspace,
)
from envscope.monorepo import Monorepo
from envscope.ports import MonorepoProvider
from envscope.providers import BUILTIN_PROVIDERS, BaseProvider

__all__ = [
    # Version info
    "__version__",
    # Facade
    "Monorepo",
    # Configuration
    "MonorepoConfig",
    "Settings",
    "get_settings",
    "validate_config",
    # Errors
    "EnvscopeError",
    "ConfigurationError",
    "ProviderContractError",
    "PluginError",
    # Models
    "NOT_FOUND",
    "DetectionResult",
    "EnvResolutionConfig",
    "EnvStrategy",
    "FileResolution",
    "ProviderConfig",
    "ResolveOptions",
    "Workspace",
    # Cache
    "CacheStats",
    "DetectionCache",
    # Providers
    "BUILTIN_PROVIDERS",
    "BaseProvider",
    "MonorepoProvider",
]
