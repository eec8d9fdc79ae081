"""Monorepo providers."""

from envscope.providers.base import BaseProvider
from envscope.providers.cargo_workspaces import CargoWorkspacesProvider
from envscope.providers.factory import (
    DeclarativeProvider,
    DetectionStrategy,
    ProviderValidationResult,
    create_custom_provider,
    create_from_template,
    create_json_provider,
    create_simple_provider,
    get_available_templates,
    validate_provider_config,
)
from envscope.providers.lerna import LernaProvider
from envscope.providers.nx import NxProvider
from envscope.providers.turborepo import TurborepoProvider
from envscope.providers.yarn_workspaces import YarnWorkspacesProvider

# Built-in providers by name, in detection priority order.
BUILTIN_PROVIDERS: dict[str, type[BaseProvider]] = {
    "turborepo": TurborepoProvider,
    "nx": NxProvider,
    "lerna": LernaProvider,
    "yarn_workspaces": YarnWorkspacesProvider,
    "cargo_workspaces": CargoWorkspacesProvider,
}

__all__ = [
    "BUILTIN_PROVIDERS",
    "BaseProvider",
    "CargoWorkspacesProvider",
    "DeclarativeProvider",
    "DetectionStrategy",
    "LernaProvider",
    "NxProvider",
    "ProviderValidationResult",
    "TurborepoProvider",
    "YarnWorkspacesProvider",
    "create_custom_provider",
    "create_from_template",
    "create_json_provider",
    "create_simple_provider",
    "get_available_templates",
    "validate_provider_config",
]
