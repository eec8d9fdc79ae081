"""Configuration system for envscope.

Two layers:

- ``MonorepoConfig``: the validated schema of the monorepo engine
  (enabled flags, providers to load, cache and auto-switch tuning).
- ``Settings``: process settings read from ``ENVSCOPE_*`` environment
  variables, holding the log setup and a ``MonorepoConfig``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings

from envscope.core.errors import ConfigurationError, format_validation_errors
from envscope.core.utils import deep_merge
from envscope.providers import BUILTIN_PROVIDERS


class CustomProviderSpec(BaseModel):
    """One entry of ``providers.custom``.

    Exactly one of ``module``, ``provider`` or ``name`` selects the source:

    - module: import path ``"pkg.mod:attr"``, or ``"pkg.mod"`` exposing
      ``create_provider(config)``
    - provider: a ready provider instance
    - name: a declarative file-marker provider built from the other fields
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    module: str | None = None
    provider: Any = None
    name: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    priority: int | None = Field(default=None, ge=0)
    detection: dict[str, Any] | None = None
    workspace_patterns: list[str] | None = None
    workspace_priority: list[str] | None = None
    package_managers: list[str] | None = None
    env_resolution: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> CustomProviderSpec:
        sources = [s for s in ("module", "provider", "name") if getattr(self, s) is not None]
        if len(sources) != 1:
            raise ValueError("exactly one of 'module', 'provider' or 'name' is required")
        return self

    def to_declaration(self) -> dict[str, Any]:
        """Provider declaration for a ``name`` entry.

        Without explicit settings the provider looks for ``<name>.json`` at
        the root and treats directories holding a ``package.json`` as
        workspaces.
        """
        declaration: dict[str, Any] = {"name": self.name}
        if self.priority is not None:
            declaration["priority"] = self.priority
        detection = dict(self.detection or {})
        detection.setdefault("file_markers", [f"{self.name}.json"])
        declaration["detection"] = detection
        workspace: dict[str, Any] = {
            "package_managers": list(self.package_managers or ["package.json"])
        }
        if self.workspace_patterns is not None:
            workspace["patterns"] = list(self.workspace_patterns)
        if self.workspace_priority is not None:
            workspace["priority"] = list(self.workspace_priority)
        declaration["workspace"] = workspace
        if self.env_resolution is not None:
            declaration["env_resolution"] = dict(self.env_resolution)
        return deep_merge(declaration, dict(self.config))


class ProvidersConfig(BaseModel):
    """Providers to load at setup."""

    model_config = ConfigDict(extra="forbid")

    builtin: list[str] = Field(
        default_factory=lambda: list(BUILTIN_PROVIDERS),
        description="Built-in provider names",
    )
    custom: list[CustomProviderSpec] = Field(default_factory=list)

    @field_validator("builtin")
    @classmethod
    def _known_builtins(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in BUILTIN_PROVIDERS]
        if unknown:
            raise ValueError(
                f"unknown built-in provider(s): {', '.join(unknown)} "
                f"(available: {', '.join(BUILTIN_PROVIDERS)})"
            )
        return value


class CacheConfig(BaseModel):
    """Cache sizing. Durations are milliseconds."""

    model_config = ConfigDict(extra="forbid")

    max_entries: int = Field(default=1000, ge=10, le=10_000)
    default_ttl: int = Field(default=300_000, ge=1000, le=3_600_000)
    cleanup_interval: int = Field(default=60_000, ge=1000, le=300_000)


class AutoSwitchThrottleConfig(BaseModel):
    """Throttling of automatic workspace switching. Durations are milliseconds."""

    model_config = ConfigDict(extra="forbid")

    min_interval: int = Field(default=100, ge=0, le=1000)
    debounce_delay: int = Field(default=250, ge=0, le=2000)
    same_file_skip: bool = True
    workspace_boundary_only: bool = True
    max_checks_per_second: int = Field(default=10, ge=1, le=100)


class PerformanceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cache: CacheConfig = Field(default_factory=CacheConfig)
    auto_switch_throttle: AutoSwitchThrottleConfig = Field(
        default_factory=AutoSwitchThrottleConfig
    )


class MonorepoConfig(BaseModel):
    """Configuration of the monorepo engine."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    auto_switch: bool = True
    notify_on_switch: bool = False
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)


@dataclass
class ConfigValidationResult:
    """Outcome of ``validate_config``."""

    ok: bool
    errors: list[str] = field(default_factory=list)
    config: MonorepoConfig | None = None


def validate_config(data: MonorepoConfig | Mapping[str, Any] | None) -> ConfigValidationResult:
    """Validate a configuration mapping. Never raises.

    Args:
        data: Raw configuration; None is treated as empty.

    Returns:
        The validation result; ``errors`` hold ``"dotted.path: message"`` strings.
    """
    if isinstance(data, MonorepoConfig):
        return ConfigValidationResult(ok=True, config=data)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        return ConfigValidationResult(
            ok=False, errors=[f"<root>: expected a mapping, got {type(data).__name__}"]
        )
    try:
        config = MonorepoConfig.model_validate(dict(data))
    except ValidationError as e:
        return ConfigValidationResult(ok=False, errors=format_validation_errors(e))
    return ConfigValidationResult(ok=True, config=config)


def apply_defaults(
    data: ConfigValidationResult | MonorepoConfig | Mapping[str, Any] | None,
) -> dict[str, Any]:
    """The complete configuration tree with every default filled in.

    Raises:
        ConfigurationError: If ``data`` is invalid.
    """
    result = data if isinstance(data, ConfigValidationResult) else validate_config(data)
    if not result.ok or result.config is None:
        raise ConfigurationError("Invalid monorepo configuration", errors=result.errors)
    return result.config.model_dump()


def merge_and_validate(
    base: Mapping[str, Any] | None, override: Mapping[str, Any] | None
) -> ConfigValidationResult:
    """Deep-merge ``override`` over ``base`` and validate the result."""
    merged = deep_merge(dict(base or {}), dict(override or {}))
    return validate_config(merged)


def load_config(data: MonorepoConfig | Mapping[str, Any] | None) -> MonorepoConfig:
    """Validate ``data`` and return the typed configuration.

    Raises:
        ConfigurationError: If ``data`` is invalid.
    """
    result = validate_config(data)
    if not result.ok or result.config is None:
        raise ConfigurationError("Invalid monorepo configuration", errors=result.errors)
    return result.config


class Settings(BaseSettings):
    """envscope process configuration."""

    # Logging
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit log records as JSON lines",
    )

    # Engine
    monorepo: MonorepoConfig = Field(
        default_factory=MonorepoConfig,
        description="Monorepo detection and resolution settings",
    )

    model_config = {
        "env_prefix": "ENVSCOPE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Returns:
        The Settings instance.

    Example:
        from envscope.config import get_settings
        settings = get_settings()
        print(settings.monorepo.performance.cache.max_entries)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing).

    Args:
        new_settings: The new Settings instance to use.
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None
