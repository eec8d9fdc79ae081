"""Shared provider implementation.

``BaseProvider`` carries a validated ``ProviderConfig`` and implements every
query method of the ``MonorepoProvider`` protocol from it. Concrete
providers supply ``default_config()`` and ``detect()`` and adjust the class
attributes below; user overrides are deep-merged over the defaults.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

from pydantic import ValidationError

from envscope.core.errors import ConfigurationError, format_validation_errors
from envscope.core.models import EnvResolutionConfig, ProviderConfig
from envscope.core.utils import (
    deep_merge,
    is_directory,
    is_readable_file,
    merge_unique,
    read_json_file,
    read_toml_file,
)
from envscope.ports.providers import DetectOutcome

logger = logging.getLogger(__name__)

NOT_DETECTED: DetectOutcome = (False, 0, None)


class BaseProvider(ABC):
    """Base class for config-driven providers.

    Class attributes:
        EXTRA_PATTERNS: Workspace patterns always merged after the
            configured ones.
        REQUIRED_MARKERS: If set, ``detection.file_markers`` must contain at
            least one of these.
        FIXED_NAME: If set, the configured name must equal it.
        PACKAGE_MANAGERS: Workspace marker files, used unless
            ``workspace.package_managers`` is configured. Defaults to the
            detection markers when empty.
        INFO: Descriptive information returned by ``get_metadata()``.
    """

    EXTRA_PATTERNS: ClassVar[tuple[str, ...]] = ()
    REQUIRED_MARKERS: ClassVar[tuple[str, ...]] = ()
    FIXED_NAME: ClassVar[str | None] = None
    PACKAGE_MANAGERS: ClassVar[tuple[str, ...]] = ()
    INFO: ClassVar[dict[str, Any]] = {}

    def __init__(self, config: ProviderConfig | Mapping[str, Any] | None = None) -> None:
        """Build a provider from its defaults and optional overrides.

        Args:
            config: Overrides deep-merged over ``default_config()``.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        if isinstance(config, ProviderConfig):
            config = config.model_dump()
        merged = deep_merge(self.default_config(), dict(config or {}))
        label = merged.get("name") or type(self).__name__

        try:
            self.config = ProviderConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {label} provider configuration",
                errors=format_validation_errors(e),
            ) from e

        errors = self.validate_config(self.config)
        if errors:
            raise ConfigurationError(f"Invalid {label} provider configuration", errors=errors)

        self.name: str = self.config.name
        self.priority: int = self.config.priority

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        """Default configuration as a plain mapping."""
        return {}

    @classmethod
    def validate_config(cls, config: ProviderConfig) -> list[str]:
        """Check provider-specific constraints the pydantic model cannot express.

        Returns:
            A list of problems; empty if the configuration is acceptable.
        """
        errors = []
        if cls.FIXED_NAME and config.name != cls.FIXED_NAME:
            errors.append(f"Provider name must be '{cls.FIXED_NAME}'")
        markers = config.detection.file_markers
        if cls.REQUIRED_MARKERS and not any(m in markers for m in cls.REQUIRED_MARKERS):
            required = "' or '".join(cls.REQUIRED_MARKERS)
            errors.append(f"detection.file_markers must include '{required}'")
        return errors

    @abstractmethod
    def detect(self, path: Path) -> DetectOutcome:
        """Check whether ``path`` is a root of this provider's kind."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_workspace_patterns(self) -> list[str]:
        return merge_unique(self.config.workspace.patterns, self.EXTRA_PATTERNS)

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Workspace patterns refined with detection metadata.

        The base implementation ignores the metadata.
        """
        return self.get_workspace_patterns()

    def get_workspace_priority(self) -> list[str]:
        return list(self.config.workspace.priority)

    def get_env_resolution(self) -> EnvResolutionConfig:
        return self.config.env_resolution.model_copy(deep=True)

    def get_package_managers(self) -> list[str]:
        if self.config.workspace.package_managers:
            return list(self.config.workspace.package_managers)
        if self.PACKAGE_MANAGERS:
            return list(self.PACKAGE_MANAGERS)
        return list(self.config.detection.file_markers)

    def get_cache_duration(self) -> int:
        return self.config.detection.cache_duration

    def get_max_depth(self) -> int:
        return self.config.detection.max_depth

    def get_quick_markers(self) -> list[str]:
        """Marker files whose absence rules this provider out cheaply."""
        return list(self.config.detection.file_markers)

    def get_cache_key(self, path: Path | str, suffix: str | None = None) -> str:
        key = f"provider:{self.name}:{path}"
        if suffix:
            key = f"{key}:{suffix}"
        return key

    def get_metadata(self) -> dict[str, Any]:
        """Descriptive information about the tool this provider recognizes."""
        return {"name": self.name, **self.INFO}

    # ------------------------------------------------------------------
    # Filesystem helpers
    # ------------------------------------------------------------------

    @staticmethod
    def file_exists(path: Path | str) -> bool:
        return is_readable_file(path)

    @staticmethod
    def dir_exists(path: Path | str) -> bool:
        return is_directory(path)

    @staticmethod
    def read_json_file(path: Path | str) -> Any | None:
        return read_json_file(path)

    @staticmethod
    def read_toml_file(path: Path | str) -> dict[str, Any] | None:
        return read_toml_file(path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority})"
