"""Declarative provider construction.

Third parties describe a provider with a mapping instead of writing a
class. A single ``DeclarativeProvider`` implements all three detection
strategies; the callables a declaration carries are passed in at
construction.

Example:
    provider = create_simple_provider({
        "name": "rush",
        "priority": 10,
        "detection": {"file_markers": ["rush.json"]},
        "workspace": {"patterns": ["apps/*", "libraries/*"]},
    })
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from envscope.core.errors import ConfigurationError, format_validation_errors
from envscope.core.models import EnvResolutionConfig, ProviderConfig
from envscope.core.utils import deep_merge, merge_unique
from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 99

SIMPLE_BASE_CONFIDENCE = 50
SIMPLE_MARKER_POINTS = 40
JSON_BASE_CONFIDENCE = 60
JSON_FIELD_BONUS = 20
JSON_VALIDATE_BONUS = 10

CustomDetect = Callable[["DeclarativeProvider", Path, list[str]], Mapping[str, Any] | None]
DetectFunction = Callable[["DeclarativeProvider", Path], DetectOutcome]


class DetectionStrategy(str, Enum):
    """How a declarative provider decides whether a directory is a root."""

    FILE_MARKERS = "file_markers"
    JSON_FIELD = "json_field"
    CUSTOM_FN = "custom_fn"


TEMPLATES: dict[str, dict[str, Any]] = {
    "simple": {
        "priority": 50,
        "detection": {"strategies": ["file_markers"], "max_depth": 4, "cache_duration": 300_000},
        "workspace": {"patterns": ["packages/*", "apps/*"], "priority": ["apps", "packages"]},
        "env_resolution": {
            "strategy": "workspace_first",
            "inheritance": True,
            "override_order": ["workspace", "root"],
        },
    },
    "js_monorepo": {
        "priority": 30,
        "detection": {"strategies": ["file_markers"], "max_depth": 4, "cache_duration": 300_000},
        "workspace": {
            "patterns": ["packages/*", "apps/*", "libs/*", "tools/*"],
            "priority": ["apps", "packages", "libs", "tools"],
        },
        "env_resolution": {
            "strategy": "workspace_first",
            "inheritance": True,
            "override_order": ["workspace", "root"],
        },
    },
    "generic": {
        "priority": 90,
        "detection": {"strategies": ["file_markers"], "max_depth": 6, "cache_duration": 300_000},
        "workspace": {"patterns": ["*/*"], "priority": []},
        "env_resolution": {
            "strategy": "merge",
            "inheritance": True,
            "override_order": ["workspace", "root"],
        },
    },
}


@dataclass
class ProviderValidationResult:
    """Outcome of validating a provider declaration."""

    valid: bool
    errors: list[str] = field(default_factory=list)


class DeclarativeProvider(BaseProvider):
    """Provider parameterized by a detection strategy and optional callables.

    FILE_MARKERS: 50 points plus an even share of a 40-point pool for each
        marker found. ``custom_detect(provider, path, found_markers)`` may
        return ``{"confidence": ..., "metadata": {...}}`` to adjust the result.
    JSON_FIELD: 60 points plus 20 for every marker whose JSON has
        ``config_field``; ``validate(document, marker)`` adds 10 per document
        it accepts. ``extract_patterns(section)`` feeds dynamic patterns.
    CUSTOM_FN: ``detect_function(provider, path)`` decides everything.
    """

    def __init__(
        self,
        config: ProviderConfig | Mapping[str, Any],
        strategy: DetectionStrategy = DetectionStrategy.FILE_MARKERS,
        *,
        custom_detect: CustomDetect | None = None,
        config_field: str | None = None,
        validate: Callable[[Any, str], bool] | None = None,
        extract_patterns: Callable[[Any], list[str] | None] | None = None,
        detect_function: DetectFunction | None = None,
        workspace_patterns_fn: Callable[[DeclarativeProvider], list[str]] | None = None,
        env_resolution_fn: Callable[[DeclarativeProvider], Any] | None = None,
    ) -> None:
        super().__init__(config)
        self.strategy = DetectionStrategy(strategy)

        if self.strategy is DetectionStrategy.JSON_FIELD and not config_field:
            raise ConfigurationError(
                f"JSON provider '{self.name}' requires json_parser.config_field"
            )
        if self.strategy is DetectionStrategy.CUSTOM_FN and not callable(detect_function):
            raise ConfigurationError(f"Custom provider '{self.name}' requires detect_function")
        needs_markers = self.strategy is not DetectionStrategy.CUSTOM_FN
        if needs_markers and not self.config.detection.file_markers:
            raise ConfigurationError(
                f"Provider '{self.name}' requires detection.file_markers"
            )

        self._custom_detect = custom_detect
        self._config_field = config_field
        self._validate = validate
        self._extract_patterns = extract_patterns
        self._detect_function = detect_function
        self._workspace_patterns_fn = workspace_patterns_fn
        self._env_resolution_fn = env_resolution_fn

    def detect(self, path: Path) -> DetectOutcome:
        path = Path(path)
        if self.strategy is DetectionStrategy.CUSTOM_FN:
            assert self._detect_function is not None
            return self._detect_function(self, path)
        if self.strategy is DetectionStrategy.JSON_FIELD:
            return self._detect_json(path)
        return self._detect_markers(path)

    def _detect_markers(self, path: Path) -> DetectOutcome:
        markers = self.config.detection.file_markers
        found = [m for m in markers if self.file_exists(path / m)]
        if not found:
            return NOT_DETECTED

        share = SIMPLE_MARKER_POINTS / len(markers)
        confidence: float = SIMPLE_BASE_CONFIDENCE + len(found) * share
        metadata: dict[str, Any] = {"marker_files": found, "provider_type": "simple"}

        if self._custom_detect is not None:
            custom = self._custom_detect(self, path, list(found))
            if custom:
                if custom.get("confidence") is not None:
                    confidence = custom["confidence"]
                if custom.get("metadata"):
                    metadata = deep_merge(metadata, dict(custom["metadata"]))

        return True, int(min(confidence, MAX_CONFIDENCE)), metadata

    def _detect_json(self, path: Path) -> DetectOutcome:
        found: list[str] = []
        documents: dict[str, Any] = {}
        confidence = JSON_BASE_CONFIDENCE

        for marker in self.config.detection.file_markers:
            marker_path = path / marker
            if not self.file_exists(marker_path):
                continue
            found.append(marker)
            document = self.read_json_file(marker_path)
            if isinstance(document, dict) and self._config_field in document:
                documents[marker] = document
                confidence += JSON_FIELD_BONUS

        if not found:
            return NOT_DETECTED

        if self._validate is not None:
            for marker, document in documents.items():
                if self._validate(document, marker):
                    confidence += JSON_VALIDATE_BONUS

        metadata = {"marker_files": found, "json_configs": documents, "provider_type": "json"}
        return True, min(confidence, MAX_CONFIDENCE), metadata

    def get_workspace_patterns(self) -> list[str]:
        if self._workspace_patterns_fn is not None:
            return list(self._workspace_patterns_fn(self))
        return super().get_workspace_patterns()

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        patterns = self.get_workspace_patterns()
        if self._extract_patterns is None:
            return patterns

        documents = (detection_metadata or {}).get("json_configs") or {}
        for document in documents.values():
            section = document.get(self._config_field)
            if section is None:
                continue
            extracted = self._extract_patterns(section)
            if extracted:
                patterns = merge_unique(patterns, extracted)
        return patterns

    def get_env_resolution(self) -> EnvResolutionConfig:
        if self._env_resolution_fn is not None:
            resolution = self._env_resolution_fn(self)
            if isinstance(resolution, EnvResolutionConfig):
                return resolution
            return EnvResolutionConfig.model_validate(resolution)
        return super().get_env_resolution()


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def _split_declaration(config: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate the validated data of a declaration from its callables."""
    data = dict(config)
    if not isinstance(data.get("name"), str) or not data["name"]:
        raise ConfigurationError("Provider name is required")

    hooks: dict[str, Any] = {}
    for key in ("custom_detect", "detect_function"):
        if key in data:
            hooks[key] = data.pop(key)
    if "get_workspace_patterns" in data:
        hooks["workspace_patterns_fn"] = data.pop("get_workspace_patterns")
    if "get_env_resolution" in data:
        hooks["env_resolution_fn"] = data.pop("get_env_resolution")

    json_parser = data.pop("json_parser", None)
    if isinstance(json_parser, Mapping):
        hooks["config_field"] = json_parser.get("config_field")
        hooks["validate"] = json_parser.get("validate")
        hooks["extract_patterns"] = json_parser.get("extract_patterns")
    data.pop("type", None)
    return data, hooks


def create_simple_provider(config: Mapping[str, Any]) -> DeclarativeProvider:
    """Build a file-marker provider.

    Raises:
        ConfigurationError: If ``name`` or ``detection.file_markers`` is missing.
    """
    data, hooks = _split_declaration(config)
    return DeclarativeProvider(
        data,
        DetectionStrategy.FILE_MARKERS,
        custom_detect=hooks.get("custom_detect"),
        workspace_patterns_fn=hooks.get("workspace_patterns_fn"),
        env_resolution_fn=hooks.get("env_resolution_fn"),
    )


def create_json_provider(config: Mapping[str, Any]) -> DeclarativeProvider:
    """Build a provider that parses a field out of JSON marker files.

    Raises:
        ConfigurationError: If ``json_parser.config_field`` is missing.
    """
    data, hooks = _split_declaration(config)
    return DeclarativeProvider(
        data,
        DetectionStrategy.JSON_FIELD,
        config_field=hooks.get("config_field"),
        validate=hooks.get("validate"),
        extract_patterns=hooks.get("extract_patterns"),
        workspace_patterns_fn=hooks.get("workspace_patterns_fn"),
        env_resolution_fn=hooks.get("env_resolution_fn"),
    )


def create_custom_provider(config: Mapping[str, Any]) -> DeclarativeProvider:
    """Build a provider whose detection is a supplied function.

    Raises:
        ConfigurationError: If ``detect_function`` is missing.
    """
    data, hooks = _split_declaration(config)
    return DeclarativeProvider(
        data,
        DetectionStrategy.CUSTOM_FN,
        detect_function=hooks.get("detect_function"),
        workspace_patterns_fn=hooks.get("workspace_patterns_fn"),
        env_resolution_fn=hooks.get("env_resolution_fn"),
    )


def create_from_template(template_name: str, overrides: Mapping[str, Any]) -> DeclarativeProvider:
    """Build a file-marker provider from a named template.

    Raises:
        ConfigurationError: If the template does not exist.
    """
    template = TEMPLATES.get(template_name)
    if template is None:
        raise ConfigurationError(
            f"Unknown template: {template_name}",
            errors=[f"available templates: {', '.join(get_available_templates())}"],
        )
    return create_simple_provider(deep_merge(copy.deepcopy(template), dict(overrides)))


def get_available_templates() -> list[str]:
    return list(TEMPLATES)


def validate_provider_config(config: Mapping[str, Any]) -> ProviderValidationResult:
    """Validate a provider declaration without building it. Never raises."""
    try:
        data, _ = _split_declaration(config)
    except ConfigurationError as e:
        return ProviderValidationResult(valid=False, errors=[str(e)])

    try:
        ProviderConfig.model_validate(data)
    except ValidationError as e:
        return ProviderValidationResult(valid=False, errors=format_validation_errors(e))
    return ProviderValidationResult(valid=True)
