"""Data models for envscope.

Provider configuration is declarative and validated with pydantic. Values
produced by detection, discovery and resolution are plain frozen records.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from envscope.ports.providers import MonorepoProvider


class EnvStrategy(str, Enum):
    """How workspace and root environment files are combined."""

    WORKSPACE_ONLY = "workspace_only"
    WORKSPACE_FIRST = "workspace_first"
    ROOT_FIRST = "root_first"
    MERGE = "merge"


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------


class DetectionConfig(BaseModel):
    """How a provider recognizes a monorepo root."""

    model_config = ConfigDict(extra="forbid")

    strategies: list[str] = Field(default_factory=lambda: ["file_markers"])
    file_markers: list[str] = Field(default_factory=list)
    max_depth: int = Field(default=4, ge=1, le=20)
    cache_duration: int = Field(default=300_000, ge=0, description="Cache TTL in milliseconds")


class WorkspaceConfig(BaseModel):
    """Where a provider looks for workspaces and how it orders them."""

    model_config = ConfigDict(extra="forbid")

    patterns: list[str] = Field(default_factory=list)
    priority: list[str] = Field(default_factory=list)
    package_managers: list[str] = Field(
        default_factory=list, description="Marker files that make a directory a workspace"
    )


class EnvResolutionConfig(BaseModel):
    """Environment file precedence for a provider."""

    model_config = ConfigDict(extra="forbid")

    strategy: EnvStrategy = EnvStrategy.WORKSPACE_FIRST
    inheritance: bool = True
    override_order: list[str] = Field(default_factory=lambda: ["workspace", "root"])


class ProviderConfig(BaseModel):
    """Complete declarative configuration of a provider."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    priority: int = Field(default=50, ge=0)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    env_resolution: EnvResolutionConfig = Field(default_factory=EnvResolutionConfig)


DEFAULT_ENV_RESOLUTION = EnvResolutionConfig()


# ---------------------------------------------------------------------------
# Detection and discovery results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkspaceMetadata:
    """Validity flags recorded when a workspace is discovered.

    Attributes:
        depth: Number of path segments below the monorepo root.
        has_package_manager: Whether a package-manager marker file exists.
    """

    depth: int
    has_package_manager: bool


@dataclass(frozen=True)
class Workspace:
    """A workspace directory inside a monorepo.

    Attributes:
        path: Absolute directory path; identity key.
        name: Directory basename.
        relative_path: Path relative to the monorepo root, POSIX separators.
        type: First path segment below the root (e.g. "apps").
        provider: Provider that discovered the workspace.
        metadata: Validity flags.
    """

    path: Path
    name: str
    relative_path: str
    type: str
    provider: MonorepoProvider | None = field(default=None, compare=False, repr=False)
    metadata: WorkspaceMetadata = field(
        default_factory=lambda: WorkspaceMetadata(depth=0, has_package_manager=False),
        compare=False,
    )

    @property
    def provider_name(self) -> str | None:
        return self.provider.name if self.provider is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "name": self.name,
            "relative_path": self.relative_path,
            "type": self.type,
            "provider": self.provider_name,
            "depth": self.metadata.depth,
            "has_package_manager": self.metadata.has_package_manager,
        }


@dataclass(frozen=True)
class DetectionInfo:
    """Details recorded when a provider recognizes a root.

    Attributes:
        confidence: Provider-chosen score in 1..100.
        metadata: Whatever the provider learned while parsing its markers.
        detected_at: Wall-clock seconds at detection time.
    """

    confidence: int
    metadata: dict[str, Any] = field(default_factory=dict)
    detected_at: float = field(default_factory=time.time)


class DetectionResult(NamedTuple):
    """Outcome of a monorepo root detection.

    A result with ``root_path`` None is a negative result.
    """

    root_path: Path | None
    provider: MonorepoProvider | None
    detection_info: DetectionInfo | None

    @property
    def found(self) -> bool:
        return self.root_path is not None

    @property
    def provider_name(self) -> str | None:
        return self.provider.name if self.provider is not None else None

    def to_dict(self) -> dict[str, Any]:
        info = self.detection_info
        return {
            "root": str(self.root_path) if self.root_path else None,
            "provider": self.provider_name,
            "confidence": info.confidence if info else None,
            "metadata": dict(info.metadata) if info else {},
        }


NOT_FOUND = DetectionResult(None, None, None)


@dataclass(frozen=True)
class ResolveOptions:
    """Options for environment file resolution.

    Attributes:
        preferred_environment: Files ending in ``.<preferred_environment>``
            are moved ahead of the others, order otherwise kept.
        sort_key: Key function applied to the final list instead of the
            preference hoist. Not part of any cache key.
    """

    preferred_environment: str | None = None
    sort_key: Callable[[Path], Any] | None = None


@dataclass(frozen=True)
class FileResolution:
    """Everything the host integration needs to know about one file."""

    file_path: Path
    root_path: Path | None = None
    provider: MonorepoProvider | None = field(default=None, repr=False)
    workspaces: tuple[Workspace, ...] = ()
    workspace: Workspace | None = None
    env_files: tuple[Path, ...] = ()

    @property
    def in_monorepo(self) -> bool:
        return self.root_path is not None
