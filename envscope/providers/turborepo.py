"""Turborepo provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider


class TurborepoProvider(BaseProvider):
    """Recognizes roots containing ``turbo.json``.

    Confidence is 95 for the marker alone and 99 when the parsed file
    declares a ``pipeline`` or ``tasks`` section.
    """

    FIXED_NAME = "turborepo"
    REQUIRED_MARKERS = ("turbo.json",)
    EXTRA_PATTERNS = ("apps/*", "packages/*", "tools/*", "examples/*")
    # turbo.json only lives at the root; workspaces are npm packages.
    PACKAGE_MANAGERS = ("package.json",)
    INFO = {
        "display_name": "Turborepo",
        "description": "Vercel's build system for JavaScript/TypeScript monorepos",
        "website": "https://turbo.build/repo",
        "supported_languages": ["javascript", "typescript"],
    }

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        return {
            "name": "turborepo",
            "priority": 1,
            "detection": {
                "strategies": ["file_markers"],
                "file_markers": ["turbo.json"],
                "max_depth": 4,
                "cache_duration": 300_000,
            },
            "workspace": {
                "patterns": ["apps/*", "packages/*"],
                "priority": ["apps", "packages"],
            },
            "env_resolution": {
                "strategy": "workspace_first",
                "inheritance": True,
                "override_order": ["workspace", "root"],
            },
        }

    def detect(self, path: Path) -> DetectOutcome:
        marker = Path(path) / "turbo.json"
        if not self.file_exists(marker):
            return NOT_DETECTED

        turbo_config = self.read_json_file(marker)
        metadata: dict[str, Any] = {"marker_file": "turbo.json", "turbo_config": turbo_config}
        confidence = 95

        if isinstance(turbo_config, dict):
            if "pipeline" in turbo_config or "tasks" in turbo_config:
                confidence = 99
                metadata["has_pipeline"] = "pipeline" in turbo_config
                metadata["has_tasks"] = "tasks" in turbo_config
            if "remoteCache" in turbo_config:
                metadata["remote_cache"] = turbo_config["remoteCache"]
            if "packageManager" in turbo_config:
                metadata["package_manager"] = turbo_config["packageManager"]

        return True, confidence, metadata
