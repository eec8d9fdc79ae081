"""Lerna provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from envscope.core.utils import merge_unique
from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider


class LernaProvider(BaseProvider):
    """Recognizes roots containing ``lerna.json``.

    Confidence is 95 for the marker alone and 99 when it lists ``packages``.
    """

    FIXED_NAME = "lerna"
    REQUIRED_MARKERS = ("lerna.json",)
    EXTRA_PATTERNS = ("packages/*", "libs/*", "modules/*")
    # Lerna packages are npm packages; lerna.json only exists at the root.
    PACKAGE_MANAGERS = ("package.json",)
    INFO = {
        "display_name": "Lerna",
        "description": "A tool for managing JavaScript projects with multiple packages",
        "website": "https://lerna.js.org",
        "supported_languages": ["javascript", "typescript"],
    }

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        return {
            "name": "lerna",
            "priority": 3,
            "detection": {
                "strategies": ["file_markers"],
                "file_markers": ["lerna.json"],
                "max_depth": 4,
                "cache_duration": 300_000,
            },
            "workspace": {
                "patterns": ["packages/*"],
                "priority": ["packages"],
            },
            "env_resolution": {
                "strategy": "workspace_first",
                "inheritance": True,
                "override_order": ["workspace", "root"],
            },
        }

    def detect(self, path: Path) -> DetectOutcome:
        marker = Path(path) / "lerna.json"
        if not self.file_exists(marker):
            return NOT_DETECTED

        lerna_config = self.read_json_file(marker)
        metadata: dict[str, Any] = {"marker_file": "lerna.json", "lerna_config": lerna_config}
        confidence = 95

        if isinstance(lerna_config, dict):
            packages = lerna_config.get("packages")
            if packages:
                confidence = 99
                metadata["has_packages"] = True
                metadata["package_patterns"] = packages
            if "version" in lerna_config:
                metadata["lerna_version"] = lerna_config["version"]
                if lerna_config["version"] == "independent":
                    metadata["independent_versioning"] = True
            if "command" in lerna_config:
                metadata["command_config"] = lerna_config["command"]
            if "npmClient" in lerna_config:
                metadata["npm_client"] = lerna_config["npmClient"]

        return True, confidence, metadata

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Add the ``packages`` globs declared in ``lerna.json``."""
        patterns = self.get_workspace_patterns()
        declared = (detection_metadata or {}).get("package_patterns")
        if isinstance(declared, list):
            patterns = merge_unique(patterns, [p for p in declared if isinstance(p, str)])
        return patterns
