"""Yarn / npm / pnpm workspaces provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from envscope.core.utils import merge_unique
from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider

MAX_CONFIDENCE = 99

# Lock file -> (metadata flag, package manager, confidence bonus)
LOCK_FILES: dict[str, tuple[str, str, int]] = {
    "yarn.lock": ("has_yarn_lock", "yarn", 5),
    "package-lock.json": ("has_package_lock", "npm", 3),
    "pnpm-workspace.yaml": ("has_pnpm_workspace", "pnpm", 5),
}


class YarnWorkspacesProvider(BaseProvider):
    """Recognizes a ``package.json`` that declares ``workspaces``.

    ``package.json`` is everywhere, so the file alone never matches; the
    ``workspaces`` field is required. Confidence starts at 85, becomes 90
    for the ``{"packages": [...]}`` form or 88 for a plain list, then gains
    points for lock files and ``"private": true``.
    """

    FIXED_NAME = "yarn_workspaces"
    REQUIRED_MARKERS = ("package.json",)
    EXTRA_PATTERNS = ("packages/*", "apps/*", "services/*", "libs/*", "tools/*")
    INFO = {
        "display_name": "Yarn Workspaces",
        "description": "Workspaces declared in package.json (yarn, npm or pnpm)",
        "website": "https://yarnpkg.com/features/workspaces",
        "supported_languages": ["javascript", "typescript"],
    }

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        return {
            "name": "yarn_workspaces",
            "priority": 5,
            "detection": {
                "strategies": ["file_markers"],
                "file_markers": ["package.json"],
                "max_depth": 4,
                "cache_duration": 300_000,
            },
            "workspace": {
                "patterns": ["packages/*", "apps/*", "services/*"],
                "priority": ["apps", "packages", "services"],
            },
            "env_resolution": {
                "strategy": "workspace_first",
                "inheritance": True,
                "override_order": ["workspace", "root"],
            },
        }

    def detect(self, path: Path) -> DetectOutcome:
        root = Path(path)
        package_json = root / "package.json"
        if not self.file_exists(package_json):
            return NOT_DETECTED

        package_config = self.read_json_file(package_json)
        if not isinstance(package_config, dict) or package_config.get("workspaces") is None:
            return NOT_DETECTED

        workspaces = package_config["workspaces"]
        metadata: dict[str, Any] = {
            "marker_file": "package.json",
            "package_config": package_config,
        }
        confidence = 85

        if isinstance(workspaces, dict):
            if isinstance(workspaces.get("packages"), list):
                metadata["workspace_patterns"] = workspaces["packages"]
                metadata["workspace_format"] = "yarn"
                confidence = 90
            if "nohoist" in workspaces:
                metadata["nohoist"] = workspaces["nohoist"]
        elif isinstance(workspaces, list):
            metadata["workspace_patterns"] = workspaces
            metadata["workspace_format"] = "simple"
            confidence = 88

        for lock_file, (flag, manager, bonus) in LOCK_FILES.items():
            if self.file_exists(root / lock_file):
                metadata[flag] = True
                metadata["package_manager"] = manager
                confidence += bonus

        if "name" in package_config:
            metadata["workspace_name"] = package_config["name"]
        if package_config.get("private") is True:
            metadata["is_private"] = True
            confidence += 2

        return True, min(confidence, MAX_CONFIDENCE), metadata

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Add the globs declared in the ``workspaces`` field."""
        patterns = self.get_workspace_patterns()
        declared = (detection_metadata or {}).get("workspace_patterns")
        if isinstance(declared, list):
            patterns = merge_unique(patterns, [p for p in declared if isinstance(p, str)])
        return patterns
