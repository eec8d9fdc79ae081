"""Nx provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from envscope.core.utils import merge_unique
from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider

BASE_CONFIDENCE = 80
MAX_CONFIDENCE = 99


class NxProvider(BaseProvider):
    """Recognizes roots containing ``nx.json`` or ``workspace.json``.

    Starts at 80 and adds points for each structural signal: a parseable
    ``nx.json`` (+10), task runner options (+5), implicit dependencies
    (+2), a parseable ``workspace.json`` (+5) declaring projects (+5).
    """

    FIXED_NAME = "nx"
    REQUIRED_MARKERS = ("nx.json", "workspace.json")
    EXTRA_PATTERNS = ("apps/*", "libs/*", "tools/*", "e2e/*")
    PACKAGE_MANAGERS = ("package.json",)
    INFO = {
        "display_name": "Nx",
        "description": "Smart, fast and extensible build system",
        "website": "https://nx.dev",
        "supported_languages": ["javascript", "typescript", "angular", "react", "vue", "node"],
    }

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        return {
            "name": "nx",
            "priority": 2,
            "detection": {
                "strategies": ["file_markers"],
                "file_markers": ["nx.json", "workspace.json"],
                "max_depth": 4,
                "cache_duration": 300_000,
            },
            "workspace": {
                "patterns": ["apps/*", "libs/*", "tools/*", "e2e/*"],
                "priority": ["apps", "libs", "tools", "e2e"],
            },
            "env_resolution": {
                "strategy": "workspace_first",
                "inheritance": True,
                "override_order": ["workspace", "root"],
            },
        }

    def detect(self, path: Path) -> DetectOutcome:
        nx_json = Path(path) / "nx.json"
        workspace_json = Path(path) / "workspace.json"
        has_nx_json = self.file_exists(nx_json)
        has_workspace_json = self.file_exists(workspace_json)

        if not has_nx_json and not has_workspace_json:
            return NOT_DETECTED

        metadata: dict[str, Any] = {"marker_files": []}
        confidence = BASE_CONFIDENCE

        if has_nx_json:
            metadata["marker_files"].append("nx.json")
            nx_config = self.read_json_file(nx_json)
            if isinstance(nx_config, dict):
                metadata["nx_config"] = nx_config
                confidence += 10
                if "extends" in nx_config:
                    metadata["extends"] = nx_config["extends"]
                if nx_config.get("tasksRunnerOptions"):
                    metadata["has_task_runner"] = True
                    confidence += 5
                if nx_config.get("implicitDependencies"):
                    metadata["has_implicit_deps"] = True
                    confidence += 2
                layout = nx_config.get("workspaceLayout")
                if isinstance(layout, dict):
                    metadata["workspace_layout"] = layout

        if has_workspace_json:
            metadata["marker_files"].append("workspace.json")
            workspace_config = self.read_json_file(workspace_json)
            if isinstance(workspace_config, dict):
                metadata["workspace_config"] = workspace_config
                confidence += 5
                projects = workspace_config.get("projects")
                if isinstance(projects, (dict, list)):
                    metadata["project_count"] = len(projects)
                    if projects:
                        confidence += 5

        return True, min(confidence, MAX_CONFIDENCE), metadata

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Add ``<appsDir>/*`` and ``<libsDir>/*`` from a custom ``workspaceLayout``."""
        patterns = self.get_workspace_patterns()
        layout = (detection_metadata or {}).get("workspace_layout")
        if not isinstance(layout, dict):
            return patterns

        custom = [
            f"{layout[key].rstrip('/')}/*"
            for key in ("appsDir", "libsDir")
            if isinstance(layout.get(key), str) and layout[key]
        ]
        return merge_unique(patterns, custom)
