"""Cargo workspaces provider."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from envscope.core.utils import merge_unique, read_text_file
from envscope.ports.providers import DetectOutcome
from envscope.providers.base import NOT_DETECTED, BaseProvider

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 99

_WORKSPACE_HEADER = re.compile(r"^\s*\[workspace\]\s*(#.*)?$", re.MULTILINE)


class CargoWorkspacesProvider(BaseProvider):
    """Recognizes a ``Cargo.toml`` with a ``[workspace]`` table.

    Confidence is 90, 95 when ``members`` is declared, plus 2 for
    ``[workspace.dependencies]`` and 2 for a ``Cargo.lock``.

    A manifest that is not valid TOML still matches if it contains a literal
    ``[workspace]`` header line, without any bonus.
    """

    FIXED_NAME = "cargo_workspaces"
    REQUIRED_MARKERS = ("Cargo.toml",)
    EXTRA_PATTERNS = ("crates/*", "libs/*", "bins/*", "examples/*", "tools/*")
    INFO = {
        "display_name": "Cargo Workspaces",
        "description": "Rust's built-in workspace management system",
        "website": "https://doc.rust-lang.org/book/ch14-03-cargo-workspaces.html",
        "supported_languages": ["rust"],
    }

    @classmethod
    def default_config(cls) -> dict[str, Any]:
        return {
            "name": "cargo_workspaces",
            "priority": 6,
            "detection": {
                "strategies": ["file_markers"],
                "file_markers": ["Cargo.toml"],
                "max_depth": 4,
                "cache_duration": 300_000,
            },
            "workspace": {
                "patterns": ["crates/*", "libs/*", "bins/*"],
                "priority": ["bins", "crates", "libs"],
            },
            "env_resolution": {
                "strategy": "workspace_first",
                "inheritance": True,
                "override_order": ["workspace", "root"],
            },
        }

    def detect(self, path: Path) -> DetectOutcome:
        root = Path(path)
        manifest = root / "Cargo.toml"
        if not self.file_exists(manifest):
            return NOT_DETECTED

        cargo_config = self.read_toml_file(manifest)
        if cargo_config is None:
            return self._detect_unparsed(manifest)

        workspace = cargo_config.get("workspace")
        if not isinstance(workspace, dict):
            return NOT_DETECTED

        metadata: dict[str, Any] = {"marker_file": "Cargo.toml", "cargo_config": cargo_config}
        confidence = 90

        members = workspace.get("members")
        if isinstance(members, list):
            metadata["workspace_members"] = [m for m in members if isinstance(m, str)]
            confidence = 95
        if "exclude" in workspace:
            metadata["workspace_exclude"] = workspace["exclude"]
        if isinstance(workspace.get("dependencies"), dict):
            metadata["has_workspace_dependencies"] = True
            confidence += 2

        if self.file_exists(root / "Cargo.lock"):
            metadata["has_cargo_lock"] = True
            confidence += 2

        package = cargo_config.get("package")
        if isinstance(package, dict):
            if "name" in package:
                metadata["workspace_name"] = package["name"]
            if "version" in package:
                metadata["workspace_version"] = package["version"]

        return True, min(confidence, MAX_CONFIDENCE), metadata

    def _detect_unparsed(self, manifest: Path) -> DetectOutcome:
        content = read_text_file(manifest)
        if content is None or not _WORKSPACE_HEADER.search(content):
            return NOT_DETECTED
        logger.debug("Cargo.toml at %s is not valid TOML; matched on [workspace] header", manifest)
        return True, 90, {"marker_file": "Cargo.toml", "parse_error": True}

    def get_dynamic_workspace_patterns(
        self, detection_metadata: dict[str, Any] | None = None
    ) -> list[str]:
        """Turn ``workspace.members`` into globs.

        Glob members are kept as-is; a plain ``a/b`` member becomes ``a/*``.
        Top-level members without a parent directory add nothing.
        """
        patterns = self.get_workspace_patterns()
        members = (detection_metadata or {}).get("workspace_members") or []

        custom = []
        for member in members:
            member = member.rstrip("/")
            if "*" in member:
                custom.append(member)
            elif "/" in member:
                custom.append(f"{member.rsplit('/', 1)[0]}/*")
        return merge_unique(patterns, custom)
