"""Tests for core path helpers, file readers, errors and logging."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from pydantic import BaseModel, ValidationError

from envscope.core.errors import (
    ConfigurationError,
    PluginError,
    ProviderContractError,
    format_validation_errors,
)
from envscope.core.logging import JSONFormatter, SecureFormatter, mask_secrets
from envscope.core.path_utils import (
    is_within,
    normalize_path,
    relative_parts,
    search_directory,
)
from envscope.core.utils import (
    deep_merge,
    merge_unique,
    read_json_file,
    read_toml_file,
    read_text_file,
    unique,
)


@pytest.mark.unit
class TestNormalizePath:
    """Tests for normalize_path."""

    def test_string_to_path(self) -> None:
        """Test converting string to Path."""
        result = normalize_path("/some/path")
        assert isinstance(result, Path)
        assert result.is_absolute()

    def test_expands_user_home(self) -> None:
        assert normalize_path("~") == Path.home().resolve()

    def test_expands_env_vars(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("ENVSCOPE_TEST_DIR", str(tmp_path))
        assert normalize_path("$ENVSCOPE_TEST_DIR/sub") == tmp_path.resolve() / "sub"

    def test_resolves_dot_segments(self, tmp_path: Path) -> None:
        (tmp_path / "a").mkdir()
        assert normalize_path(tmp_path / "a" / "..") == tmp_path.resolve()


@pytest.mark.unit
class TestSearchDirectory:
    """Tests for search_directory."""

    def test_directory_kept(self, tmp_path: Path) -> None:
        assert search_directory(tmp_path) == tmp_path.resolve()

    def test_file_replaced_by_parent(self, tmp_path: Path) -> None:
        target = tmp_path / "index.ts"
        target.write_text("")
        assert search_directory(target) == tmp_path.resolve()

    def test_unsaved_file_uses_parent(self, tmp_path: Path) -> None:
        assert search_directory(tmp_path / "new.ts") == tmp_path.resolve()

    @pytest.mark.parametrize("path", [None, ""])
    def test_defaults_to_cwd(
        self, path: str | None, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert search_directory(path) == tmp_path.resolve()


@pytest.mark.unit
class TestPathArithmetic:
    """Tests for relative_parts and is_within."""

    def test_relative_parts(self) -> None:
        assert relative_parts(Path("/repo/apps/web"), Path("/repo")) == ("apps", "web")
        assert relative_parts(Path("/elsewhere"), Path("/repo")) == ()

    def test_is_within(self) -> None:
        assert is_within(Path("/repo"), Path("/repo"))
        assert is_within(Path("/repo/apps/web/x.ts"), Path("/repo/apps/web"))
        assert not is_within(Path("/repo/apps/web-admin"), Path("/repo/apps/web"))


@pytest.mark.unit
class TestFileReaders:
    """Tests for the tolerant JSON, TOML and text readers."""

    def test_read_json(self, tmp_path: Path) -> None:
        target = tmp_path / "a.json"
        target.write_text(json.dumps({"tasks": {}}))
        assert read_json_file(target) == {"tasks": {}}

    def test_read_json_invalid_or_missing(self, tmp_path: Path) -> None:
        target = tmp_path / "bad.json"
        target.write_text("{not json")
        assert read_json_file(target) is None
        assert read_json_file(tmp_path / "missing.json") is None
        assert read_json_file(tmp_path) is None

    def test_read_toml(self, tmp_path: Path) -> None:
        target = tmp_path / "Cargo.toml"
        target.write_text('[workspace]\nmembers = ["a"]\n')
        assert read_toml_file(target) == {"workspace": {"members": ["a"]}}

    def test_read_toml_invalid(self, tmp_path: Path) -> None:
        target = tmp_path / "Cargo.toml"
        target.write_text("[workspace\n")
        assert read_toml_file(target) is None

    def test_read_text(self, tmp_path: Path) -> None:
        target = tmp_path / ".env"
        target.write_text("A=1\n")
        assert read_text_file(target) == "A=1\n"
        assert read_text_file(tmp_path / "missing") is None


@pytest.mark.unit
class TestCollections:
    """Tests for unique, merge_unique and deep_merge."""

    def test_unique_keeps_first_occurrence(self) -> None:
        assert unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_merge_unique(self) -> None:
        assert merge_unique(["apps/*"], ["apps/*", "modules/*"]) == ["apps/*", "modules/*"]

    def test_deep_merge(self) -> None:
        base = {"a": {"x": 1, "y": 2}, "b": [1, 2]}
        merged = deep_merge(base, {"a": {"y": 3}, "b": [3]})
        assert merged == {"a": {"x": 1, "y": 3}, "b": [3]}
        assert base == {"a": {"x": 1, "y": 2}, "b": [1, 2]}


class _Sample(BaseModel):
    count: int


@pytest.mark.unit
class TestErrors:
    """Tests for the exception types."""

    def test_configuration_error_lists_problems(self) -> None:
        error = ConfigurationError("Invalid", ["a: bad", "b: worse"])
        assert str(error) == "Invalid: a: bad; b: worse"
        assert error.errors == ["a: bad", "b: worse"]
        assert str(ConfigurationError("Invalid")) == "Invalid"

    def test_plugin_error_prefix(self) -> None:
        assert str(PluginError("broken", "rush")) == "Plugin 'rush': broken"
        assert str(PluginError("broken")) == "broken"

    def test_provider_contract_error(self) -> None:
        error = ProviderContractError("missing detect", "rush")
        assert error.provider_name == "rush"

    def test_format_validation_errors(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _Sample.model_validate({"count": "many"})
        messages = format_validation_errors(exc_info.value)
        assert len(messages) == 1
        assert messages[0].startswith("count: ")


@pytest.mark.unit
class TestLogging:
    """Tests for secret masking in log output."""

    @pytest.mark.parametrize(
        "message",
        [
            "API_KEY=abc123",
            "password: hunter2",
            "secret=shh",
            "token=xyz",
            "sk-abcdefghijklmnopqrstuvwxyz",
        ],
    )
    def test_mask_secrets(self, message: str) -> None:
        masked = mask_secrets(f"loaded {message}")
        assert message not in masked
        assert "***" in masked

    def test_secure_formatter(self) -> None:
        record = logging.LogRecord(
            "envscope", logging.INFO, __file__, 1, "DB password=hunter2", None, None
        )
        assert "hunter2" not in SecureFormatter("%(message)s").format(record)

    def test_json_formatter(self) -> None:
        record = logging.LogRecord(
            "envscope.detection", logging.WARNING, __file__, 1, "token=abc", None, None
        )
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "WARNING"
        assert data["logger"] == "envscope.detection"
        assert "abc" not in data["message"]
