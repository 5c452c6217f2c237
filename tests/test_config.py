"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from specloop.config import CONFIG_FILENAME, ConfigError, Settings


def _write_config(root: Path, content: str) -> None:
    (root / CONFIG_FILENAME).write_text(content, encoding="utf-8")


def test_defaults_without_file_or_env(tmp_path: Path):
    settings = Settings.load(tmp_path, environ={})
    assert settings.claude_binary == "claude"
    assert settings.model == ""
    assert settings.default_iterations == 30
    assert settings.specs_dir == "specs"
    assert settings.worktree_setup_commands == []
    assert settings.verbose is False


def test_file_values_are_loaded(tmp_path: Path):
    _write_config(
        tmp_path,
        """
claude_binary: /opt/claude
default_iterations: 12
specs_dir: docs/specs
worktree:
  setup_commands:
    - composer install
    - npm ci
""",
    )
    settings = Settings.load(tmp_path, environ={})
    assert settings.claude_binary == "/opt/claude"
    assert settings.default_iterations == 12
    assert settings.specs_dir == "docs/specs"
    assert settings.worktree_setup_commands == ["composer install", "npm ci"]


def test_environment_overrides_file(tmp_path: Path):
    _write_config(tmp_path, "model: from-file\ndefault_iterations: 12\n")
    settings = Settings.load(
        tmp_path,
        environ={
            "SPECLOOP_MODEL": "from-env",
            "SPECLOOP_ITERATIONS": "7",
            "SPECLOOP_VERBOSE": "yes",
            "SPECLOOP_CLAUDE_BIN": "  ",
        },
    )
    assert settings.model == "from-env"
    assert settings.default_iterations == 7
    assert settings.verbose is True
    assert settings.claude_binary == "claude"


@pytest.mark.parametrize("raw", ["0", "-3", "abc"])
def test_invalid_iterations_raise_config_error(tmp_path: Path, raw: str):
    with pytest.raises(ConfigError):
        Settings.load(tmp_path, environ={"SPECLOOP_ITERATIONS": raw})


def test_malformed_yaml_raises_config_error(tmp_path: Path):
    _write_config(tmp_path, "default_iterations: [1, 2\n")
    with pytest.raises(ConfigError, match="Could not read"):
        Settings.load(tmp_path, environ={})


def test_non_mapping_yaml_raises_config_error(tmp_path: Path):
    _write_config(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError, match="must contain a mapping"):
        Settings.load(tmp_path, environ={})


def test_empty_file_uses_defaults(tmp_path: Path):
    _write_config(tmp_path, "")
    assert Settings.load(tmp_path, environ={}).default_iterations == 30
