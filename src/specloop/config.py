"""Runtime settings: defaults, ``.specloop.yaml``, then environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from specloop.runner_common import coerce_int

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".specloop.yaml"

_TRUTHY = {"1", "true", "yes", "on"}

_ENV_KEYS: dict[str, str] = {
    "SPECLOOP_CLAUDE_BIN": "claude_binary",
    "SPECLOOP_MODEL": "model",
    "SPECLOOP_ITERATIONS": "default_iterations",
    "SPECLOOP_SPECS_DIR": "specs_dir",
    "SPECLOOP_VERBOSE": "verbose",
}


class ConfigError(ValueError):
    """Raised when the settings file or environment holds invalid values."""


class Settings(BaseModel):
    """Settings shared by every CLI command."""

    claude_binary: str = "claude"
    model: str = ""
    default_iterations: int = 30
    specs_dir: str = "specs"
    worktree_setup_commands: list[str] = Field(default_factory=list)
    verbose: bool = False

    @field_validator("default_iterations")
    @classmethod
    def _positive_iterations(cls, value: int) -> int:
        if value < 1:
            raise ValueError("default_iterations must be >= 1")
        return value

    @classmethod
    def load(
        cls,
        project_root: str | Path,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        """Merge defaults, ``<project_root>/.specloop.yaml`` and ``SPECLOOP_*`` variables."""
        values: dict[str, Any] = {}
        values.update(_read_config_file(Path(project_root) / CONFIG_FILENAME))
        values.update(_read_environment(os.environ if environ is None else environ))
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid specloop settings: {exc}") from exc


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")

    values = dict(data)
    worktree = values.pop("worktree", None)
    if isinstance(worktree, dict) and "setup_commands" in worktree:
        values.setdefault("worktree_setup_commands", worktree["setup_commands"] or [])
    logger.debug("Loaded settings from %s", path)
    return values


def _read_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_key, field_name in _ENV_KEYS.items():
        raw = environ.get(env_key)
        if raw is None or not raw.strip():
            continue
        raw = raw.strip()
        if field_name == "default_iterations":
            values[field_name] = coerce_int(raw)
        elif field_name == "verbose":
            values[field_name] = raw.lower() in _TRUTHY
        else:
            values[field_name] = raw
    return values
