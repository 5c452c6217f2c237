"""Prompt catalog for build and plan runs.

Loads prompts from ``templates.yaml`` (next to this module) and merges the
optional user override file ``~/.specloop/prompt_overrides.yaml`` on top.
"""

from __future__ import annotations

import logging
from pathlib import Path
from string import Template
from typing import Any

import yaml

from specloop.agent_signals import COMPLETION_MARKER
from specloop.schemas import SpecRef

logger = logging.getLogger(__name__)

_BUILTIN_YAML = Path(__file__).resolve().parent / "templates.yaml"
_USER_OVERRIDE = Path.home() / ".specloop" / "prompt_overrides.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, returning an empty dict on failure."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to load %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping at the top level", path)
        return {}
    return data


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (override wins)."""
    merged = dict(base)
    for k, v in override.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


class PromptCatalog:
    """Serves the rendered build and plan prompts.

    Usage::

        catalog = PromptCatalog()
        prompt = catalog.build(spec)
    """

    def __init__(
        self,
        extra_path: Path | None = None,
        *,
        user_override: Path | None = _USER_OVERRIDE,
    ) -> None:
        self._data = _load_yaml(_BUILTIN_YAML)
        for path in (user_override, extra_path):
            if path is not None and path.exists():
                overrides = _load_yaml(path)
                if overrides:
                    self._data = _deep_merge(self._data, overrides)
                    logger.info("Loaded prompt overrides from %s", path)

    def template(self, key: str) -> str:
        value = self._data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise KeyError(f"Prompt template '{key}' is not defined")
        return value

    def build(self, spec: SpecRef) -> str:
        """Prompt for one implementation iteration against *spec*."""
        return self._render("build", spec)

    def plan(self, spec: SpecRef) -> str:
        """Prompt for creating or refreshing the implementation plan."""
        plan_context = ""
        if spec.plan_file_exists():
            plan_context = self._substitute(self.template("plan_context"), spec)
        return self._render("plan", spec, plan_context=plan_context)

    def _render(self, key: str, spec: SpecRef, **extra: str) -> str:
        return self._substitute(self.template(key), spec, **extra).strip() + "\n"

    @staticmethod
    def _substitute(template: str, spec: SpecRef, **extra: str) -> str:
        return Template(template).safe_substitute(
            prd_file=str(spec.prd_file_path),
            plan_file=str(spec.plan_file_path),
            completion_marker=COMPLETION_MARKER,
            **extra,
        )
