"""Shared pytest configuration, marker registration, and spec/stub fixtures."""

from __future__ import annotations

import json
import os
import stat
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from specloop.schemas import SpecRef


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast isolated unit tests")
    config.addinivalue_line("markers", "integration: filesystem/subprocess integration tests")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Run fast unit tests first and subprocess integration tests last."""

    def sort_key(item: pytest.Item) -> tuple[int, str]:
        if item.get_closest_marker("integration"):
            return (1, item.nodeid)
        return (0, item.nodeid)

    items.sort(key=sort_key)


def assistant_line(*texts: str) -> str:
    """One stream-json assistant event carrying the given text blocks."""
    return json.dumps(
        {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": text} for text in texts]},
        }
    )


@pytest.fixture
def make_spec(tmp_path: Path) -> Callable[..., SpecRef]:
    """Create a spec folder with a PRD (and optionally a plan) under ``tmp_path``."""

    def _make(name: str = "demo-spec", *, with_plan: bool = True) -> SpecRef:
        folder = tmp_path / "specs" / "backlog" / name
        folder.mkdir(parents=True, exist_ok=True)
        (folder / "PRD.md").write_text("# PRD\n", encoding="utf-8")
        if with_plan:
            (folder / "IMPLEMENTATION_PLAN.md").write_text("- [ ] task\n", encoding="utf-8")
        return SpecRef.from_folder(folder)

    return _make


@pytest.fixture
def make_stub_cli(tmp_path: Path) -> Callable[[str, str], str]:
    """Create an executable wrapper that runs a Python stub script."""

    def _make(name: str, script_body: str) -> str:
        impl = tmp_path / f"{name}_impl.py"
        impl.write_text(textwrap.dedent(script_body), encoding="utf-8")

        if os.name == "nt":
            wrapper = tmp_path / f"{name}.cmd"
            wrapper.write_text(
                f'@echo off\r\n"{sys.executable}" "{impl}" %*\r\n',
                encoding="utf-8",
            )
            return str(wrapper)

        wrapper = tmp_path / name
        wrapper.write_text(
            f'#!/usr/bin/env sh\nexec "{sys.executable}" "{impl}" "$@"\n',
            encoding="utf-8",
        )
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IEXEC)
        return str(wrapper)

    return _make
