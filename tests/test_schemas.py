"""Unit tests for schemas module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from specloop.schemas import (
    AssistantEvent,
    IterationOutcome,
    LoopReport,
    LoopResult,
    SpecRef,
    TextBlock,
    ToolUseBlock,
)


class TestLoopResult:
    def test_exit_codes(self):
        assert LoopResult.FULLY_COMPLETE.exit_code == 0
        assert LoopResult.ERROR.exit_code == 1
        assert LoopResult.MAX_ITERATIONS_REACHED.exit_code == 2

    def test_states_are_distinct(self):
        assert len({result.exit_code for result in LoopResult}) == 3


class TestSpecRef:
    def test_from_folder_uses_conventional_names(self, tmp_path: Path):
        spec = SpecRef.from_folder(tmp_path / "2026-03-01-search")
        assert spec.name == "2026-03-01-search"
        assert spec.prd_file_path.name == "PRD.md"
        assert spec.plan_file_path.name == "IMPLEMENTATION_PLAN.md"
        assert spec.prd_file_path.parent == spec.folder_path

    def test_is_frozen(self, tmp_path: Path):
        spec = SpecRef.from_folder(tmp_path)
        with pytest.raises(ValidationError):
            spec.name = "other"

    def test_plan_file_exists(self, tmp_path: Path):
        spec = SpecRef.from_folder(tmp_path)
        assert not spec.plan_file_exists()
        spec.plan_file_path.write_text("- [ ] a\n", encoding="utf-8")
        assert spec.plan_file_exists()


class TestAssistantEvent:
    def test_text_blocks_skip_tool_uses(self):
        event = AssistantEvent(
            blocks=[TextBlock(text="a"), ToolUseBlock(name="Read"), TextBlock(text="b")]
        )
        assert event.text_blocks() == ["a", "b"]


class TestLoopReport:
    def test_defaults(self):
        report = LoopReport(result=LoopResult.ERROR)
        assert report.iterations_run == 0
        assert report.failure_reason is None
        assert report.started_at
        assert report.finished_at is None

    def test_json_round_trip_keeps_result(self):
        report = LoopReport(result=LoopResult.MAX_ITERATIONS_REACHED, iterations_run=3)
        restored = LoopReport.model_validate_json(report.model_dump_json())
        assert restored.result is LoopResult.MAX_ITERATIONS_REACHED


def test_iteration_outcome_defaults():
    outcome = IterationOutcome()
    assert outcome.output == ""
    assert outcome.is_complete is False
    assert outcome.exit_code == 0
