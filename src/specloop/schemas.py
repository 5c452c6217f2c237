"""Pydantic models for structured data throughout the loop runner."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

PRD_FILENAME = "PRD.md"
PLAN_FILENAME = "IMPLEMENTATION_PLAN.md"


def _utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------

class SpecRef(BaseModel):
    """A resolved spec folder and the files the agent works from."""

    model_config = ConfigDict(frozen=True)

    name: str
    folder_path: Path
    prd_file_path: Path
    plan_file_path: Path

    @classmethod
    def from_folder(cls, folder: str | Path) -> SpecRef:
        """Build a reference for *folder* using the conventional file names."""
        folder_path = Path(folder).resolve()
        return cls(
            name=folder_path.name,
            folder_path=folder_path,
            prd_file_path=folder_path / PRD_FILENAME,
            plan_file_path=folder_path / PLAN_FILENAME,
        )

    def plan_file_exists(self) -> bool:
        return self.plan_file_path.is_file()


# ---------------------------------------------------------------------------
# Claude Code stream-json events
# ---------------------------------------------------------------------------

class TextBlock(BaseModel):
    """Free text written by the assistant."""

    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the assistant."""

    type: Literal["tool_use"] = "tool_use"
    name: str = "unknown"
    input: dict[str, Any] = Field(default_factory=dict)


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock], Field(discriminator="type")]


class FileReadResult(BaseModel):
    kind: Literal["file_read"] = "file_read"
    path: str = ""
    num_lines: int = 0
    content: str = ""


class CommandOutputResult(BaseModel):
    kind: Literal["command_output"] = "command_output"
    stdout: str = ""
    stderr: str = ""


class ToolErrorResult(BaseModel):
    kind: Literal["error"] = "error"
    content: str = ""


class GenericToolResult(BaseModel):
    """Any other tool payload; only its type tag is kept."""

    kind: Literal["other"] = "other"
    type_tag: str | None = None


ToolResultPayload = Annotated[
    Union[FileReadResult, CommandOutputResult, ToolErrorResult, GenericToolResult],
    Field(discriminator="kind"),
]


class SystemEvent(BaseModel):
    """Session metadata; ``subtype == "init"`` opens a session."""

    kind: Literal["system"] = "system"
    subtype: str = ""
    model: str = ""


class AssistantEvent(BaseModel):
    """An assistant message made of ordered content blocks."""

    kind: Literal["assistant"] = "assistant"
    blocks: list[ContentBlock] = Field(default_factory=list)

    def text_blocks(self) -> list[str]:
        return [block.text for block in self.blocks if isinstance(block, TextBlock)]


class ToolResultEvent(BaseModel):
    """The outcome of a tool call, reported back to the assistant."""

    kind: Literal["tool_result"] = "tool_result"
    payload: ToolResultPayload | None = None


class RunResultEvent(BaseModel):
    """Final summary of one agent turn."""

    kind: Literal["result"] = "result"
    is_error: bool = False
    total_cost_usd: float | None = None
    duration_ms: float | None = None


Event = Annotated[
    Union[SystemEvent, AssistantEvent, ToolResultEvent, RunResultEvent],
    Field(discriminator="kind"),
]


class OpaqueLine(BaseModel):
    """A stdout line that is not a protocol event; kept verbatim."""

    kind: Literal["opaque"] = "opaque"
    line: str = ""


# ---------------------------------------------------------------------------
# Iteration / loop results
# ---------------------------------------------------------------------------

class IterationOutcome(BaseModel):
    """Result of a single agent invocation."""

    output: str = ""
    is_complete: bool = False
    exit_code: int = 0


class LoopResult(int, Enum):
    """Terminal state of a loop invocation; the value is the process exit code."""

    FULLY_COMPLETE = 0
    ERROR = 1
    MAX_ITERATIONS_REACHED = 2

    @property
    def exit_code(self) -> int:
        return int(self.value)


class LoopReport(BaseModel):
    """Summary of one loop invocation."""

    result: LoopResult
    iterations_run: int = 0
    max_iterations: int = 1
    failure_reason: str | None = None
    transcript_path: Path | None = None
    journal_path: Path | None = None
    started_at: str = Field(default_factory=_utc_now_iso)
    finished_at: str | None = None
