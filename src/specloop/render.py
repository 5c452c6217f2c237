"""Human-readable, colorized summaries of stream-json events."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from specloop.schemas import (
    AssistantEvent,
    CommandOutputResult,
    Event,
    FileReadResult,
    GenericToolResult,
    RunResultEvent,
    SystemEvent,
    TextBlock,
    ToolErrorResult,
    ToolResultEvent,
    ToolUseBlock,
)

RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"
CYAN = "\x1b[36m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
BLUE = "\x1b[34m"
MAGENTA = "\x1b[35m"
GRAY = "\x1b[90m"
WHITE = "\x1b[37m"

PREVIEW_CHARS = 300
ERROR_PREVIEW_CHARS = 200

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI color codes."""
    return _ANSI_RE.sub("", text)


def _preview(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def render_event(event: Event, *, verbose: bool = False) -> str | None:
    """Return a display line for *event*, or ``None`` when there is nothing to show."""
    if isinstance(event, SystemEvent):
        return _render_system(event)
    if isinstance(event, AssistantEvent):
        return _render_assistant(event)
    if isinstance(event, ToolResultEvent):
        return _render_tool_result(event, verbose=verbose)
    if isinstance(event, RunResultEvent):
        return _render_run_result(event)
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def _render_system(event: SystemEvent) -> str | None:
    if event.subtype != "init":
        return None
    return f"{CYAN}● Session started{RESET} {DIM}({event.model}){RESET}"


def format_tool_use(block: ToolUseBlock) -> str:
    formatted = f"{YELLOW}⚡ {block.name}{RESET}"
    tool_input = block.input
    if tool_input.get("command"):
        formatted += f"\n   {DIM}$ {tool_input['command']}{RESET}"
    elif tool_input.get("file_path"):
        formatted += f"\n   {DIM}{tool_input['file_path']}{RESET}"
    elif tool_input.get("pattern"):
        formatted += f"\n   {DIM}pattern: {tool_input['pattern']}{RESET}"
    return formatted


def _render_assistant(event: AssistantEvent) -> str | None:
    parts: list[str] = []
    for block in event.blocks:
        if isinstance(block, TextBlock):
            if block.text.strip():
                parts.append(f"{WHITE}{block.text}{RESET}")
        elif isinstance(block, ToolUseBlock):
            parts.append(format_tool_use(block))
    return "\n".join(parts) if parts else None


def _render_tool_result(event: ToolResultEvent, *, verbose: bool) -> str | None:
    payload = event.payload
    if payload is None:
        return None

    if isinstance(payload, FileReadResult):
        file_name = PurePosixPath(payload.path.replace("\\", "/")).name
        summary = f"→ {file_name} ({payload.num_lines} lines)"
        if verbose:
            return f"{GRAY}{summary}\n{_preview(payload.content, PREVIEW_CHARS)}{RESET}"
        return f"{GRAY}{summary}{RESET}"

    if isinstance(payload, CommandOutputResult):
        output = payload.stdout or payload.stderr or ""
        if not output.strip():
            return f"{GRAY}→ (no output){RESET}"
        if verbose:
            return f"{GRAY}→ {_preview(output, PREVIEW_CHARS)}{RESET}"
        lines = len(output.strip().split("\n"))
        return f"{GRAY}→ ({lines} line{'s' if lines > 1 else ''}){RESET}"

    if isinstance(payload, ToolErrorResult):
        return f"{MAGENTA}✗ {_preview(payload.content, ERROR_PREVIEW_CHARS)}{RESET}"

    if isinstance(payload, GenericToolResult):
        if verbose and payload.type_tag:
            return f"{GRAY}→ ({payload.type_tag}){RESET}"
        return None

    raise TypeError(f"Unsupported tool result payload: {type(payload).__name__}")


def _render_run_result(event: RunResultEvent) -> str:
    status = f"{MAGENTA}✗ Failed" if event.is_error else f"{GREEN}✓ Complete"
    cost = ""
    if event.total_cost_usd:
        cost = f" {DIM}(${event.total_cost_usd:.4f}){RESET}"
    duration = ""
    if event.duration_ms:
        duration = f" {DIM}({event.duration_ms / 1000:.1f}s){RESET}"
    return f"\n{status}{RESET}{cost}{duration}"
