"""Decode Claude Code ``stream-json`` output lines into typed events.

Claude Code's ``--output-format stream-json`` mode emits one JSON object per
line::

    {"type": "system", "subtype": "init", "model": "..."}
    {"type": "assistant", "message": {"content": [...]}}
    {"type": "user", "message": {"content": [...]}, "tool_use_result": {...}}
    {"type": "result", "is_error": false, "total_cost_usd": 0.12, "duration_ms": 5400}

Anything else (plain diagnostics, truncated JSON, unknown object types) is
returned as an :class:`OpaqueLine` so the caller can log it untouched.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from pydantic import ValidationError

from specloop.runner_common import coerce_int
from specloop.schemas import (
    AssistantEvent,
    CommandOutputResult,
    Event,
    FileReadResult,
    GenericToolResult,
    OpaqueLine,
    RunResultEvent,
    SystemEvent,
    TextBlock,
    ToolErrorResult,
    ToolResultEvent,
    ToolResultPayload,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)


def decode_line(line: str) -> Event | OpaqueLine:
    """Parse one stdout line; never raises."""
    try:
        data = json.loads(line)
    except (TypeError, ValueError, RecursionError):
        return OpaqueLine(line=str(line))

    if not isinstance(data, dict):
        return OpaqueLine(line=line)

    try:
        event = _decode_object(data)
    except (ValidationError, TypeError, ValueError, AttributeError, RecursionError) as exc:
        logger.debug("Unrecognized stream-json payload (%s): %s", exc, line[:200])
        return OpaqueLine(line=line)

    if event is None:
        return OpaqueLine(line=line)
    return event


def is_structured(decoded: Event | OpaqueLine) -> bool:
    """Return True when *decoded* is a protocol event rather than raw text."""
    return not isinstance(decoded, OpaqueLine)


def _decode_object(data: dict[str, Any]) -> Event | None:
    etype = data.get("type")
    if etype == "system":
        return SystemEvent(
            subtype=_as_text(data.get("subtype")),
            model=_as_text(data.get("model")),
        )
    if etype == "assistant":
        return AssistantEvent(blocks=_decode_blocks(data.get("message")))
    if etype == "user":
        return ToolResultEvent(payload=_decode_tool_result(data))
    if etype == "result":
        return RunResultEvent(
            is_error=bool(data.get("is_error", False)),
            total_cost_usd=_as_number(data.get("total_cost_usd")),
            duration_ms=_as_number(data.get("duration_ms")),
        )
    return None


def _decode_blocks(message: Any) -> list[TextBlock | ToolUseBlock]:
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [TextBlock(text=content)]
    if not isinstance(content, list):
        return []

    blocks: list[TextBlock | ToolUseBlock] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            blocks.append(TextBlock(text=_as_text(block.get("text"))))
        elif block_type == "tool_use":
            tool_input = block.get("input")
            blocks.append(
                ToolUseBlock(
                    name=_as_text(block.get("name")) or "unknown",
                    input=tool_input if isinstance(tool_input, dict) else {},
                )
            )
    return blocks


def _decode_tool_result(data: dict[str, Any]) -> ToolResultPayload | None:
    """Classify a tool result by priority: file read, command output, error, other."""
    result = data.get("tool_use_result")
    if not result:
        return None

    if isinstance(result, dict):
        file_info = result.get("file")
        if isinstance(file_info, dict):
            return FileReadResult(
                path=_as_text(file_info.get("filePath")),
                num_lines=max(0, coerce_int(file_info.get("numLines"))),
                content=_as_text(file_info.get("content")),
            )
        if "stdout" in result:
            return CommandOutputResult(
                stdout=_as_text(result.get("stdout")),
                stderr=_as_text(result.get("stderr")),
            )

    first_block = _first_content_block(data.get("message"))
    if first_block is not None and first_block.get("is_error"):
        return ToolErrorResult(content=_flatten_content(first_block.get("content")))

    type_tag = result.get("type") if isinstance(result, dict) else None
    return GenericToolResult(type_tag=type_tag if isinstance(type_tag, str) else None)


def _first_content_block(message: Any) -> dict[str, Any] | None:
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        return content[0]
    return None


def _flatten_content(content: Any) -> str:
    """Tool error content is either a string or a list of text blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    if content is None:
        return ""
    return json.dumps(content, ensure_ascii=False)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number
