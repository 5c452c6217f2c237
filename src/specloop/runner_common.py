"""Shared helpers for agent subprocess execution."""

from __future__ import annotations

import hashlib
import logging
import math
import os
import queue
import shutil
import subprocess
import threading
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"


def resolve_binary(name: str) -> str:
    """Resolve a binary name to a full executable path when possible."""
    expanded = os.path.expandvars(os.path.expanduser(str(name or "").strip()))
    if len(expanded) >= 2 and expanded[0] == expanded[-1] and expanded[0] in {"'", '"'}:
        # Accept copy/paste paths wrapped in shell quotes.
        expanded = expanded[1:-1].strip()
    if not expanded:
        return ""
    resolved = shutil.which(expanded)
    if resolved:
        return resolved
    return expanded


def coerce_int(value: Any) -> int:
    """Best-effort integer coercion for loosely typed CLI payloads."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return int(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return 0
        try:
            return int(cleaned)
        except ValueError:
            try:
                return int(float(cleaned))
            except (TypeError, ValueError, OverflowError):
                return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def prompt_metadata(prompt: str) -> dict[str, Any]:
    """Loggable facts about a prompt without its content."""
    text = prompt or ""
    return {
        "length_chars": len(text),
        "sha256": hashlib.sha256(text.encode("utf-8", errors="replace")).hexdigest()[:16],
    }


def stream_process_lines(
    *,
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None,
    on_stdout_line: Callable[[str], None],
    on_stderr_line: Callable[[str], None],
    process_name: str,
) -> int:
    """Run *cmd*, hand each output line to a callback, and return the exit code.

    stdout and stderr are read by two pump threads feeding one queue; the
    callbacks run on the calling thread in arrival order. Each stream keeps
    its own line order, with no ordering between the two. The child inherits
    this process's stdin. ``OSError`` from launching the process propagates.
    """
    proc = subprocess.Popen(
        cmd,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=None,
        text=True,
        encoding="utf-8",
        errors="replace",
        env=env,
    )
    if proc.stdout is None or proc.stderr is None:
        raise RuntimeError(f"{process_name} subprocess pipes are unexpectedly unavailable")

    stream_queue: queue.Queue[tuple[str, str | object]] = queue.Queue()
    done_sentinel = object()

    def _pump_stream(stream_name: str, stream: Any) -> None:
        try:
            for line in stream:
                stream_queue.put((stream_name, line.rstrip("\n\r")))
        finally:
            stream_queue.put((stream_name, done_sentinel))

    stdout_thread = threading.Thread(target=_pump_stream, args=(STDOUT, proc.stdout), daemon=True)
    stderr_thread = threading.Thread(target=_pump_stream, args=(STDERR, proc.stderr), daemon=True)
    stdout_thread.start()
    stderr_thread.start()

    closed_streams: set[str] = set()
    try:
        while len(closed_streams) < 2:
            stream_name, payload = stream_queue.get()
            if payload is done_sentinel:
                closed_streams.add(stream_name)
                continue
            line = str(payload)
            if stream_name == STDOUT:
                on_stdout_line(line)
            else:
                on_stderr_line(line)

        _wait_for_process(proc)
        return proc.returncode if proc.returncode is not None else -1
    finally:
        if proc.poll() is None:
            _terminate_process_with_fallback(proc, process_name=process_name)
        stdout_thread.join(timeout=1.0)
        stderr_thread.join(timeout=1.0)
        if not proc.stdout.closed:
            proc.stdout.close()
        if not proc.stderr.closed:
            proc.stderr.close()


def _wait_for_process(proc: subprocess.Popen[str]) -> None:
    """Wait for child exit once its pipes are closed."""
    try:
        proc.wait(timeout=5.0)
    except subprocess.TimeoutExpired:
        # Pipes closed but the process lingers (e.g. a detached grandchild held them).
        proc.wait()


def _terminate_process_with_fallback(
    proc: subprocess.Popen[str],
    *,
    process_name: str,
    terminate_timeout_seconds: float = 1.5,
) -> None:
    """Request graceful terminate first, then force-kill if still alive."""
    if proc.poll() is not None:
        return

    with suppress(OSError):
        proc.terminate()
    try:
        proc.wait(timeout=max(0.1, float(terminate_timeout_seconds)))
        return
    except subprocess.TimeoutExpired:
        logger.warning("%s did not exit after terminate; forcing kill.", process_name)

    with suppress(OSError):
        proc.kill()
    try:
        proc.wait(timeout=5.0)
    except subprocess.TimeoutExpired:  # pragma: no cover - extreme edge case
        logger.warning("%s ignored kill.", process_name)
