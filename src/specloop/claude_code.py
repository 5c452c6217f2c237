"""Interface to Anthropic Claude Code CLI (``claude``)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from specloop.agent_runner import AgentRunner, IterationFailed, SpawnError
from specloop.agent_signals import CompletionTracker
from specloop.events import decode_line, is_structured
from specloop.render import render_event
from specloop.runner_common import prompt_metadata, resolve_binary, stream_process_lines
from specloop.schemas import AssistantEvent, IterationOutcome
from specloop.session_log import LogSession

logger = logging.getLogger(__name__)


class ClaudeCodeRunner(AgentRunner):
    """Spawn ``claude -p`` once per iteration and stream its output.

    The agent runs with edits auto-accepted and ``stream-json`` output::

        claude --permission-mode acceptEdits -p "prompt" --verbose --output-format stream-json

    Parameters
    ----------
    claude_binary:
        Path or name of the Claude Code CLI binary.
    model:
        Override the model Claude Code uses (``--model``). Leave blank for
        the default.
    env_overrides:
        Extra environment variables forwarded to the child process.
    """

    name = "Claude Code"

    def __init__(
        self,
        claude_binary: str = "claude",
        model: str = "",
        env_overrides: dict[str, str] | None = None,
    ) -> None:
        self.claude_binary = claude_binary
        self.model = (model or "").strip()
        self.env_overrides = env_overrides or {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        prompt: str,
        *,
        cwd: str | Path,
        session: LogSession,
        verbose: bool = False,
    ) -> IterationOutcome:
        """Execute a single Claude Code invocation."""
        cwd = Path(cwd).resolve()
        cmd = self.build_command(prompt)
        meta = prompt_metadata(prompt)
        logger.info(
            "Running Claude Code CLI (cwd=%s, prompt_len=%s, prompt_sha256=%s)",
            cwd,
            meta["length_chars"],
            meta["sha256"],
        )

        tracker = CompletionTracker()

        def _on_stdout(line: str) -> None:
            self._handle_stdout_line(line, session=session, tracker=tracker, verbose=verbose)

        def _on_stderr(line: str) -> None:
            session.write_stderr(line)

        try:
            exit_code = stream_process_lines(
                cmd=cmd,
                cwd=cwd,
                env={**os.environ, **self.env_overrides},
                on_stdout_line=_on_stdout,
                on_stderr_line=_on_stderr,
                process_name=self.name,
            )
        except OSError as exc:
            logger.error("Failed to launch %s: %s", cmd[0], exc)
            raise SpawnError(f"Failed to start {cmd[0]}: {exc}") from exc

        if exit_code != 0:
            raise IterationFailed(exit_code, f"Claude exited with code {exit_code}")

        return IterationOutcome(
            output=tracker.text,
            is_complete=tracker.is_complete,
            exit_code=exit_code,
        )

    # ------------------------------------------------------------------
    # Command building
    # ------------------------------------------------------------------

    def build_command(self, prompt: str) -> list[str]:
        cmd = [
            resolve_binary(self.claude_binary) or "claude",
            "--permission-mode",
            "acceptEdits",
            "-p",
            prompt,
            "--verbose",
            "--output-format",
            "stream-json",
        ]
        if self.model:
            cmd.extend(["--model", self.model])
        return cmd

    # ------------------------------------------------------------------
    # Stream handling
    # ------------------------------------------------------------------

    @staticmethod
    def _handle_stdout_line(
        line: str,
        *,
        session: LogSession,
        tracker: CompletionTracker,
        verbose: bool,
    ) -> None:
        if not line.strip():
            return

        decoded = decode_line(line)
        if not is_structured(decoded):
            logger.debug("Non-JSON line from claude: %s", line[:200])
            session.write_line(line)
            return

        session.write_raw(line)
        formatted = render_event(decoded, verbose=verbose)
        if formatted:
            session.write_line(formatted)

        if isinstance(decoded, AssistantEvent):
            for text in decoded.text_blocks():
                tracker.feed(text)
