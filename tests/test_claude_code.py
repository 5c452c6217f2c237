"""Unit and stub-CLI tests for the Claude Code runner."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from specloop.agent_runner import IterationFailed, SpawnError
from specloop.agent_signals import COMPLETION_MARKER, CompletionTracker
from specloop.claude_code import ClaudeCodeRunner
from specloop.session_log import LogSession

from conftest import assistant_line


class TestClaudeCodeRunnerBuildCommand:
    def test_basic(self):
        runner = ClaudeCodeRunner(claude_binary="definitely-not-installed-claude")
        cmd = runner.build_command("hello")
        assert cmd == [
            "definitely-not-installed-claude",
            "--permission-mode",
            "acceptEdits",
            "-p",
            "hello",
            "--verbose",
            "--output-format",
            "stream-json",
        ]

    def test_blank_binary_falls_back_to_claude(self):
        cmd = ClaudeCodeRunner(claude_binary="  ").build_command("x")
        assert Path(cmd[0]).name.lower().startswith("claude")

    def test_prompt_is_passed_verbatim(self):
        prompt = "line one\n  line two with 'quotes' and $VARS"
        cmd = ClaudeCodeRunner().build_command(prompt)
        assert cmd[cmd.index("-p") + 1] == prompt

    def test_model_is_trimmed_and_appended(self):
        cmd = ClaudeCodeRunner(model="  claude-sonnet  ").build_command("hello")
        assert cmd[-2:] == ["--model", "claude-sonnet"]

    def test_no_model_flag_by_default(self):
        assert "--model" not in ClaudeCodeRunner().build_command("hello")


class TestHandleStdoutLine:
    def _session(self, tmp_path: Path) -> tuple[LogSession, io.StringIO]:
        out = io.StringIO()
        session = LogSession.open(tmp_path, stdout=out, stderr=io.StringIO())
        assert session is not None
        return session, out

    def test_structured_line_is_journaled_and_rendered(self, tmp_path: Path):
        session, out = self._session(tmp_path)
        tracker = CompletionTracker()
        line = assistant_line("Hello there")

        ClaudeCodeRunner._handle_stdout_line(line, session=session, tracker=tracker, verbose=False)
        session.close()

        assert "Hello there" in out.getvalue()
        assert session.journal_path.read_text(encoding="utf-8") == line + "\n"
        assert tracker.text == "Hello there"

    def test_opaque_line_is_shown_but_not_journaled(self, tmp_path: Path):
        session, out = self._session(tmp_path)
        tracker = CompletionTracker()

        ClaudeCodeRunner._handle_stdout_line(
            "warming up...", session=session, tracker=tracker, verbose=False
        )
        session.close()

        assert out.getvalue() == "warming up...\n"
        assert session.journal_path.read_text(encoding="utf-8") == ""
        assert "warming up...\n" in session.transcript_path.read_text(encoding="utf-8")

    def test_blank_lines_are_ignored(self, tmp_path: Path):
        session, out = self._session(tmp_path)
        ClaudeCodeRunner._handle_stdout_line(
            "   ", session=session, tracker=CompletionTracker(), verbose=False
        )
        session.close()
        assert out.getvalue() == ""

    def test_structured_event_with_nothing_to_render_is_still_journaled(self, tmp_path: Path):
        session, out = self._session(tmp_path)
        line = json.dumps({"type": "system", "subtype": "hook_started"})

        ClaudeCodeRunner._handle_stdout_line(
            line, session=session, tracker=CompletionTracker(), verbose=False
        )
        session.close()

        assert out.getvalue() == ""
        assert session.journal_path.read_text(encoding="utf-8") == line + "\n"

    def test_marker_in_tool_output_does_not_complete(self, tmp_path: Path):
        session, _ = self._session(tmp_path)
        tracker = CompletionTracker()
        line = json.dumps(
            {"type": "user", "tool_use_result": {"stdout": COMPLETION_MARKER, "stderr": ""}}
        )

        ClaudeCodeRunner._handle_stdout_line(line, session=session, tracker=tracker, verbose=True)
        session.close()

        assert not tracker.is_complete


CLAUDE_STUB_SCRIPT = """
import json
import os
import sys
from pathlib import Path


def emit(obj):
    print(json.dumps(obj), flush=True)


Path(os.environ["STUB_ARGS_FILE"]).write_text(json.dumps(sys.argv[1:]), encoding="utf-8")
mode = os.environ.get("STUB_MODE", "complete")

print("Claude CLI starting up", flush=True)
emit({"type": "system", "subtype": "init", "model": "stub-model"})
print("debug: not json", file=sys.stderr, flush=True)

if mode == "complete":
    emit({"type": "assistant", "message": {"content": [
        {"type": "text", "text": "All tasks done. <promise>COMP"},
        {"type": "text", "text": "LETE</promise>"},
    ]}})
    emit({"type": "result", "is_error": False, "total_cost_usd": 0.5, "duration_ms": 1200})
elif mode == "incomplete":
    emit({"type": "assistant", "message": {"content": [
        {"type": "tool_use", "name": "Bash", "input": {"command": "pytest"}},
    ]}})
    emit({"type": "user", "tool_use_result": {"stdout": "1 passed", "stderr": ""}})
    emit({"type": "result", "is_error": False})
elif mode == "mixed":
    for i in range(1, 4):
        print(f"noise {i}", flush=True)
        print(f"stderr {i}", file=sys.stderr, flush=True)
        emit({"type": "assistant", "message": {"content": [
            {"type": "text", "text": f"step {i}"},
        ]}})
    emit({"type": "assistant", "message": {"content": [
        {"type": "text", "text": "<promise>COMPLETE</promise>"},
    ]}})
    print("stderr 4", file=sys.stderr, flush=True)
    emit({"type": "result", "is_error": False, "duration_ms": 900})
elif mode == "fail":
    emit({"type": "assistant", "message": {"content": [
        {"type": "text", "text": "<promise>COMPLETE</promise>"},
    ]}})
    sys.exit(7)
"""


@pytest.mark.integration
class TestClaudeCodeRunnerStubCli:
    def _runner(self, make_stub_cli, tmp_path: Path, mode: str) -> ClaudeCodeRunner:
        binary = make_stub_cli("claude", CLAUDE_STUB_SCRIPT)
        return ClaudeCodeRunner(
            claude_binary=binary,
            env_overrides={
                "STUB_MODE": mode,
                "STUB_ARGS_FILE": str(tmp_path / "args.json"),
            },
        )

    def _session(self, tmp_path: Path) -> tuple[LogSession, io.StringIO, io.StringIO]:
        spec_folder = tmp_path / "spec"
        spec_folder.mkdir()
        out, err = io.StringIO(), io.StringIO()
        session = LogSession.open(spec_folder, stdout=out, stderr=err)
        assert session is not None
        return session, out, err

    def test_completion_marker_split_across_blocks(self, make_stub_cli, tmp_path: Path):
        runner = self._runner(make_stub_cli, tmp_path, "complete")
        session, out, err = self._session(tmp_path)

        outcome = runner.run("do the work", cwd=tmp_path, session=session)
        session.close()

        assert outcome.is_complete
        assert outcome.exit_code == 0
        assert COMPLETION_MARKER in outcome.output
        argv = json.loads((tmp_path / "args.json").read_text(encoding="utf-8"))
        assert argv == [
            "--permission-mode",
            "acceptEdits",
            "-p",
            "do the work",
            "--verbose",
            "--output-format",
            "stream-json",
        ]

        shown = out.getvalue()
        assert "Claude CLI starting up" in shown
        assert "Session started" in shown
        assert "$0.5000" in shown
        assert err.getvalue() == "debug: not json\n"

        journal = session.journal_path.read_text(encoding="utf-8").splitlines()
        assert len(journal) == 3
        assert all(json.loads(line)["type"] for line in journal)
        assert not any("starting up" in line for line in journal)

        transcript = session.transcript_path.read_text(encoding="utf-8")
        assert "Claude CLI starting up" in transcript
        assert "debug: not json" in transcript
        assert "\x1b[" not in transcript

    def test_incomplete_iteration(self, make_stub_cli, tmp_path: Path):
        runner = self._runner(make_stub_cli, tmp_path, "incomplete")
        session, out, _ = self._session(tmp_path)

        outcome = runner.run("prompt", cwd=tmp_path, session=session, verbose=True)
        session.close()

        assert not outcome.is_complete
        assert outcome.output == ""
        assert "$ pytest" in out.getvalue()
        assert "→ 1 passed" in out.getvalue()

    def test_nonzero_exit_raises_even_after_marker(self, make_stub_cli, tmp_path: Path):
        runner = self._runner(make_stub_cli, tmp_path, "fail")
        session, _, _ = self._session(tmp_path)

        with pytest.raises(IterationFailed) as excinfo:
            runner.run("prompt", cwd=tmp_path, session=session)
        session.close()

        assert excinfo.value.exit_code == 7
        assert "Claude exited with code 7" in str(excinfo.value)

    def test_missing_binary_raises_spawn_error(self, tmp_path: Path):
        runner = ClaudeCodeRunner(claude_binary=str(tmp_path / "no-such-claude"))
        session = LogSession.console(stdout=io.StringIO(), stderr=io.StringIO())

        with pytest.raises(SpawnError, match="Failed to start"):
            runner.run("prompt", cwd=tmp_path, session=session)

    def test_repeated_runs_are_deterministic(self, make_stub_cli, tmp_path: Path):
        runner = self._runner(make_stub_cli, tmp_path, "mixed")
        outcomes = []
        transcripts = []
        journals = []
        for attempt in range(2):
            folder = tmp_path / f"spec-{attempt}"
            folder.mkdir()
            session = LogSession.open(folder, stdout=io.StringIO(), stderr=io.StringIO())
            outcomes.append(runner.run("same prompt", cwd=tmp_path, session=session))
            session.close()
            transcripts.append(session.transcript_path.read_text(encoding="utf-8").splitlines())
            journals.append(session.journal_path.read_text(encoding="utf-8"))

        first, second = outcomes
        assert first.output == second.output == "step 1step 2step 3<promise>COMPLETE</promise>"
        assert first.is_complete and second.is_complete
        assert journals[0] == journals[1]
        assert len(journals[0].splitlines()) == 6

        stdout_order = [
            "Claude CLI starting up",
            "noise 1",
            "step 1",
            "noise 2",
            "step 2",
            "noise 3",
            "step 3",
        ]
        stderr_order = ["debug: not json", "stderr 1", "stderr 2", "stderr 3", "stderr 4"]
        for lines in transcripts:
            stdout_seen = [line for line in lines if line in stdout_order]
            stderr_seen = [line for line in lines if line in stderr_order]
            assert stdout_seen == stdout_order
            assert stderr_seen == stderr_order
