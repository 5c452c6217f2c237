#!/usr/bin/env python3
"""Example: run a single Claude Code iteration and print the outcome.

Usage:
    python examples/run_once.py /path/to/repo "Add type hints to utils.py"
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running from the repo root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from specloop.agent_runner import AgentRunnerError
from specloop.claude_code import ClaudeCodeRunner
from specloop.session_log import LogSession


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: run_once.py <repo_path> <prompt>")
        sys.exit(1)

    repo_path = sys.argv[1]
    prompt = sys.argv[2]

    runner = ClaudeCodeRunner()
    print(f"Running Claude Code in {repo_path!r} ...")
    with LogSession.console() as session:
        try:
            outcome = runner.run(prompt, cwd=repo_path, session=session)
        except AgentRunnerError as exc:
            print(f"\nFailed: {exc}")
            sys.exit(1)

    print(f"\nComplete:      {outcome.is_complete}")
    print(f"Exit code:     {outcome.exit_code}")
    print(f"\nAssistant text:\n{outcome.output[:500]}")


if __name__ == "__main__":
    main()
