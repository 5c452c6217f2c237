#!/usr/bin/env python3
"""Example: drive Claude Code through a spec folder until it signals completion.

Usage:
    python examples/run_loop.py /path/to/specs/backlog/my-spec /path/to/repo --iterations 5
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from specloop.claude_code import ClaudeCodeRunner
from specloop.loop import SpecLoop
from specloop.prompts import PromptCatalog
from specloop.schemas import SpecRef


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the spec loop against one spec folder.")
    parser.add_argument("spec_folder", help="Folder containing PRD.md and IMPLEMENTATION_PLAN.md")
    parser.add_argument("repo", help="Repository the agent works in")
    parser.add_argument("--iterations", type=int, default=5, help="Iteration budget (default 5)")
    parser.add_argument("--model", default="", help="Claude model override")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )

    spec = SpecRef.from_folder(args.spec_folder)
    loop = SpecLoop(
        spec,
        PromptCatalog().build(spec),
        args.repo,
        max_iterations=args.iterations,
        runner=ClaudeCodeRunner(model=args.model),
        verbose=args.verbose,
    )

    report = loop.run()

    print(f"\nDone! {report.iterations_run} iteration(s), result: {report.result.name}")
    if report.transcript_path:
        print(f"Transcript: {report.transcript_path}")
    sys.exit(report.result.exit_code)


if __name__ == "__main__":
    main()
