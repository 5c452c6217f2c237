"""Spec loop controller.

:class:`SpecLoop` drives repeated agent invocations with the same prompt until
the agent prints the completion marker, an iteration fails, or the iteration
budget runs out.
"""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import IO

from specloop.agent_runner import AgentRunner
from specloop.claude_code import ClaudeCodeRunner
from specloop.render import BLUE, BOLD, CYAN, DIM, GREEN, MAGENTA, RESET, YELLOW
from specloop.schemas import LoopReport, LoopResult, SpecRef
from specloop.session_log import LogSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS: int = 30
"""Iteration budget used when the caller does not pass one."""

LOOP_TITLE = "Spec Loop"


class SpecLoop:
    """Runs one loop invocation against a spec.

    Parameters
    ----------
    spec:
        The resolved spec; used to place logs and label output. ``None`` runs
        without file logging.
    prompt:
        Fully rendered prompt, reused verbatim for every iteration.
    working_directory:
        Directory the agent runs in (repository root or a worktree).
    max_iterations:
        Iteration budget, at least 1.
    runner:
        An :class:`AgentRunner` (a :class:`ClaudeCodeRunner` if omitted).
    verbose:
        Show tool-result previews.
    """

    def __init__(
        self,
        spec: SpecRef | None,
        prompt: str,
        working_directory: str | Path,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        runner: AgentRunner | None = None,
        verbose: bool = False,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> None:
        try:
            parsed_max = int(max_iterations)
        except (TypeError, ValueError) as exc:
            raise ValueError("max_iterations must be a positive integer") from exc
        if parsed_max < 1:
            raise ValueError("max_iterations must be >= 1")

        self.spec = spec
        self.prompt = prompt
        self.working_directory = Path(working_directory).resolve()
        self.max_iterations = parsed_max
        self.runner = runner or ClaudeCodeRunner()
        self.verbose = verbose
        self._stdout = stdout
        self._stderr = stderr

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def run(self) -> LoopReport:
        """Execute the loop and return its report."""
        session = self._open_session()
        report = LoopReport(
            result=LoopResult.MAX_ITERATIONS_REACHED,
            max_iterations=self.max_iterations,
            transcript_path=session.transcript_path,
            journal_path=session.journal_path,
        )
        logger.info(
            "Starting spec loop: spec=%s, max_iterations=%d, cwd=%s",
            self.spec.name if self.spec else "(none)",
            self.max_iterations,
            self.working_directory,
        )

        try:
            self._write_banner(session)
            for iteration in range(1, self.max_iterations + 1):
                report.iterations_run = iteration
                session.write_line(
                    f"\n{BOLD}{BLUE}━━━ Iteration {iteration}/{self.max_iterations} ━━━{RESET}\n"
                )
                try:
                    outcome = self.runner.run(
                        self.prompt,
                        cwd=self.working_directory,
                        session=session,
                        verbose=self.verbose,
                    )
                except Exception as exc:
                    report.result = LoopResult.ERROR
                    report.failure_reason = str(exc) or type(exc).__name__
                    logger.error("Iteration %d failed: %s", iteration, report.failure_reason)
                    session.write_error(
                        f"{MAGENTA}Error in iteration {iteration}: {report.failure_reason}{RESET}"
                    )
                    break

                if outcome.is_complete:
                    report.result = LoopResult.FULLY_COMPLETE
                    plural = "s" if iteration > 1 else ""
                    session.write_line(
                        f"\n{GREEN}{BOLD}🎉 Spec complete after {iteration} iteration{plural}.{RESET}"
                    )
                    break
            else:
                report.result = LoopResult.MAX_ITERATIONS_REACHED
                logger.warning(
                    "Iteration budget of %d exhausted without completion", self.max_iterations
                )
                session.write_line(
                    f"\n{YELLOW}⚠ Completed {self.max_iterations} iterations "
                    f"without spec completion.{RESET}"
                )
        finally:
            session.close()
            report.finished_at = dt.datetime.now(dt.timezone.utc).isoformat()

        logger.info(
            "Loop finished: %s (%d iteration(s))", report.result.name, report.iterations_run
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_session(self) -> LogSession:
        session = None
        if self.spec is not None:
            session = LogSession.open(
                self.spec.folder_path,
                target=self.spec.folder_path,
                stdout=self._stdout,
                stderr=self._stderr,
            )
        if session is None:
            session = LogSession.console(stdout=self._stdout, stderr=self._stderr)
        return session

    def _write_banner(self, session: LogSession) -> None:
        mode = f" {DIM}(verbose){RESET}" if self.verbose else ""
        name = self.spec.name if self.spec else self.working_directory.name
        session.write_line(f"{BOLD}{CYAN}🔄 {LOOP_TITLE}{RESET}{mode}")
        session.write_line(f"{DIM}Spec: {name} | Max iterations: {self.max_iterations}{RESET}")
        if session.transcript_path is not None:
            session.write_line(f"{DIM}Log file: {session.transcript_path}{RESET}")
        session.write_line(f"{DIM}{'─' * 50}{RESET}")


def run_loop(
    spec: SpecRef | None,
    prompt: str,
    working_directory: str | Path,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    runner: AgentRunner | None = None,
    verbose: bool = False,
) -> LoopResult:
    """Run a loop invocation and return only its terminal state."""
    loop = SpecLoop(
        spec,
        prompt,
        working_directory,
        max_iterations=max_iterations,
        runner=runner,
        verbose=verbose,
    )
    return loop.run().result
