"""Abstract base class for single-iteration agent runners.

The loop controller only needs something that runs one prompt to completion
and reports an :class:`IterationOutcome`; tests substitute scripted runners.
"""

from __future__ import annotations

import abc
from pathlib import Path

from specloop.schemas import IterationOutcome
from specloop.session_log import LogSession


class AgentRunnerError(RuntimeError):
    """Base class for failures that end an iteration."""


class SpawnError(AgentRunnerError):
    """The agent binary could not be started."""


class IterationFailed(AgentRunnerError):
    """The agent ran but exited with a non-zero status."""

    def __init__(self, exit_code: int, message: str | None = None) -> None:
        self.exit_code = exit_code
        super().__init__(message or f"Agent exited with code {exit_code}")


class AgentRunner(abc.ABC):
    """Common interface for coding-agent CLI wrappers."""

    #: Human-readable name used in log output.
    name: str = "base"

    @abc.abstractmethod
    def run(
        self,
        prompt: str,
        *,
        cwd: str | Path,
        session: LogSession,
        verbose: bool = False,
    ) -> IterationOutcome:
        """Run one iteration and return its outcome.

        Parameters
        ----------
        prompt:
            Fully rendered prompt, passed verbatim.
        cwd:
            Working directory for the agent (repository or worktree).
        session:
            Log session receiving rendered output and raw events.
        verbose:
            Render tool-result previews.

        Raises
        ------
        SpawnError
            The agent process could not be launched.
        IterationFailed
            The agent process exited non-zero.
        """
