"""Git helpers for creating and removing isolated per-spec worktrees."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "ralph/"

_APP_URL_RE = re.compile(r"^(APP_URL\s*=\s*)(https?://)([^:\s/]+)(.*)$", re.MULTILINE)


class GitError(RuntimeError):
    """Raised when a git command fails unexpectedly."""


class UncommittedChangesError(GitError):
    """The source checkout has uncommitted changes."""


def _run_git(
    *args: str,
    cwd: Path,
    check: bool = True,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the CompletedProcess."""
    cmd = ["git", *args]
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GitError(f"`git {' '.join(args)}` could not run: {exc}") from exc
    if check and result.returncode != 0:
        raise GitError(
            f"`git {' '.join(args)}` failed (rc={result.returncode}): {result.stderr.strip()}"
        )
    return result


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def status_porcelain(repo: str | Path) -> str:
    return _run_git("status", "--porcelain", cwd=Path(repo)).stdout.strip()


def is_clean(repo: str | Path) -> bool:
    """Return True when the working tree has no pending changes."""
    return status_porcelain(repo) == ""


def worktree_path(repo: str | Path, spec_name: str) -> Path:
    """Sibling directory ``<repo>-<spec>`` next to the repository."""
    repo_path = Path(repo).resolve()
    return repo_path.parent / f"{repo_path.name}-{spec_name}"


def branch_name(spec_name: str) -> str:
    return f"{BRANCH_PREFIX}{spec_name}"


# ---------------------------------------------------------------------------
# Worktree creation
# ---------------------------------------------------------------------------


def create_worktree(
    repo: str | Path,
    spec_name: str,
    *,
    setup_commands: Sequence[str] = (),
) -> Path:
    """Create (or reuse) the worktree for *spec_name* and prepare it.

    Refuses to run with uncommitted changes in *repo*. A new worktree gets a
    ``ralph/<spec>`` branch; an existing worktree directory is reused as-is.
    The ``.env`` file is copied on every call and setup commands run
    afterwards.
    """
    repo_path = Path(repo).resolve()
    if not is_clean(repo_path):
        raise UncommittedChangesError(
            "Cannot create worktree: you have uncommitted changes. "
            "Please commit or stash them first."
        )

    target = worktree_path(repo_path, spec_name)
    if target.exists():
        logger.info("Worktree already exists at %s; reusing it", target)
    else:
        _run_git("worktree", "add", "-b", branch_name(spec_name), str(target), cwd=repo_path)
        logger.info("Created worktree %s on branch %s", target, branch_name(spec_name))

    copy_env_file(repo_path, target, spec_name)
    run_setup_commands(target, setup_commands)
    return target


def rewrite_app_url(contents: str, spec_name: str) -> str:
    """Give the worktree its own host: ``myapp.test`` becomes ``myapp-<spec>.test``."""

    def _replace(match: re.Match[str]) -> str:
        prefix, scheme, host, rest = match.groups()
        stem, dot, tld = host.rpartition(".")
        new_host = f"{stem}-{spec_name}{dot}{tld}" if dot else f"{host}-{spec_name}"
        return f"{prefix}{scheme}{new_host}{rest}"

    return _APP_URL_RE.sub(_replace, contents)


def copy_env_file(source: Path, worktree: Path, spec_name: str) -> bool:
    """Copy ``.env`` into the worktree; return False when there is none."""
    source_env = source / ".env"
    if not source_env.is_file():
        logger.debug("No .env in %s; skipping copy", source)
        return False
    contents = source_env.read_text(encoding="utf-8")
    (worktree / ".env").write_text(rewrite_app_url(contents, spec_name), encoding="utf-8")
    return True


def run_setup_commands(worktree: Path, commands: Sequence[str]) -> list[str]:
    """Run shell setup commands inside the worktree; return those that failed."""
    failed: list[str] = []
    for command in commands:
        command = (command or "").strip()
        if not command:
            continue
        logger.info("Worktree setup: %s", command)
        try:
            result = subprocess.run(command, cwd=worktree, shell=True, check=False)
        except OSError as exc:
            logger.warning("Setup command %r could not start: %s", command, exc)
            failed.append(command)
            continue
        if result.returncode != 0:
            logger.warning("Setup command %r exited with %d", command, result.returncode)
            failed.append(command)
    return failed


# ---------------------------------------------------------------------------
# Worktree teardown
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WorktreeInfo:
    """One entry of ``git worktree list --porcelain``."""

    path: Path
    branch: str = ""
    bare: bool = False


def parse_worktree_list(output: str) -> list[WorktreeInfo]:
    """Parse porcelain worktree records (blank-line separated) in listed order."""
    worktrees: list[WorktreeInfo] = []
    current: dict[str, object] = {}

    def _flush() -> None:
        if "path" in current:
            worktrees.append(
                WorktreeInfo(
                    path=Path(str(current["path"])),
                    branch=str(current.get("branch", "")),
                    bare=bool(current.get("bare", False)),
                )
            )
        current.clear()

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            _flush()
        elif line.startswith("worktree "):
            current["path"] = line[len("worktree ") :]
        elif line.startswith("branch "):
            current["branch"] = line[len("branch ") :].removeprefix("refs/heads/")
        elif line == "detached":
            current["branch"] = "detached"
        elif line == "bare":
            current["bare"] = True
    _flush()
    return worktrees


def list_worktrees(repo: str | Path) -> list[WorktreeInfo]:
    """Return the linked worktrees of *repo*; git always lists the main one first."""
    result = _run_git("worktree", "list", "--porcelain", cwd=Path(repo))
    return parse_worktree_list(result.stdout)[1:]


def remove_worktrees(repo: str | Path, paths: Sequence[str | Path]) -> list[Path]:
    """Force-remove each worktree, prune stale metadata, and return the failures."""
    repo_path = Path(repo)
    failed: list[Path] = []
    for path in paths:
        target = Path(path)
        result = _run_git("worktree", "remove", "--force", str(target), cwd=repo_path, check=False)
        if result.returncode != 0:
            logger.warning("Could not remove worktree %s: %s", target, result.stderr.strip())
            failed.append(target)
        else:
            logger.info("Removed worktree %s", target)
    _run_git("worktree", "prune", cwd=repo_path)
    return failed
