"""CLI entrypoint for specloop."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from specloop.claude_code import ClaudeCodeRunner
from specloop.config import ConfigError, Settings
from specloop.git_tools import (
    GitError,
    WorktreeInfo,
    create_worktree,
    list_worktrees,
    remove_worktrees,
    worktree_path,
)
from specloop.loop import run_loop
from specloop.prompts import PromptCatalog
from specloop.schemas import PLAN_FILENAME, LoopResult, SpecRef
from specloop.specs import FileSpecRepository, NoBacklogSpecsError, SpecError


def _load_dotenv() -> None:
    """Load the nearest ``.env`` walking up from the current directory."""
    env_file = find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file)


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the command-line parser for all supported commands."""
    p = argparse.ArgumentParser(
        prog="specloop",
        description="specloop - drive a coding agent through a spec until it is done.",
    )
    p.add_argument(
        "--root",
        type=str,
        default="",
        help="Project root containing the specs directory (default: current directory).",
    )
    p.add_argument(
        "--debug",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    sub = p.add_subparsers(dest="command")

    build_p = sub.add_parser("build", help="Work through a spec's implementation plan.")
    build_p.add_argument("spec", nargs="?", default="", help="Spec name (lists the backlog if omitted).")
    build_p.add_argument("--iterations", "-n", type=int, default=None, help="Iteration budget.")
    build_p.add_argument(
        "--create-worktree",
        action="store_true",
        help="Run in a git worktree next to the repository.",
    )
    build_p.add_argument("--verbose", "-v", action="store_true", help="Show tool output previews.")

    plan_p = sub.add_parser("plan", help="Create an implementation plan for a spec.")
    plan_p.add_argument("spec", nargs="?", default="", help="Spec name (lists the backlog if omitted).")
    plan_p.add_argument(
        "--force",
        action="store_true",
        help="Regenerate the implementation plan even if it exists.",
    )
    plan_p.add_argument(
        "--create-worktree",
        action="store_true",
        help="Run in a git worktree next to the repository.",
    )
    plan_p.add_argument("--verbose", "-v", action="store_true", help="Show tool output previews.")

    loop_p = sub.add_parser("loop", help="Run the agent loop with an explicit prompt.")
    loop_p.add_argument("iterations", nargs="?", type=int, default=None, help="Iteration budget.")
    loop_p.add_argument("--prompt", type=str, default="", help="Prompt sent on every iteration.")
    loop_p.add_argument(
        "--prompt-file",
        type=str,
        default="",
        help="Read the prompt from a file instead of --prompt.",
    )
    loop_p.add_argument(
        "--spec-folder",
        type=str,
        default="",
        help="Spec folder that receives the logs/ directory (optional).",
    )
    loop_p.add_argument("--cwd", type=str, default="", help="Working directory for the agent.")
    loop_p.add_argument("--once", action="store_true", help="Run a single iteration.")
    loop_p.add_argument("--verbose", "-v", action="store_true", help="Show tool output previews.")

    sub.add_parser("list", help="List specs in the backlog.")

    wt_p = sub.add_parser("worktree", help="List or remove spec worktrees.")
    wt_sub = wt_p.add_subparsers(dest="worktree_command")
    wt_sub.add_parser("list", help="List worktrees other than the main checkout.")
    remove_p = wt_sub.add_parser("remove", help="Force-remove worktrees, then prune.")
    remove_p.add_argument(
        "targets",
        nargs="*",
        help="Worktree paths or spec names (their <repo>-<spec> worktree).",
    )
    remove_p.add_argument("--all", action="store_true", help="Remove every linked worktree.")
    return p


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the requested command."""
    _load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.command:
        parser.print_help()
        return 1

    root = Path(args.root or Path.cwd()).resolve()
    try:
        settings = Settings.load(root)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.command == "list":
        return _run_list(root, settings)
    if args.command == "loop":
        return _run_loop_command(args, root, settings)
    if args.command == "build":
        return _run_build(args, root, settings)
    if args.command == "plan":
        return _run_plan(args, root, settings)
    if args.command == "worktree":
        return _run_worktree(args, root)

    parser.print_help()
    return 1


def _runner(settings: Settings) -> ClaudeCodeRunner:
    return ClaudeCodeRunner(claude_binary=settings.claude_binary, model=settings.model)


def _print_backlog(repo: FileSpecRepository) -> bool:
    """Print the backlog; return False when it is empty."""
    try:
        specs = repo.require_backlog_specs()
    except NoBacklogSpecsError as exc:
        print(str(exc), file=sys.stderr)
        return False
    print(f"Specs in {repo.backlog_dir}:")
    for name in specs:
        print(f"  - {name}")
    return True


def _run_list(root: Path, settings: Settings) -> int:
    repo = FileSpecRepository(root, settings.specs_dir)
    return 0 if _print_backlog(repo) else 1


def _resolve_spec(repo: FileSpecRepository, name: str) -> SpecRef | None:
    if not name:
        if _print_backlog(repo):
            print("\nPass a spec name to continue.", file=sys.stderr)
        return None
    try:
        return repo.resolve(name)
    except SpecError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None


def _working_directory(
    args: argparse.Namespace, root: Path, spec: SpecRef, settings: Settings
) -> Path | None:
    if not args.create_worktree:
        return root
    print("Creating worktree...")
    try:
        path = create_worktree(root, spec.name, setup_commands=settings.worktree_setup_commands)
    except GitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None
    print(f"Worktree created: {path}")
    return path


def _run_loop_command(args: argparse.Namespace, root: Path, settings: Settings) -> int:
    prompt = args.prompt
    if args.prompt_file:
        try:
            prompt = Path(args.prompt_file).read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Error: could not read prompt file: {exc}", file=sys.stderr)
            return 1
    if not prompt.strip():
        print("Error: the --prompt option is required.", file=sys.stderr)
        return 1

    iterations = 1 if args.once else (args.iterations or settings.default_iterations)
    if iterations < 1:
        print("Error: iterations must be >= 1", file=sys.stderr)
        return 1

    spec = SpecRef.from_folder(args.spec_folder) if args.spec_folder else None
    cwd = Path(args.cwd).resolve() if args.cwd else root
    result = run_loop(
        spec,
        prompt,
        cwd,
        iterations,
        runner=_runner(settings),
        verbose=args.verbose or settings.verbose,
    )
    return result.exit_code


def _run_build(args: argparse.Namespace, root: Path, settings: Settings) -> int:
    repo = FileSpecRepository(root, settings.specs_dir)
    spec = _resolve_spec(repo, args.spec)
    if spec is None:
        return 1

    if not spec.plan_file_exists():
        print(f"Error: {PLAN_FILENAME} not found at: {spec.plan_file_path}", file=sys.stderr)
        print(f"\nRun 'specloop plan {spec.name}' first to create an implementation plan.")
        return 1

    iterations = args.iterations or settings.default_iterations
    if iterations < 1:
        print("Error: --iterations must be >= 1", file=sys.stderr)
        return 1

    cwd = _working_directory(args, root, spec, settings)
    if cwd is None:
        return 1

    print(f"Building: {spec.name}\n")
    prompt = PromptCatalog().build(spec)
    result = run_loop(
        spec,
        prompt,
        cwd,
        iterations,
        runner=_runner(settings),
        verbose=args.verbose or settings.verbose,
    )

    if result is LoopResult.FULLY_COMPLETE:
        try:
            repo.complete(spec)
        except (OSError, SpecError) as exc:
            print(f"Error: could not move spec to complete: {exc}", file=sys.stderr)
            return 1
        print(f"Spec '{spec.name}' moved to complete.")
    return result.exit_code


def _run_plan(args: argparse.Namespace, root: Path, settings: Settings) -> int:
    repo = FileSpecRepository(root, settings.specs_dir)
    spec = _resolve_spec(repo, args.spec)
    if spec is None:
        return 1

    if spec.plan_file_exists() and not args.force:
        print(f"Error: {PLAN_FILENAME} already exists at: {spec.plan_file_path}", file=sys.stderr)
        print("Use --force to regenerate.")
        return 1

    cwd = _working_directory(args, root, spec, settings)
    if cwd is None:
        return 1

    print(f"Creating implementation plan for: {spec.name}\n")
    prompt = PromptCatalog().plan(spec)
    result = run_loop(
        spec,
        prompt,
        cwd,
        1,
        runner=_runner(settings),
        verbose=args.verbose or settings.verbose,
    )
    if result is LoopResult.ERROR:
        return result.exit_code

    if spec.plan_file_exists():
        print(f"\nImplementation plan created: {spec.plan_file_path}")
        return 0
    print(f"\nWarning: the agent finished but {PLAN_FILENAME} was not created.", file=sys.stderr)
    print("You may need to run the command again or create it manually.")
    return LoopResult.MAX_ITERATIONS_REACHED.exit_code


def _print_worktrees(worktrees: list[WorktreeInfo]) -> None:
    for wt in worktrees:
        label = "bare" if wt.bare else (wt.branch or "unknown")
        print(f"  {wt.path} [{label}]")


def _select_worktrees(
    root: Path, worktrees: list[WorktreeInfo], targets: list[str]
) -> list[WorktreeInfo] | None:
    by_path = {wt.path.resolve(): wt for wt in worktrees}
    selected: list[WorktreeInfo] = []
    for target in targets:
        candidates = (Path(target).expanduser().resolve(), worktree_path(root, target))
        match = next((by_path[c] for c in candidates if c in by_path), None)
        if match is None:
            print(f"Error: no worktree matches '{target}'", file=sys.stderr)
            return None
        if match not in selected:
            selected.append(match)
    return selected


def _run_worktree(args: argparse.Namespace, root: Path) -> int:
    try:
        worktrees = list_worktrees(root)
    except GitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not worktrees:
        print("No removable worktrees found (only the main worktree exists).")
        return 0

    if args.worktree_command != "remove":
        print("Worktrees:")
        _print_worktrees(worktrees)
        return 0

    if args.all:
        selected = worktrees
    elif args.targets:
        selected = _select_worktrees(root, worktrees, args.targets)
        if selected is None:
            return 1
    else:
        print("Worktrees:")
        _print_worktrees(worktrees)
        print("\nPass worktree paths or spec names, or --all.", file=sys.stderr)
        return 1

    for wt in selected:
        print(f"Removing worktree: {wt.path}")
    try:
        failed = remove_worktrees(root, [wt.path for wt in selected])
    except GitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for wt in selected:
        if wt.path in failed:
            print(f"Failed to remove worktree: {wt.path}", file=sys.stderr)
        else:
            print(f"Removed: {wt.path}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
