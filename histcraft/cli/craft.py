"""CLI command for interactive history rewriting."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from histcraft.craft import (
    CompiledPlan,
    ConflictError,
    CraftController,
    CraftMode,
    ExecutionError,
    ExecutionStatus,
    Plan,
    PlanExecutor,
    apply_plan_file,
    compile_plan,
    read_plan_file,
    rewrites_published,
    validate_plan,
)
from histcraft.craft.tui import edit_text, run_session
from histcraft.git import (
    HistcraftError,
    HunkExtractor,
    Repository,
    load_history,
    ref_lock,
)
from histcraft.user_config import CraftSettings, get_craft_settings

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 2


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _short(branch: str) -> str:
    return branch[len("refs/heads/"):] if branch.startswith("refs/heads/") else branch


def _print_plan(compiled: CompiledPlan, branch: str, show_json: bool) -> None:
    """Print the compiled steps, as text or as JSON without patch bodies."""
    if show_json:
        data = compiled.model_dump(mode="json", exclude={"steps": {"__all__": {"patch"}}})
        typer.echo(json.dumps(data, indent=2))
        return

    base = compiled.base[:7] if compiled.base else "(new root)"
    typer.echo(
        f"Plan for {_short(branch)}: {len(compiled.steps)} step(s) onto {base}, "
        f"{compiled.commit_count()} new commit(s)"
    )
    for number, step in enumerate(compiled.steps, 1):
        typer.echo(f"  {number:>2}. {step.kind.value:<5} {step.label}")


def _warn_published(repo: Repository, branch: str, compiled: CompiledPlan, plan: Plan) -> None:
    if rewrites_published(repo, branch, compiled, plan.commits):
        typer.secho(
            f"Warning: rewritten commits are already on origin/{_short(branch)}; "
            "you will need to force push.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _run_plan_file(
    repo: Repository,
    plan: Plan,
    branch: str,
    original_tip: str,
    extractor: HunkExtractor,
    plan_path: Path,
    settings: CraftSettings,
    yes: bool,
    dry_run: bool,
    show_json: bool,
) -> int:
    """Apply a plan file without the interactive view."""
    apply_plan_file(plan, read_plan_file(plan_path), extractor)
    typer.echo(f"Loaded plan from {plan_path}", err=True)

    compiled = compile_plan(validate_plan(plan), repo.diff)
    if compiled.is_noop:
        typer.echo("No changes to apply.")
        return EXIT_OK

    _print_plan(compiled, branch, show_json)
    _warn_published(repo, branch, compiled, plan)
    if dry_run:
        return EXIT_OK

    if settings.confirm and not yes:
        if not typer.confirm(f"Rewrite the history of {_short(branch)}?", default=False):
            typer.echo("Cancelled. No changes made.")
            return EXIT_OK

    executor = PlanExecutor(
        repo, compiled, branch, original_tip, squash_separator=settings.squash_separator
    )
    try:
        state = executor.run()
        while state.status == ExecutionStatus.PAUSED_FOR_EDIT:
            # No one to amend the commit: carry on
            LOG.warning("skipping edit pause at step %d", state.step_index + 1)
            state = executor.continue_execution()
    except ConflictError as e:
        typer.echo(f"Error: {e}", err=True)
        executor.abort_execution()
        typer.echo(f"Aborted: {_short(branch)} restored to {original_tip[:7]}.", err=True)
        return EXIT_FAILED
    except ExecutionError as e:
        typer.echo(f"Error: {e}", err=True)
        return EXIT_FAILED

    typer.echo(f"Rewrote {_short(branch)}: {original_tip[:7]} -> {state.new_tip[:7]}")
    return EXIT_OK


def _run_interactive(
    repo: Repository,
    plan: Plan,
    branch: str,
    original_tip: str,
    extractor: HunkExtractor,
    settings: CraftSettings,
    preselect: int,
    dry_run: bool,
    show_json: bool,
) -> int:
    if not sys.stdin.isatty():
        typer.echo("Error: the interactive view needs a terminal; use --from-plan instead.", err=True)
        return EXIT_FAILED

    controller = CraftController(
        repo,
        plan,
        branch,
        original_tip,
        extractor=extractor,
        edit_text=edit_text,
        edit_squash_messages=settings.edit_squash_messages,
        squash_separator=settings.squash_separator,
        preselect=preselect,
        dry_run=dry_run,
    )
    code = run_session(controller)

    if controller.mode == CraftMode.DONE:
        new_tip = controller.execution.new_tip
        typer.echo(f"Rewrote {_short(branch)}: {original_tip[:7]} -> {new_tip[:7]}")
        _warn_published(repo, branch, controller.compiled, plan)
    elif controller.mode == CraftMode.ABORTED:
        typer.echo(controller.status, err=True)
    elif dry_run and controller.compiled is not None:
        _print_plan(controller.compiled, branch, show_json)
    elif plan.is_modified():
        typer.echo("Plan discarded. No changes made.")
    else:
        typer.echo("No changes made.")
    return code


def craft_command(
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Number of commits to load (default from config, 20)",
    ),
    last: Optional[int] = typer.Option(
        None,
        "--last",
        min=1,
        help="Pre-select the newest K commits",
    ),
    from_plan: Optional[Path] = typer.Option(
        None,
        "--from-plan",
        help="Apply a YAML or JSON plan file instead of opening the interactive view",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt when applying a plan file",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the compiled plan without rewriting anything",
    ),
    show_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Print the compiled plan as JSON",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log git commands and executor transitions to stderr",
    ),
) -> None:
    """Rewrite recent history: reword, split, squash, fixup, reorder, drop, edit.

    Exit codes: 0 done or nothing changed, 1 validation or execution failure,
    2 aborted by the user with the original history restored.
    """
    _configure_logging(debug)

    try:
        repo = Repository.open()
        settings = get_craft_settings(repo.root)
        branch = repo.current_branch()
        original_tip = repo.current_ref()
        repo.ensure_clean()
    except HistcraftError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_FAILED)

    window = count or settings.count
    if last is not None:
        window = max(window, last)

    code = EXIT_FAILED
    try:
        with ref_lock(repo, branch):
            plan = Plan(load_history(repo, window))
            extractor = HunkExtractor(repo)
            try:
                if from_plan is not None:
                    code = _run_plan_file(
                        repo, plan, branch, original_tip, extractor,
                        from_plan, settings, yes, dry_run, show_json,
                    )
                else:
                    code = _run_interactive(
                        repo, plan, branch, original_tip, extractor,
                        settings, last or 0, dry_run, show_json,
                    )
            finally:
                extractor.close()
    except HistcraftError as e:
        typer.echo(f"Error: {e}", err=True)
        code = EXIT_FAILED

    raise typer.Exit(code)
