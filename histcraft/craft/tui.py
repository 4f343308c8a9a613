"""Terminal driver for interactive craft sessions.

Draws the controller's state as a full-screen view and feeds it one key at a
time, using click's terminal primitives.

Contains:
- translate_key: Map raw terminal input to controller key names
- render: Lines describing the current controller state
- edit_text: Open the user's editor on a message
- run_session: Read keys until the controller reaches a terminal mode
"""

import shutil
from typing import Callable, Optional

import click
import typer

from histcraft.craft.controller import CraftController, CraftMode
from histcraft.craft.models import Fixup, Reword, Split, Squash
from histcraft.craft.plan import PlanEntry

_KEYS = {
    "\r": "enter",
    "\n": "enter",
    "\x1b": "esc",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x05": "ctrl-e",
    " ": "space",
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\xe0H": "up",
    "\xe0P": "down",
}

_ACTION_COLORS = {
    "pick": None,
    "reword": typer.colors.YELLOW,
    "split": typer.colors.CYAN,
    "squash": typer.colors.MAGENTA,
    "fixup": typer.colors.MAGENTA,
    "drop": typer.colors.RED,
    "edit": typer.colors.BLUE,
}

_HELP = {
    CraftMode.COMMIT_LIST: "j/k move  space select  enter actions  D diff  p preview  q quit",
    CraftMode.ACTION_MENU: "r reword  s split  q squash  f fixup  d drop  m reorder  e edit  x pick  esc back",
    CraftMode.REWORD: "type the message  enter save  ctrl-e editor  esc cancel",
    CraftMode.SPLIT: "j/k move  1-9 assign  space toggle  g new group  n name group  enter done  esc cancel",
    CraftMode.SQUASH_PICK: "j/k choose the commit to squash into  enter confirm  esc cancel",
    CraftMode.FIXUP_PICK: "j/k choose the commit to fix up  enter confirm  esc cancel",
    CraftMode.REORDER: "J/K move commit  j/k navigate  enter done",
    CraftMode.DIFF: "j/k scroll  q back",
    CraftMode.PREVIEW: "y execute  esc back",
    CraftMode.CONFLICT: "resolve and git add the files, then c continue  a abort",
    CraftMode.PAUSED_FOR_EDIT: "amend and git add your changes, then c continue  a abort",
}


def translate_key(raw: str) -> str:
    """Map raw input from getchar to the key names the controller understands."""
    return _KEYS.get(raw, raw)


def _height() -> int:
    return max(shutil.get_terminal_size((80, 24)).lines - 6, 5)


def _printable(line: str) -> str:
    """Undo surrogate escapes from non-UTF-8 diff bytes for display."""
    return line.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _colorize_diff_line(line: str) -> str:
    line = _printable(line)
    if line.startswith("@@"):
        return typer.style(line, fg=typer.colors.CYAN)
    if line.startswith(("---", "+++", "diff --git")):
        return typer.style(line, bold=True)
    if line.startswith("-"):
        return typer.style(line, fg=typer.colors.RED)
    if line.startswith("+"):
        return typer.style(line, fg=typer.colors.GREEN)
    return line


def _entry_line(controller: CraftController, index: int, entry: PlanEntry, pointer: Optional[int]) -> str:
    commit = entry.commit
    action = entry.action
    mark = ">" if index == pointer else " "
    selected = "*" if commit.id in controller.selected else " "
    moved = "~" if commit.position != index else " "
    label = typer.style(f"{action.label:<6}", fg=_ACTION_COLORS.get(action.label), bold=action.label != "pick")

    extra = ""
    if isinstance(action, (Squash, Fixup)):
        extra = f"  -> {action.target[:7]}"
    elif isinstance(action, Split):
        extra = f"  ({len(action.groups)} parts)"
    elif isinstance(action, Reword):
        extra = f'  "{action.message.splitlines()[0]}"'
    return f"{mark}{selected}{moved}{label} {commit.short_id} {commit.summary}{extra}"


def _render_commits(controller: CraftController, pointer: Optional[int]) -> list[str]:
    lines = []
    for index, entry in enumerate(controller.rows()):
        lines.append(_entry_line(controller, index, entry, pointer))
        for violation in controller.violations_for(entry.commit.id):
            lines.append(typer.style(f"      ! {violation.kind.value}: {violation.reason}", fg=typer.colors.RED))
    for violation in controller.violations_for(None):
        lines.append(typer.style(f"  ! {violation.kind.value}: {violation.reason}", fg=typer.colors.RED))
    return lines


def _render_split(controller: CraftController) -> list[str]:
    session = controller.split
    commit = controller.plan.commit(session.commit_id)
    lines = [f"Split {commit.short_id} {commit.summary}  (current group {session.current})", ""]
    for index, hunk in enumerate(session.hunks):
        mark = ">" if index == session.cursor else " "
        group = session.assignment.get(hunk.id)
        slot = str(group) if group else "-"
        header = f" {hunk.header}" if hunk.header else ""
        lines.append(_printable(f"{mark}[{slot}] {hunk.id.split('_')[0]:<4} {hunk.summary()}{header}"))
    for number, name in sorted(session.names.items()):
        lines.append(f"  group {number}: {name.splitlines()[0]}")
    lines.append("")
    current = session.hunks[session.cursor]
    lines.extend(_colorize_diff_line(ln) for ln in current.snippet(max_lines=8).splitlines())
    return lines


def _render_preview(controller: CraftController) -> list[str]:
    compiled = controller.compiled
    base = compiled.base[:7] if compiled.base else "(new root)"
    lines = [
        f"Compiled plan: {len(compiled.steps)} step(s) onto {base}, "
        f"{compiled.kept} commit(s) kept, {compiled.commit_count()} new",
        "",
    ]
    for number, step in enumerate(compiled.steps, 1):
        lines.append(f"  {number:>2}. {step.kind.value:<5} {step.label}")
    if controller.published:
        lines.append("")
        lines.append(
            typer.style(
                "Warning: some of these commits are already pushed; you will need to force push.",
                fg=typer.colors.YELLOW,
            )
        )
    if controller.dry_run:
        lines.append("")
        lines.append("(dry run: executing only prints the plan)")
    return lines


def _render_execution(controller: CraftController) -> list[str]:
    state = controller.execution
    lines = []
    if state is not None and state.unmerged_files:
        lines.append("Unmerged files:")
        lines.extend(typer.style(f"  {path}", fg=typer.colors.RED) for path in state.unmerged_files)
    if controller.executor is not None and controller.executor.current_step is not None:
        lines.append(f"Next step: {controller.executor.current_step.label}")
    return lines


def render(controller: CraftController) -> list[str]:
    """Build the screen for the controller's current mode."""
    mode = controller.mode
    title = f"histcraft craft: {controller.branch.rsplit('/', 1)[-1]} ({len(controller.plan)} commits)"
    lines = [typer.style(title, bold=True), ""]

    if mode in (CraftMode.COMMIT_LIST, CraftMode.ACTION_MENU, CraftMode.REORDER):
        lines.extend(_render_commits(controller, controller.cursor))
    elif mode in (CraftMode.SQUASH_PICK, CraftMode.FIXUP_PICK):
        lines.extend(_render_commits(controller, controller.pick_cursor))
    elif mode == CraftMode.REWORD:
        lines.append(f"Reword {controller.current_entry.commit.short_id}:")
        lines.extend(f"  {ln}" for ln in (controller.reword_buffer + "_").split("\n"))
    elif mode == CraftMode.SPLIT:
        lines.extend(_render_split(controller))
    elif mode == CraftMode.DIFF:
        visible = controller.diff_text.splitlines()[controller.diff_offset:controller.diff_offset + _height()]
        lines.extend(_colorize_diff_line(ln) for ln in visible)
    elif mode == CraftMode.PREVIEW:
        lines.extend(_render_preview(controller))
    elif mode in (CraftMode.CONFLICT, CraftMode.PAUSED_FOR_EDIT, CraftMode.EXECUTING):
        lines.extend(_render_execution(controller))

    lines.append("")
    if controller.status:
        lines.append(typer.style(controller.status, fg=typer.colors.BRIGHT_BLACK))
    if mode in _HELP:
        lines.append(_HELP[mode])
    return lines


def edit_text(text: str) -> Optional[str]:
    """Open $EDITOR on text; return the result, or None if nothing changed.

    Lines starting with '#' are dropped.
    """
    edited = click.edit(text.rstrip("\n") + "\n", extension=".txt")
    if edited is None:
        return None
    kept = [ln for ln in edited.splitlines() if not ln.startswith("#")]
    return "\n".join(kept).strip("\n")


def run_session(controller: CraftController, read_key: Optional[Callable[[], str]] = None) -> int:
    """Drive the controller until Done, Aborted or Quit.

    Ctrl-C or end of input quits, or aborts a started execution.

    Returns:
        The session's exit code
    """
    read_key = read_key or (lambda: translate_key(click.getchar()))
    try:
        while not controller.finished:
            click.clear()
            typer.echo("\n".join(render(controller)))
            controller.handle_key(read_key())
    except (KeyboardInterrupt, EOFError):
        controller.interrupt()
    click.clear()
    return controller.exit_code
