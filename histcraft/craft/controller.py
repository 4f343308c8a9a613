"""Interactive session controller for the craft engine.

The controller is a finite state machine over CraftMode. Every key press is
fed to ``handle_key``; it mutates the plan, runs the validator and compiler
for a preview, or drives the executor. Rendering and key reading live in
``histcraft.craft.tui``.

Contains:
- CraftMode: Enumerated interaction modes
- SplitSession: Hunk-to-group assignment state while splitting a commit
- CraftController: Key-driven state machine owning the plan of a session
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from histcraft.craft.compiler import compile_plan
from histcraft.craft.errors import (
    ConflictError,
    ExecutionError,
    PlanValidationError,
    ValidationError,
    Violation,
)
from histcraft.craft.executor import (
    DEFAULT_SQUASH_SEPARATOR,
    ExecutionState,
    ExecutionStatus,
    PlanExecutor,
    rewrites_published,
)
from histcraft.craft.models import (
    CompiledPlan,
    Drop,
    Edit,
    Fixup,
    HunkGroup,
    Pick,
    Reword,
    Split,
    Squash,
)
from histcraft.craft.plan import Plan, PlanEntry
from histcraft.craft.validation import validate_plan
from histcraft.git.exceptions import GitError
from histcraft.git.hunks import HunkExtractor
from histcraft.git.repository import Repository
from histcraft.models import Hunk

LOG = logging.getLogger(__name__)

TextEditor = Callable[[str], Optional[str]]

MAX_GROUPS = 9


class CraftMode(str, Enum):
    COMMIT_LIST = "commit_list"
    ACTION_MENU = "action_menu"
    REWORD = "reword"
    SPLIT = "split"
    SQUASH_PICK = "squash_pick"
    FIXUP_PICK = "fixup_pick"
    REORDER = "reorder"
    DIFF = "diff"
    PREVIEW = "preview"
    EXECUTING = "executing"
    CONFLICT = "conflict"
    PAUSED_FOR_EDIT = "paused_for_edit"
    DONE = "done"
    ABORTED = "aborted"
    QUIT = "quit"


TERMINAL_MODES = (CraftMode.DONE, CraftMode.ABORTED, CraftMode.QUIT)

_EXECUTION_MODES = {
    ExecutionStatus.RUNNING: CraftMode.EXECUTING,
    ExecutionStatus.CONFLICT: CraftMode.CONFLICT,
    ExecutionStatus.PAUSED_FOR_EDIT: CraftMode.PAUSED_FOR_EDIT,
    ExecutionStatus.DONE: CraftMode.DONE,
    ExecutionStatus.ABORTED: CraftMode.ABORTED,
}


@dataclass
class SplitSession:
    """Working state while the user distributes a commit's hunks into groups."""

    commit_id: str
    hunks: tuple[Hunk, ...]
    assignment: dict[str, int] = field(default_factory=dict)  # hunk id -> group number
    names: dict[int, str] = field(default_factory=dict)
    current: int = 1
    cursor: int = 0

    @classmethod
    def from_action(cls, commit_id: str, hunks: tuple[Hunk, ...], action) -> "SplitSession":
        session = cls(commit_id, hunks)
        if isinstance(action, Split):
            for number, group in enumerate(action.groups, 1):
                for hunk_id in group.hunk_ids:
                    session.assignment[hunk_id] = number
                if group.message:
                    session.names[number] = group.message
            session.current = max(len(action.groups), 1)
        return session

    @property
    def group_count(self) -> int:
        return max([self.current, *self.assignment.values()])

    def unassigned(self) -> list[Hunk]:
        return [h for h in self.hunks if h.id not in self.assignment]

    def groups(self) -> list[HunkGroup]:
        """Non-empty groups in group order, hunks in extraction order."""
        result = []
        for number in range(1, self.group_count + 1):
            ids = [h.id for h in self.hunks if self.assignment.get(h.id) == number]
            if ids:
                result.append(HunkGroup(tuple(ids), self.names.get(number)))
        return result


class CraftController:
    """State machine mapping key presses to plan edits and view transitions.

    The controller only reads from the repository; every write goes through
    the PlanExecutor it creates on execute.

    Args:
        repo: Repository collaborator
        plan: The session's plan (owned by the controller)
        branch: Full ref name of the checked out branch
        original_tip: Branch tip captured at session start
        extractor: Hunk extractor used when entering split mode
        edit_text: Callback opening an external editor; returns the edited
            text or None when the user made no change
        edit_squash_messages: Offer combined squash messages for editing
        squash_separator: Separator between squashed messages
        preselect: Number of newest commits selected initially
        dry_run: Preview only; executing ends the session instead
    """

    def __init__(
        self,
        repo: Repository,
        plan: Plan,
        branch: str,
        original_tip: str,
        extractor: Optional[HunkExtractor] = None,
        edit_text: Optional[TextEditor] = None,
        edit_squash_messages: bool = True,
        squash_separator: str = DEFAULT_SQUASH_SEPARATOR,
        preselect: int = 0,
        dry_run: bool = False,
    ):
        self.repo = repo
        self.plan = plan
        self.branch = branch
        self.original_tip = original_tip
        self.extractor = extractor or HunkExtractor(repo)
        self.edit_text = edit_text
        self.edit_squash_messages = edit_squash_messages
        self.squash_separator = squash_separator
        self.dry_run = dry_run

        self.mode = CraftMode.COMMIT_LIST
        self.cursor = len(plan) - 1  # Newest commit
        self.selected: set[str] = set()
        if preselect > 0:
            self.selected = {c.id for c in plan.commits[max(len(plan) - preselect, 0):]}
        self.status = ""
        self.violations: list[Violation] = []

        self.reword_buffer = ""
        self.split: Optional[SplitSession] = None
        self.pick_cursor = 0
        self.diff_text = ""
        self.diff_offset = 0
        self.compiled: Optional[CompiledPlan] = None
        self.published = False
        self.executor: Optional[PlanExecutor] = None
        self.execution: Optional[ExecutionState] = None
        self.failed = False

    # ------------------------------------------------------------------
    # Queries used by the renderer
    # ------------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self.mode in TERMINAL_MODES

    @property
    def exit_code(self) -> int:
        """0 for Done or Quit, 1 for a failure, 2 for a user abort."""
        if self.failed:
            return 1
        if self.mode == CraftMode.ABORTED:
            return 2
        return 0

    def rows(self) -> list[PlanEntry]:
        return self.plan.entries

    @property
    def current_entry(self) -> PlanEntry:
        return self.plan.entries[self.cursor]

    def violations_for(self, commit_id: Optional[str]) -> list[Violation]:
        return [v for v in self.violations if v.commit_id == commit_id]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_key(self, key: str) -> CraftMode:
        """Process one key press and return the resulting mode."""
        handler = getattr(self, f"_on_{self.mode.value}", None)
        if handler is not None:
            handler(key)
        return self.mode

    def interrupt(self) -> None:
        """Stop the session on Ctrl-C or end of input.

        A started execution is rolled back; otherwise the session quits.
        """
        if self.executor is not None and not self.executor.state.is_final:
            self._drive(self.executor.abort_execution)
        elif not self.finished:
            self._enter(CraftMode.QUIT, "interrupted")

    def _enter(self, mode: CraftMode, status: str = "") -> None:
        LOG.debug("mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self.status = status

    def _move(self, key: str, position: int, size: int) -> int:
        if key in ("j", "down"):
            return min(position + 1, size - 1)
        if key in ("k", "up"):
            return max(position - 1, 0)
        return position

    # ------------------------------------------------------------------
    # Commit list and action menu
    # ------------------------------------------------------------------

    def _on_commit_list(self, key: str) -> None:
        if key in ("j", "k", "down", "up"):
            self.cursor = self._move(key, self.cursor, len(self.plan))
        elif key == "space":
            commit_id = self.current_entry.commit.id
            self.selected ^= {commit_id}
        elif key == "enter":
            self._enter(CraftMode.ACTION_MENU)
        elif key == "D":
            self._show_diff()
        elif key == "p":
            self._preview()
        elif key in ("q", "esc"):
            self._enter(CraftMode.QUIT)

    def _targets(self) -> list[str]:
        """Commits a bulk action applies to: the selection if the cursor is in it."""
        commit_id = self.current_entry.commit.id
        if commit_id in self.selected:
            return [e.commit.id for e in self.plan.entries if e.commit.id in self.selected]
        return [commit_id]

    def _set_all(self, action) -> None:
        targets = self._targets()
        for commit_id in targets:
            self.plan.set_action(commit_id, action)
        self.violations = []
        noun = "commit" if len(targets) == 1 else "commits"
        self._enter(CraftMode.COMMIT_LIST, f"{action.label}: {len(targets)} {noun}")

    def _on_action_menu(self, key: str) -> None:
        entry = self.current_entry
        if key == "r":
            action = entry.action
            self.reword_buffer = action.message if isinstance(action, Reword) else entry.commit.message
            self._enter(CraftMode.REWORD)
        elif key == "s":
            self._start_split()
        elif key in ("q", "f"):
            if self.cursor == 0:
                self._enter(CraftMode.COMMIT_LIST, "nothing above this commit to fold into")
                return
            self.pick_cursor = self.cursor - 1
            self._enter(CraftMode.SQUASH_PICK if key == "q" else CraftMode.FIXUP_PICK)
        elif key == "d":
            self._set_all(Drop())
        elif key == "m":
            self._enter(CraftMode.REORDER)
        elif key == "e":
            self._set_all(Edit())
        elif key == "x":
            self._set_all(Pick())
        elif key == "esc":
            self._enter(CraftMode.COMMIT_LIST)

    # ------------------------------------------------------------------
    # Reword
    # ------------------------------------------------------------------

    def _on_reword(self, key: str) -> None:
        if key == "esc":
            self._enter(CraftMode.COMMIT_LIST, "reword cancelled")
        elif key == "enter":
            self._save_reword()
        elif key == "backspace":
            self.reword_buffer = self.reword_buffer[:-1]
        elif key == "ctrl-e":
            if self.edit_text is None:
                self.status = "no editor available"
                return
            edited = self.edit_text(self.reword_buffer)
            if edited is not None:
                self.reword_buffer = edited.rstrip("\n")
        elif key == "space":
            self.reword_buffer += " "
        elif len(key) == 1 and key.isprintable():
            self.reword_buffer += key

    def _save_reword(self) -> None:
        entry = self.current_entry
        message = self.reword_buffer.strip("\n")
        if not message.strip():
            self.status = "commit message cannot be empty"
            return
        if message == entry.commit.message:
            self.plan.reset(entry.commit.id)
        else:
            self.plan.set_action(entry.commit.id, Reword(message))
        self.violations = []
        self._enter(CraftMode.COMMIT_LIST, f"reworded {entry.commit.short_id}")

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------

    def _start_split(self) -> None:
        entry = self.current_entry
        future = self.extractor.extract_async(entry.commit)
        try:
            hunks = future.result()
        except GitError as exc:
            self._enter(CraftMode.COMMIT_LIST, str(exc))
            return
        if not hunks:
            self._enter(CraftMode.COMMIT_LIST, f"{entry.commit.short_id} has no changes to split")
            return
        self.plan.register_hunks(entry.commit.id, hunks)
        self.split = SplitSession.from_action(entry.commit.id, hunks, entry.action)
        self._enter(CraftMode.SPLIT, f"{len(hunks)} hunks; assign them to groups 1-{MAX_GROUPS}")

    def _on_split(self, key: str) -> None:
        session = self.split
        hunk = session.hunks[session.cursor]
        if key in ("j", "k", "down", "up"):
            session.cursor = self._move(key, session.cursor, len(session.hunks))
        elif len(key) == 1 and key in "123456789":
            number = int(key)
            session.assignment[hunk.id] = number
            session.current = number
        elif key == "space":
            if session.assignment.get(hunk.id) == session.current:
                del session.assignment[hunk.id]
            else:
                session.assignment[hunk.id] = session.current
        elif key == "g":
            if session.group_count >= MAX_GROUPS:
                self.status = f"at most {MAX_GROUPS} groups"
                return
            session.current = session.group_count + 1
            self.status = f"group {session.current}"
        elif key == "n":
            self._name_group(session)
        elif key == "enter":
            self._finish_split(session)
        elif key == "esc":
            self.split = None
            self._enter(CraftMode.COMMIT_LIST, "split cancelled")

    def _name_group(self, session: SplitSession) -> None:
        if self.edit_text is None:
            self.status = "no editor available"
            return
        commit = self.plan.commit(session.commit_id)
        initial = session.names.get(session.current, commit.message)
        edited = self.edit_text(initial)
        if edited is not None and edited.strip():
            session.names[session.current] = edited.strip("\n")
            self.status = f"named group {session.current}"

    def _finish_split(self, session: SplitSession) -> None:
        unassigned = session.unassigned()
        if unassigned:
            self.status = f"{len(unassigned)} hunk(s) not assigned to a group"
            return
        try:
            self.plan.assign_hunk_groups(session.commit_id, session.groups())
        except ValidationError as exc:
            self.status = str(exc)
            return
        self.split = None
        self.violations = []
        self._enter(CraftMode.COMMIT_LIST, f"split into {len(session.groups())} commits")

    # ------------------------------------------------------------------
    # Squash / fixup target pick
    # ------------------------------------------------------------------

    def _on_squash_pick(self, key: str) -> None:
        self._pick_target(key, squash=True)

    def _on_fixup_pick(self, key: str) -> None:
        self._pick_target(key, squash=False)

    def _pick_target(self, key: str, squash: bool) -> None:
        if key in ("j", "k", "down", "up"):
            self.pick_cursor = self._move(key, self.pick_cursor, len(self.plan))
        elif key == "enter":
            source = self.current_entry.commit
            target = self.plan.entries[self.pick_cursor].commit
            action = Squash(target.id) if squash else Fixup(target.id)
            try:
                self.plan.set_action(source.id, action)
            except ValidationError as exc:
                self.status = str(exc)
                return
            self.violations = []
            self._enter(CraftMode.COMMIT_LIST, f"{action.label} {source.short_id} into {target.short_id}")
        elif key == "esc":
            self._enter(CraftMode.COMMIT_LIST)

    # ------------------------------------------------------------------
    # Reorder
    # ------------------------------------------------------------------

    def _on_reorder(self, key: str) -> None:
        if key in ("j", "k", "down", "up"):
            self.cursor = self._move(key, self.cursor, len(self.plan))
        elif key in ("J", "K"):
            target = self.cursor + 1 if key == "J" else self.cursor - 1
            if 0 <= target < len(self.plan):
                self.plan.reorder(self.cursor, target)
                self.cursor = target
                self.violations = []
        elif key in ("enter", "esc"):
            self._enter(CraftMode.COMMIT_LIST)

    # ------------------------------------------------------------------
    # Diff view
    # ------------------------------------------------------------------

    def _show_diff(self) -> None:
        commit = self.current_entry.commit
        try:
            self.diff_text = self.repo.diff(commit.id)
        except GitError as exc:
            self.status = str(exc)
            return
        self.diff_offset = 0
        self._enter(CraftMode.DIFF)

    def _on_diff(self, key: str) -> None:
        if key in ("j", "down"):
            self.diff_offset = min(self.diff_offset + 1, max(len(self.diff_text.splitlines()) - 1, 0))
        elif key in ("k", "up"):
            self.diff_offset = max(self.diff_offset - 1, 0)
        elif key in ("q", "esc", "D"):
            self._enter(CraftMode.COMMIT_LIST)

    # ------------------------------------------------------------------
    # Preview and execution
    # ------------------------------------------------------------------

    def _preview(self) -> None:
        try:
            snapshot = validate_plan(self.plan)
        except PlanValidationError as exc:
            self.violations = exc.violations
            self.status = f"{len(exc.violations)} problem(s); fix them before previewing"
            return
        self.violations = []
        try:
            compiled = compile_plan(snapshot, self.repo.diff)
        except GitError as exc:
            self.status = str(exc)
            return
        if compiled.is_noop:
            self.status = "no changes to apply"
            return
        self.compiled = compiled
        self.published = rewrites_published(self.repo, self.branch, compiled, self.plan.commits)
        self._enter(CraftMode.PREVIEW)

    def _on_preview(self, key: str) -> None:
        if key in ("y", "enter"):
            if self.dry_run:
                self._enter(CraftMode.QUIT, "dry run: nothing was changed")
                return
            self._execute()
        elif key in ("q", "esc"):
            self._enter(CraftMode.COMMIT_LIST)

    def _execute(self) -> None:
        self.executor = PlanExecutor(
            self.repo,
            self.compiled,
            self.branch,
            self.original_tip,
            edit_message=self.edit_text if self.edit_squash_messages else None,
            squash_separator=self.squash_separator,
        )
        self.executor.on_transition(self._on_execution_state)
        self._drive(self.executor.run)

    def _drive(self, operation: Callable[[], ExecutionState]) -> None:
        try:
            operation()
        except ConflictError as exc:
            self.status = str(exc)
        except ExecutionError as exc:
            self.failed = True
            self.status = str(exc)
            if not self.finished:
                self.mode = CraftMode.ABORTED

    def _on_execution_state(self, state: ExecutionState) -> None:
        self.execution = state
        self.mode = _EXECUTION_MODES.get(state.status, self.mode)
        if state.status == ExecutionStatus.CONFLICT:
            self.status = f"conflict in: {', '.join(state.unmerged_files)}"
        elif state.status == ExecutionStatus.PAUSED_FOR_EDIT:
            self.status = "amend the commit, stage your changes, then continue"
        elif state.status == ExecutionStatus.DONE:
            self.status = f"{self.branch} now at {state.new_tip[:7]}"
        elif state.status == ExecutionStatus.ABORTED:
            self.status = f"restored {self.branch} to {self.original_tip[:7]}"

    def _on_conflict(self, key: str) -> None:
        if key == "c":
            self._drive(self.executor.continue_execution)
        elif key == "a":
            self._drive(self.executor.abort_execution)

    def _on_paused_for_edit(self, key: str) -> None:
        self._on_conflict(key)
