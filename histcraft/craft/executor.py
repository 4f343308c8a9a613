"""Plan executor for the craft engine.

Applies compiled steps to the repository one at a time, starting from the
captured branch tip. Steps are written as new commit objects on a scratch
index; the branch reference only moves once every step succeeded. The work
tree is touched only to let the user resolve a conflict or amend a commit.

Contains:
- ExecutionStatus, ExecutionState: Executor state machine
- PlanExecutor: Runs a CompiledPlan with continue/abort support
- rewrites_published: Whether a plan rewrites commits already pushed
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from histcraft.craft.errors import ConflictError, ExecutionError
from histcraft.craft.models import CompiledPlan, CompiledStep, MergeMode, StepKind
from histcraft.git.exceptions import GitError, PatchConflict
from histcraft.git.hunks import patch_paths
from histcraft.git.repository import Repository
from histcraft.models import CommitNode, Signature

LOG = logging.getLogger(__name__)

DEFAULT_SQUASH_SEPARATOR = "\n\n"

MessageEditor = Callable[[str], Optional[str]]


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CONFLICT = "conflict"
    PAUSED_FOR_EDIT = "paused"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ExecutionState:
    """Snapshot of the executor state reported to listeners."""

    status: ExecutionStatus
    step_index: int = 0
    unmerged_files: tuple[str, ...] = ()
    new_tip: Optional[str] = None
    original_tip: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in (ExecutionStatus.DONE, ExecutionStatus.ABORTED)


def combine_messages(target: str, source: str, separator: str = DEFAULT_SQUASH_SEPARATOR) -> str:
    """Deterministic squash message: target first, then the folded commit."""
    return target.rstrip("\n") + separator + source.rstrip("\n")


def rewrites_published(repo: Repository, branch: str, plan: CompiledPlan, commits: Sequence[CommitNode]) -> bool:
    """True when a commit the plan rewrites is already on origin's copy of branch."""
    upstream = repo.upstream_of(branch)
    if upstream is None or plan.kept >= len(commits):
        return False
    return repo.is_ancestor(commits[plan.kept].id, upstream)


class PlanExecutor:
    """Applies a compiled plan to a branch.

    Args:
        repo: Repository collaborator
        plan: The compiled plan
        branch: Full ref name of the branch being rewritten
        original_tip: Branch tip captured at session start
        edit_message: Optional callback to edit a combined squash message;
            returning None or blank keeps the proposed message
        squash_separator: Separator between squashed messages
    """

    def __init__(
        self,
        repo: Repository,
        plan: CompiledPlan,
        branch: str,
        original_tip: str,
        edit_message: Optional[MessageEditor] = None,
        squash_separator: str = DEFAULT_SQUASH_SEPARATOR,
    ):
        self.repo = repo
        self.plan = plan
        self.branch = branch
        self.original_tip = original_tip
        self.edit_message = edit_message
        self.squash_separator = squash_separator

        self._tip: Optional[str] = plan.base  # Running tip of the rewritten history
        self._next = 0  # Index of the next step to apply
        self._worktree_tip = original_tip  # Commit the index and work tree match
        self._detached = False
        self._listeners: list[Callable[[ExecutionState], None]] = []
        self.state = ExecutionState(ExecutionStatus.PENDING, original_tip=original_tip)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def on_transition(self, listener: Callable[[ExecutionState], None]) -> None:
        self._listeners.append(listener)

    def _transition(self, status: ExecutionStatus, **fields) -> ExecutionState:
        self.state = ExecutionState(status, original_tip=self.original_tip, **fields)
        LOG.debug("executor -> %s %s", status.value, fields or "")
        for listener in self._listeners:
            listener(self.state)
        return self.state

    @property
    def current_step(self) -> Optional[CompiledStep]:
        if self._next < len(self.plan.steps):
            return self.plan.steps[self._next]
        return None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def run(self) -> ExecutionState:
        """Start executing from the first step.

        Returns:
            The resulting state (Done or PausedForEdit)

        Raises:
            ConflictError: If a step does not apply; state becomes Conflict
            ExecutionError: On any other failure, after rollback
        """
        if self.state.status != ExecutionStatus.PENDING:
            raise ExecutionError(f"execution already {self.state.status.value}")
        current = self.repo.resolve(self.branch)
        if current != self.original_tip:
            raise ExecutionError(f"{self.branch} moved since the session started; nothing was changed")
        self._transition(ExecutionStatus.RUNNING, step_index=0)
        return self._advance()

    def continue_execution(self) -> ExecutionState:
        """Resume after a resolved conflict or a manual edit.

        Raises:
            ConflictError: If conflicts (or unstaged edits) remain; the state
                is left as it was
            ExecutionError: If there is nothing to continue, or on failure
        """
        status = self.state.status
        if status == ExecutionStatus.CONFLICT:
            remaining = self.repo.unmerged_files()
            if remaining:
                self._transition(ExecutionStatus.CONFLICT, step_index=self._next, unmerged_files=tuple(remaining))
                raise ConflictError(self._next, remaining, "resolve the conflicts and stage the result first")
            try:
                self._tip = self._commit_index(self.plan.steps[self._next])
                self.repo.detach_head(self._tip)
                self._worktree_tip = self._tip
            except Exception as exc:
                self._fail(exc)
            self._next += 1
        elif status == ExecutionStatus.PAUSED_FOR_EDIT:
            unstaged = self.repo.unstaged_files()
            if unstaged:
                raise ConflictError(self.state.step_index, unstaged, "stage or discard your changes first")
            try:
                self._tip = self._fold_staged_changes()
                self._worktree_tip = self._tip
            except Exception as exc:
                self._fail(exc)
        else:
            raise ExecutionError(f"nothing to continue (execution {status.value})")

        self._transition(ExecutionStatus.RUNNING, step_index=self._next)
        return self._advance()

    def abort_execution(self) -> ExecutionState:
        """Restore the branch, HEAD, index and work tree to the captured tip."""
        status = self.state.status
        if status == ExecutionStatus.ABORTED:
            return self.state
        if status == ExecutionStatus.DONE:
            raise ExecutionError("execution already finished; nothing to abort")
        if status != ExecutionStatus.PENDING:
            self._rollback()
        return self._transition(ExecutionStatus.ABORTED, new_tip=self.original_tip)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self) -> ExecutionState:
        steps = self.plan.steps
        try:
            while self._next < len(steps):
                step = steps[self._next]
                LOG.info("step %d/%d: %s", self._next + 1, len(steps), step.label)

                if step.kind == StepKind.PAUSE:
                    self._move_worktree(self._require_tip(step))
                    paused_at = self._next
                    self._next += 1
                    return self._transition(
                        ExecutionStatus.PAUSED_FOR_EDIT, step_index=paused_at, new_tip=self._tip
                    )

                try:
                    self._tip = self._apply(step)
                except PatchConflict as exc:
                    files = self._materialize_conflict(step)
                    if files:
                        self._transition(
                            ExecutionStatus.CONFLICT, step_index=self._next, unmerged_files=tuple(files)
                        )
                        raise ConflictError(self._next, files, exc.stderr)
                    # The 3-way fallback merged cleanly
                    self._tip = self._commit_index(step)
                    self.repo.detach_head(self._tip)
                    self._worktree_tip = self._tip
                self._next += 1

            return self._finish()
        except ConflictError:
            raise
        except Exception as exc:
            self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        LOG.error("execution failed: %s", exc)
        self._rollback()
        self._transition(ExecutionStatus.ABORTED, new_tip=self.original_tip)
        raise ExecutionError(f"{exc}\nOriginal history restored at {self.original_tip[:7]}.") from exc

    def _require_tip(self, step: CompiledStep) -> str:
        if self._tip is None:
            raise ExecutionError(f"{step.label}: no commit to work on yet")
        return self._tip

    def _signature(self, step: CompiledStep) -> Optional[Signature]:
        if step.author_name is None:
            return None
        return Signature(step.author_name, step.author_email or "", step.authored_at or "")

    def _merge_message(self, step: CompiledStep) -> str:
        target_message = self.repo.commit_message(self._require_tip(step))
        if step.merge_mode == MergeMode.FIXUP:
            return target_message
        if step.final_message:
            return step.final_message
        combined = combine_messages(target_message, step.message, self.squash_separator)
        if self.edit_message is not None:
            try:
                edited = self.edit_message(combined)
            except Exception as exc:
                raise ExecutionError(f"message editor failed: {exc}") from exc
            if edited and edited.strip():
                return edited
        return combined

    def _apply(self, step: CompiledStep) -> str:
        if step.kind == StepKind.MERGE:
            return self.repo.merge_patches(self._require_tip(step), step.patch, lambda: self._merge_message(step))
        if step.reusable and step.original_parent == self._tip:
            # Parent unchanged: keep the original commit as is
            return step.source
        return self.repo.apply_patch(self._tip, step.patch, step.message, self._signature(step))

    def _commit_index(self, step: CompiledStep) -> str:
        """Commit the real index as the result of step."""
        tree = self.repo.write_index_tree()
        if step.kind == StepKind.MERGE:
            tip = self._require_tip(step)
            return self.repo.commit_tree(
                tree, self.repo.parents(tip), self._merge_message(step), self.repo.commit_author(tip)
            )
        parents = [self._tip] if self._tip else []
        return self.repo.commit_tree(tree, parents, step.message, self._signature(step))

    def _fold_staged_changes(self) -> str:
        """Return HEAD after a manual edit, amending it with staged changes."""
        head = self.repo.head()
        if not self.repo.has_staged_changes():
            return head
        tree = self.repo.write_index_tree()
        amended = self.repo.commit_tree(
            tree, self.repo.parents(head), self.repo.commit_message(head), self.repo.commit_author(head)
        )
        self.repo.detach_head(amended)
        return amended

    def _move_worktree(self, commit_id: str) -> None:
        """Check out commit_id on a detached HEAD."""
        if self._worktree_tip != commit_id:
            self.repo.switch_tree(self._worktree_tip, commit_id)
            self._worktree_tip = commit_id
        self.repo.detach_head(commit_id)
        self._detached = True

    def _materialize_conflict(self, step: CompiledStep) -> list[str]:
        """Leave the failing step in the work tree for manual resolution."""
        self._move_worktree(self._require_tip(step))
        applied = self.repo.apply_3way(step.patch)
        files = self.repo.unmerged_files()
        if not applied and not files:
            # Nothing could be merged: the user applies the change by hand
            files = patch_paths(step.patch)
        return files

    def _finish(self) -> ExecutionState:
        new_tip = self._tip
        if new_tip is None:
            raise ExecutionError("plan produced no commits")
        if new_tip != self.original_tip:
            self.repo.update_ref(self.branch, new_tip, self.original_tip)
        if self._worktree_tip != new_tip:
            self.repo.switch_tree(self._worktree_tip, new_tip)
            self._worktree_tip = new_tip
        if self._detached:
            self.repo.attach_head(self.branch)
            self._detached = False
        return self._transition(ExecutionStatus.DONE, step_index=len(self.plan.steps), new_tip=new_tip)

    def _rollback(self) -> None:
        """Put branch, HEAD, index and work tree back on the original tip."""
        try:
            self.repo.update_ref(self.branch, self.original_tip)
            self.repo.attach_head(self.branch)
            self.repo.reset_tree(self.original_tip)
        except GitError as exc:
            short = self.branch.rsplit("/", 1)[-1]
            raise ExecutionError(
                f"Automatic restore failed: {exc}\n"
                "MANUAL RECOVERY:\n"
                f"  git checkout -f {short}\n"
                f"  git reset --hard {self.original_tip}"
            ) from exc
        self._detached = False
        self._worktree_tip = self.original_tip
        LOG.info("restored %s to %s", self.branch, self.original_tip[:7])
