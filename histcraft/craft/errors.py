"""Craft engine exception classes.

Contains:
- CraftError: Base exception for plan construction and execution
- ViolationKind, Violation: One structural problem found in a plan
- ValidationError: Plan-level errors; never touch the repository
- InvalidGroupAssignment: Rejected hunk group assignment
- InvalidSquashTarget: Rejected squash or fixup target
- PlanValidationError: All violations found by the validator
- PlanFileError: Unreadable or inconsistent plan file
- ConflictError: A step did not apply; resolvable by the user
- ExecutionError: Fatal failure during execution (after rollback)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from histcraft.git.exceptions import HistcraftError


class CraftError(HistcraftError):
    """Base class for craft engine errors."""

    pass


class ViolationKind(str, Enum):
    """Kinds of structural plan violations."""

    INVALID_SQUASH_TARGET = "InvalidSquashTarget"
    INCOMPLETE_HUNK_COVERAGE = "IncompleteHunkCoverage"
    OVERLAPPING_HUNK_GROUPS = "OverlappingHunkGroups"
    EMPTY_HUNK_GROUP = "EmptyHunkGroup"
    UNKNOWN_HUNK = "UnknownHunk"
    EMPTY_RESULT_PLAN = "EmptyResultPlan"
    MERGE_COMMIT_REWRITE = "MergeCommitRewrite"
    EMPTY_MESSAGE = "EmptyMessage"


@dataclass(frozen=True)
class Violation:
    """A single problem with a plan, tied to the offending commit."""

    kind: ViolationKind
    commit_id: Optional[str]
    reason: str

    def __str__(self) -> str:
        if self.commit_id:
            return f"{self.commit_id[:7]}: {self.reason}"
        return self.reason


class ValidationError(CraftError):
    """Plan construction error; the plan stays editable."""

    def __init__(self, message: str, violations: Optional[Iterable[Violation]] = None):
        super().__init__(message)
        self.violations = list(violations or [])


class InvalidGroupAssignment(ValidationError):
    """Raised when hunk groups for a split cannot be accepted."""

    pass


class InvalidSquashTarget(ValidationError):
    """Raised when a squash or fixup target is not acceptable."""

    pass


class PlanFileError(ValidationError):
    """Raised when a plan file cannot be read or does not match the window."""

    pass


class PlanValidationError(ValidationError):
    """Raised by the validator with every violation of the plan."""

    def __init__(self, violations: Iterable[Violation]):
        violations = list(violations)
        lines = [f"Plan has {len(violations)} problem(s):"]
        lines.extend(f"  - {v}" for v in violations)
        super().__init__("\n".join(lines), violations)

    def kinds(self) -> set[ViolationKind]:
        return {v.kind for v in self.violations}


class ConflictError(CraftError):
    """Raised when a compiled step does not apply onto the rewritten history."""

    def __init__(self, step_index: int, files: list[str], detail: str = ""):
        message = f"Conflict while applying step {step_index + 1}"
        if files:
            message += f" in: {', '.join(files)}"
        if detail:
            message += f"\n{detail}"
        super().__init__(message)
        self.step_index = step_index
        self.files = files


class ExecutionError(CraftError):
    """Raised when execution fails in a way the user cannot resolve."""

    pass
