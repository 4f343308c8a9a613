"""Data models for the craft engine.

Contains:
- HunkGroup: Hunks that together form one commit of a split
- Pick, Reword, Split, Squash, Fixup, Drop, Edit: the Action variants
- StepKind, MergeMode: Kinds of compiled rewrite steps
- CompiledStep: One atomic rewrite instruction
- CompiledPlan: Base commit plus the ordered compiled steps
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class HunkGroup:
    """A user-assigned subset of a commit's hunks."""

    hunk_ids: tuple[str, ...]
    message: Optional[str] = None

    def __post_init__(self):
        # Accept any iterable of ids
        object.__setattr__(self, "hunk_ids", tuple(self.hunk_ids))


@dataclass(frozen=True)
class Pick:
    """Keep the commit as is."""

    label = "pick"


@dataclass(frozen=True)
class Reword:
    """Keep the changes, replace the message."""

    message: str
    label = "reword"


@dataclass(frozen=True)
class Split:
    """Turn the commit into one commit per hunk group."""

    groups: tuple[HunkGroup, ...]
    label = "split"

    def __post_init__(self):
        object.__setattr__(self, "groups", tuple(self.groups))


@dataclass(frozen=True)
class Squash:
    """Fold the commit into target, combining both messages."""

    target: str
    message: Optional[str] = None  # Final combined message, if chosen up front
    label = "squash"


@dataclass(frozen=True)
class Fixup:
    """Fold the commit into target, keeping only the target's message."""

    target: str
    label = "fixup"


@dataclass(frozen=True)
class Drop:
    """Omit the commit entirely."""

    label = "drop"


@dataclass(frozen=True)
class Edit:
    """Apply the commit, then pause for manual amendment."""

    label = "edit"


Action = Union[Pick, Reword, Split, Squash, Fixup, Drop, Edit]


class StepKind(str, Enum):
    APPLY = "apply"  # apply patch as a new commit
    MERGE = "merge"  # fold patch into the running tip
    PAUSE = "pause"  # suspend for a manual edit


class MergeMode(str, Enum):
    SQUASH = "squash"
    FIXUP = "fixup"


class CompiledStep(BaseModel):
    """One atomic, ordered history-rewrite instruction."""

    model_config = ConfigDict(frozen=True)

    kind: StepKind
    source: str  # Original commit id the step comes from
    label: str  # Human readable description
    patch: str = ""
    message: str = ""
    final_message: Optional[str] = None  # Squash message chosen up front
    merge_mode: Optional[MergeMode] = None
    original_parent: Optional[str] = None
    reusable: bool = False  # Original commit may be kept if its parent is unchanged
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    authored_at: Optional[str] = None


class CompiledPlan(BaseModel):
    """Compiled steps plus the commit they start from."""

    model_config = ConfigDict(frozen=True)

    base: Optional[str]  # None means the first step creates a root commit
    original_tip: str  # Newest commit of the window
    steps: tuple[CompiledStep, ...] = ()
    kept: int = 0  # Leading commits left untouched

    @property
    def is_noop(self) -> bool:
        """True when executing would leave the branch where it is."""
        return not self.steps and self.base == self.original_tip

    def commit_count(self) -> int:
        """Number of new commits the plan creates."""
        return sum(1 for s in self.steps if s.kind == StepKind.APPLY)
