"""Mutable plan model for a craft session.

Contains:
- PlanEntry: A commit paired with its assigned action
- Plan: Per-commit actions, hunk group assignments and reorder permutation
- PlanSnapshot: Immutable copy of a plan handed to validator and compiler
- unchanged_prefix: Number of leading entries a plan leaves untouched
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from histcraft.craft.errors import InvalidGroupAssignment, InvalidSquashTarget
from histcraft.craft.models import Action, Fixup, HunkGroup, Pick, Split, Squash
from histcraft.models import CommitNode, Hunk

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanEntry:
    """A commit of the window and the action assigned to it."""

    commit: CommitNode
    action: Action


@dataclass(frozen=True)
class PlanSnapshot:
    """Immutable view of a plan at one point in time."""

    commits: tuple[CommitNode, ...]  # Window, oldest first
    entries: tuple[PlanEntry, ...]  # Final order
    hunks: Mapping[str, tuple[Hunk, ...]]

    def position_in_final_order(self, commit_id: str) -> int:
        for i, entry in enumerate(self.entries):
            if entry.commit.id == commit_id:
                return i
        raise KeyError(commit_id)


def squash_targets(entries: Iterable[PlanEntry]) -> set[str]:
    """Ids of commits something squashes or fixes up into."""
    return {e.action.target for e in entries if isinstance(e.action, (Squash, Fixup))}


def unchanged_prefix(entries: Sequence[PlanEntry]) -> int:
    """Count leading entries that are plain picks at their original position.

    Such commits keep their identity: rewriting starts after them. A commit
    that something squashes into is never part of the prefix.
    """
    targets = squash_targets(entries)
    count = 0
    for i, entry in enumerate(entries):
        if entry.commit.position != i or not isinstance(entry.action, Pick) or entry.commit.id in targets:
            break
        count += 1
    return count


class Plan:
    """Per-commit actions plus the reorder permutation for one session.

    Mutations only reject errors visible locally; cross-commit consistency is
    checked by ``validate_plan``.
    """

    def __init__(self, commits: Sequence[CommitNode]):
        if not commits:
            raise ValueError("a plan needs at least one commit")
        self.commits: tuple[CommitNode, ...] = tuple(commits)
        self._positions = {c.id: i for i, c in enumerate(self.commits)}
        self._actions: list[Action] = [Pick() for _ in self.commits]
        self.order: list[int] = list(range(len(self.commits)))
        self._hunks: dict[str, tuple[Hunk, ...]] = {}

    def __len__(self) -> int:
        return len(self.commits)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def commit(self, commit_id: str) -> CommitNode:
        try:
            return self.commits[self._positions[commit_id]]
        except KeyError:
            raise KeyError(f"commit {commit_id} is not part of the plan")

    def resolve(self, rev: str) -> CommitNode:
        """Find a commit by full id or unique id prefix."""
        if rev in self._positions:
            return self.commit(rev)
        matches = [c for c in self.commits if c.id.startswith(rev)]
        if len(matches) != 1:
            reason = "is ambiguous" if matches else "is not in the loaded window"
            raise KeyError(f"commit {rev} {reason}")
        return matches[0]

    def action_for(self, commit_id: str) -> Action:
        return self._actions[self._positions[self.commit(commit_id).id]]

    @property
    def entries(self) -> list[PlanEntry]:
        """Entries in final (post-reorder) order."""
        return [PlanEntry(self.commits[p], self._actions[p]) for p in self.order]

    def hunks_for(self, commit_id: str) -> Optional[tuple[Hunk, ...]]:
        return self._hunks.get(commit_id)

    def is_modified(self) -> bool:
        """True when any action or the order differs from the loaded history."""
        if self.order != list(range(len(self.commits))):
            return True
        return any(not isinstance(a, Pick) for a in self._actions)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_action(self, commit_id: str, action: Action) -> None:
        """Assign action to a commit.

        Raises:
            InvalidSquashTarget: If a squash/fixup targets the commit itself
                or a commit outside the window.
            InvalidGroupAssignment: If a Split carries invalid groups.
        """
        commit = self.commit(commit_id)
        if isinstance(action, (Squash, Fixup)):
            if action.target == commit.id:
                raise InvalidSquashTarget(f"{commit.short_id} cannot {action.label} into itself")
            if action.target not in self._positions:
                raise InvalidSquashTarget(f"{action.label} target {action.target[:7]} is not in the window")
        if isinstance(action, Split):
            self.assign_hunk_groups(commit.id, action.groups)
            return
        self._actions[self._positions[commit.id]] = action
        LOG.debug("%s -> %s", commit.short_id, action.label)

    def reset(self, commit_id: str) -> None:
        self.set_action(commit_id, Pick())

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move the entry at from_index of the final order to to_index."""
        size = len(self.order)
        if not (0 <= from_index < size and 0 <= to_index < size):
            raise IndexError(f"reorder {from_index} -> {to_index} outside 0..{size - 1}")
        position = self.order.pop(from_index)
        self.order.insert(to_index, position)

    def apply_order(self, commit_ids: Sequence[str]) -> None:
        """Replace the final order with commit_ids (a permutation of the window)."""
        positions = [self._positions[self.commit(cid).id] for cid in commit_ids]
        if sorted(positions) != list(range(len(self.commits))):
            raise ValueError("order must list every commit of the window exactly once")
        self.order = positions

    def register_hunks(self, commit_id: str, hunks: Iterable[Hunk]) -> None:
        """Record the extracted hunk set of a commit entering split mode."""
        self._hunks[self.commit(commit_id).id] = tuple(hunks)

    def assign_hunk_groups(self, commit_id: str, groups: Iterable[HunkGroup]) -> None:
        """Split a commit into the given hunk groups.

        Raises:
            InvalidGroupAssignment: If the hunk set was never registered, a
                group is empty, an id is unknown or a hunk is used twice.
        """
        commit = self.commit(commit_id)
        groups = tuple(groups)
        hunks = self._hunks.get(commit.id)
        if hunks is None:
            raise InvalidGroupAssignment(f"hunks of {commit.short_id} have not been extracted")
        if not groups:
            raise InvalidGroupAssignment(f"split of {commit.short_id} needs at least one group")

        known = {h.id for h in hunks}
        seen: set[str] = set()
        for number, group in enumerate(groups, 1):
            if not group.hunk_ids:
                raise InvalidGroupAssignment(f"group {number} of {commit.short_id} is empty")
            for hunk_id in group.hunk_ids:
                if hunk_id not in known:
                    raise InvalidGroupAssignment(f"unknown hunk {hunk_id} in group {number}")
                if hunk_id in seen:
                    raise InvalidGroupAssignment(f"hunk {hunk_id} is assigned to more than one group")
                seen.add(hunk_id)

        self._actions[self._positions[commit.id]] = Split(groups)
        LOG.debug("%s -> split into %d groups", commit.short_id, len(groups))

    def snapshot(self) -> PlanSnapshot:
        return PlanSnapshot(
            commits=self.commits,
            entries=tuple(self.entries),
            hunks=MappingProxyType(dict(self._hunks)),
        )
