"""Plan compiler for the craft engine.

Lowers a validated plan snapshot into the ordered list of atomic rewrite steps
the executor applies.

Contains:
- part_message: Derived message for one part of a split commit
- compile_plan: Compile a validated snapshot into a CompiledPlan
"""

import logging
from typing import Callable

from histcraft.craft.models import (
    CompiledPlan,
    CompiledStep,
    Drop,
    Edit,
    Fixup,
    MergeMode,
    Pick,
    Reword,
    Split,
    Squash,
    StepKind,
)
from histcraft.craft.plan import PlanEntry, PlanSnapshot, unchanged_prefix
from histcraft.models import CommitNode, render_patch

LOG = logging.getLogger(__name__)

DiffSource = Callable[[str], str]


def part_message(message: str, number: int, total: int) -> str:
    """Append "(part N/M)" to the subject line of message."""
    subject, sep, body = message.partition("\n")
    return f"{subject} (part {number}/{total}){sep}{body}"


def _author(commit: CommitNode) -> dict:
    return {
        "author_name": commit.author_name,
        "author_email": commit.author_email,
        "authored_at": commit.authored_at,
    }


def _chain_root(entry: PlanEntry, by_id: dict[str, PlanEntry]) -> str:
    """Follow squash/fixup targets to the commit that absorbs the chain."""
    current = entry
    for _ in range(len(by_id)):
        if not isinstance(current.action, (Squash, Fixup)):
            return current.commit.id
        current = by_id[current.action.target]
    raise ValueError(f"squash chain starting at {entry.commit.short_id} has a cycle")


def _entry_steps(entry: PlanEntry, snapshot: PlanSnapshot, diff: DiffSource) -> list[CompiledStep]:
    commit = entry.commit
    action = entry.action
    tag = f"{commit.short_id} {commit.summary}"

    if isinstance(action, Drop):
        return []

    if isinstance(action, (Pick, Reword, Edit)):
        message = action.message if isinstance(action, Reword) else commit.message
        steps = [
            CompiledStep(
                kind=StepKind.APPLY,
                source=commit.id,
                label=f"{action.label} {tag}",
                patch=diff(commit.id),
                message=message,
                original_parent=commit.parent_id,
                reusable=not isinstance(action, Reword),
                **_author(commit),
            )
        ]
        if isinstance(action, Edit):
            steps.append(CompiledStep(kind=StepKind.PAUSE, source=commit.id, label=f"stop at {tag}"))
        return steps

    if isinstance(action, Split):
        by_id = {h.id: h for h in snapshot.hunks[commit.id]}
        total = len(action.groups)
        steps = []
        for number, group in enumerate(action.groups, 1):
            steps.append(
                CompiledStep(
                    kind=StepKind.APPLY,
                    source=commit.id,
                    label=f"split {tag} ({number}/{total})",
                    patch=render_patch(by_id[h] for h in group.hunk_ids),
                    message=group.message or part_message(commit.message, number, total),
                    **_author(commit),
                )
            )
        return steps

    if isinstance(action, (Squash, Fixup)):
        mode = MergeMode.SQUASH if isinstance(action, Squash) else MergeMode.FIXUP
        return [
            CompiledStep(
                kind=StepKind.MERGE,
                source=commit.id,
                label=f"{action.label} {tag}",
                patch=diff(commit.id),
                message=commit.message,
                final_message=action.message if isinstance(action, Squash) else None,
                merge_mode=mode,
            )
        ]

    raise TypeError(f"unhandled action {action!r}")


def compile_plan(snapshot: PlanSnapshot, diff: DiffSource) -> CompiledPlan:
    """Compile a validated plan into ordered rewrite steps.

    Leading commits that stay untouched are kept as the base. Squash and
    fixup steps are placed directly after the chain they fold into, in final
    order among themselves.

    Args:
        snapshot: Validated plan snapshot
        diff: Returns the patch of a commit against its parent

    Returns:
        The compiled plan
    """
    entries = snapshot.entries
    kept = unchanged_prefix(entries)
    base = entries[kept - 1].commit.id if kept else snapshot.commits[0].parent_id

    by_id = {e.commit.id: e for e in entries}
    followers: dict[str, list[PlanEntry]] = {}
    for entry in entries[kept:]:
        if isinstance(entry.action, (Squash, Fixup)):
            followers.setdefault(_chain_root(entry, by_id), []).append(entry)

    steps: list[CompiledStep] = []
    for entry in entries[kept:]:
        if isinstance(entry.action, (Squash, Fixup)):
            continue
        steps.extend(_entry_steps(entry, snapshot, diff))
        for follower in followers.get(entry.commit.id, []):
            steps.extend(_entry_steps(follower, snapshot, diff))

    LOG.debug("compiled %d steps onto %s (kept %d)", len(steps), (base or "root")[:7], kept)
    return CompiledPlan(
        base=base,
        original_tip=snapshot.commits[-1].id,
        steps=tuple(steps),
        kept=kept,
    )
