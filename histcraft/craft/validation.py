"""Plan validation for the craft engine.

Contains:
- collect_violations: Every structural problem of a plan snapshot
- validate_plan: All-or-nothing validation returning an immutable snapshot
"""

from typing import Union

from histcraft.craft.errors import PlanValidationError, Violation, ViolationKind
from histcraft.craft.models import Drop, Fixup, Reword, Split, Squash
from histcraft.craft.plan import Plan, PlanEntry, PlanSnapshot, unchanged_prefix


def _check_squash(entry: PlanEntry, index: int, snapshot: PlanSnapshot) -> list[Violation]:
    action = entry.action
    commit = entry.commit
    verb = action.label
    if action.target == commit.id:
        return [Violation(ViolationKind.INVALID_SQUASH_TARGET, commit.id, f"cannot {verb} into itself")]

    try:
        target_index = snapshot.position_in_final_order(action.target)
    except KeyError:
        return [
            Violation(
                ViolationKind.INVALID_SQUASH_TARGET,
                commit.id,
                f"{verb} target {action.target[:7]} is not in the window",
            )
        ]

    errors: list[Violation] = []
    target = snapshot.entries[target_index]
    if target_index > index:
        errors.append(
            Violation(
                ViolationKind.INVALID_SQUASH_TARGET,
                commit.id,
                f"{verb} target {target.commit.short_id} comes after it; "
                f"move {commit.short_id} below its target",
            )
        )
    if isinstance(target.action, Drop):
        errors.append(
            Violation(
                ViolationKind.INVALID_SQUASH_TARGET,
                commit.id,
                f"{verb} target {target.commit.short_id} is dropped",
            )
        )
    return errors


def _check_split(entry: PlanEntry, snapshot: PlanSnapshot) -> list[Violation]:
    commit = entry.commit
    hunks = snapshot.hunks.get(commit.id)
    if hunks is None:
        return [
            Violation(
                ViolationKind.INCOMPLETE_HUNK_COVERAGE,
                commit.id,
                "split without an extracted hunk set",
            )
        ]

    errors: list[Violation] = []
    known = [h.id for h in hunks]
    used: set[str] = set()
    for number, group in enumerate(entry.action.groups, 1):
        if not group.hunk_ids:
            errors.append(Violation(ViolationKind.EMPTY_HUNK_GROUP, commit.id, f"group {number} is empty"))
        for hunk_id in group.hunk_ids:
            if hunk_id not in known:
                errors.append(
                    Violation(ViolationKind.UNKNOWN_HUNK, commit.id, f"group {number} references unknown hunk {hunk_id}")
                )
            elif hunk_id in used:
                errors.append(
                    Violation(
                        ViolationKind.OVERLAPPING_HUNK_GROUPS,
                        commit.id,
                        f"hunk {hunk_id} is used in more than one group",
                    )
                )
            else:
                used.add(hunk_id)

    missing = [hunk_id for hunk_id in known if hunk_id not in used]
    if missing:
        shown = ", ".join(missing[:5]) + (f" and {len(missing) - 5} more" if len(missing) > 5 else "")
        errors.append(
            Violation(ViolationKind.INCOMPLETE_HUNK_COVERAGE, commit.id, f"unassigned hunks: {shown}")
        )
    return errors


def collect_violations(snapshot: PlanSnapshot) -> list[Violation]:
    """Check a plan snapshot for structural consistency.

    Args:
        snapshot: The plan to check

    Returns:
        List of violations (empty if valid)
    """
    errors: list[Violation] = []

    for index, entry in enumerate(snapshot.entries):
        action = entry.action
        if isinstance(action, (Squash, Fixup)):
            errors.extend(_check_squash(entry, index, snapshot))
        elif isinstance(action, Split):
            errors.extend(_check_split(entry, snapshot))
        elif isinstance(action, Reword) and not action.message.strip():
            errors.append(Violation(ViolationKind.EMPTY_MESSAGE, entry.commit.id, "reword message is empty"))

        if isinstance(action, Squash) and action.message is not None and not action.message.strip():
            errors.append(Violation(ViolationKind.EMPTY_MESSAGE, entry.commit.id, "squash message is empty"))

    if all(isinstance(e.action, Drop) for e in snapshot.entries):
        errors.append(
            Violation(
                ViolationKind.EMPTY_RESULT_PLAN,
                None,
                "every commit is dropped; at least one must survive",
            )
        )

    kept = unchanged_prefix(snapshot.entries)
    for entry in snapshot.entries[kept:]:
        if entry.commit.is_merge:
            errors.append(
                Violation(
                    ViolationKind.MERGE_COMMIT_REWRITE,
                    entry.commit.id,
                    "merge commits cannot be rewritten or replayed",
                )
            )

    return errors


def validate_plan(plan: Union[Plan, PlanSnapshot]) -> PlanSnapshot:
    """Validate a plan, all or nothing.

    Args:
        plan: Live plan (snapshotted first) or an existing snapshot

    Returns:
        The validated, immutable snapshot

    Raises:
        PlanValidationError: With every violation found
    """
    snapshot = plan.snapshot() if isinstance(plan, Plan) else plan
    violations = collect_violations(snapshot)
    if violations:
        raise PlanValidationError(violations)
    return snapshot
