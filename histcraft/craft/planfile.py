"""Plan files for non-interactive craft sessions.

A plan file lists commits of the loaded window with the action each one
gets. Listed commits are placed in file order into the slots they occupy in
the history; commits not listed stay where they are as picks.

Example (YAML; JSON with the same structure is accepted too):

    version: "1"
    commits:
      - commit: 3f2a9c1
        action: reword
        message: "Fix parser crash on empty input"
      - commit: 8d41be0
        action: fixup
        target: 3f2a9c1
      - commit: c07e5aa
        action: split
        groups:
          - hunks: [H1, H3]
            message: "Extract config loader"
          - hunks: [H2]

Contains:
- PlanFileGroup, PlanFileEntry, PlanFile: pydantic models of the file format
- read_plan_file: Parse a YAML or JSON plan file
- apply_plan_file: Apply a parsed plan file to a Plan
"""

import json
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError as PydanticValidationError, model_validator

from histcraft.craft.errors import PlanFileError
from histcraft.craft.models import Drop, Edit, Fixup, HunkGroup, Pick, Reword, Squash
from histcraft.craft.plan import Plan
from histcraft.git.hunks import HunkExtractor
from histcraft.models import Hunk

LOG = logging.getLogger(__name__)

ActionName = Literal["pick", "reword", "split", "squash", "fixup", "drop", "edit"]


class PlanFileGroup(BaseModel):
    """One commit of a split."""

    hunks: list[str]
    message: Optional[str] = None


class PlanFileEntry(BaseModel):
    """Action for one commit of the window."""

    commit: str  # Full id or unique prefix
    action: ActionName = "pick"
    message: Optional[str] = None  # reword, squash
    target: Optional[str] = None  # squash, fixup
    groups: Optional[list[PlanFileGroup]] = None  # split

    @model_validator(mode="after")
    def check_action_fields(self) -> "PlanFileEntry":
        if self.action == "reword" and not (self.message and self.message.strip()):
            raise ValueError(f"reword of {self.commit} needs a non-empty message")
        if self.action in ("squash", "fixup") and not self.target:
            raise ValueError(f"{self.action} of {self.commit} needs a target")
        if self.action == "split" and not self.groups:
            raise ValueError(f"split of {self.commit} needs at least one group")
        return self


class PlanFile(BaseModel):
    """A complete plan file."""

    version: str = "1"
    commits: list[PlanFileEntry] = []


def read_plan_file(path: Path) -> PlanFile:
    """Load a plan file.

    Files ending in .json are parsed as JSON, everything else as YAML.

    Raises:
        PlanFileError: If the file is missing, unparsable or malformed
    """
    try:
        text = path.read_text()
    except OSError as e:
        raise PlanFileError(f"Cannot read plan file {path}: {e}")

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PlanFileError(f"Cannot parse plan file {path}: {e}")

    try:
        return PlanFile.model_validate(data or {})
    except PydanticValidationError as e:
        raise PlanFileError(f"Invalid plan file {path}:\n{e}")


def _resolve_hunk(ref: str, hunks: tuple[Hunk, ...]) -> str:
    """Accept full hunk ids or their short "H<n>" form."""
    for hunk in hunks:
        if ref == hunk.id or ref == hunk.id.split("_")[0]:
            return hunk.id
    raise PlanFileError(f"unknown hunk {ref}")


def apply_plan_file(plan: Plan, plan_file: PlanFile, extractor: HunkExtractor) -> None:
    """Apply the order and actions of plan_file to plan.

    Args:
        plan: Freshly loaded plan (all picks)
        plan_file: Parsed plan file
        extractor: Used to load hunks of split commits

    Raises:
        PlanFileError: If a commit or hunk reference cannot be resolved
        InvalidSquashTarget, InvalidGroupAssignment: From the plan itself
        DiffUnavailable: If a root commit is split
    """
    try:
        listed = [plan.resolve(entry.commit) for entry in plan_file.commits]
    except KeyError as e:
        raise PlanFileError(e.args[0])

    ids = [c.id for c in listed]
    duplicates = {c.short_id for c in listed if ids.count(c.id) > 1}
    if duplicates:
        raise PlanFileError(f"commits listed more than once: {', '.join(sorted(duplicates))}")

    # Listed commits take the listed order within the slots they occupy
    order = [e.commit.id for e in plan.entries]
    slots = sorted(order.index(cid) for cid in ids)
    for slot, cid in zip(slots, ids):
        order[slot] = cid
    plan.apply_order(order)

    for commit, entry in zip(listed, plan_file.commits):
        if entry.action == "split":
            hunks = extractor.extract(commit)
            plan.register_hunks(commit.id, hunks)
            groups = [
                HunkGroup(tuple(_resolve_hunk(ref, hunks) for ref in group.hunks), group.message)
                for group in entry.groups
            ]
            plan.assign_hunk_groups(commit.id, groups)
            continue

        if entry.action in ("squash", "fixup"):
            try:
                target = plan.resolve(entry.target).id
            except KeyError as e:
                raise PlanFileError(e.args[0])
            action = Squash(target, entry.message) if entry.action == "squash" else Fixup(target)
        elif entry.action == "reword":
            action = Reword(entry.message)
        elif entry.action == "drop":
            action = Drop()
        elif entry.action == "edit":
            action = Edit()
        else:
            action = Pick()
        plan.set_action(commit.id, action)

    LOG.debug("applied plan file with %d entries", len(plan_file.commits))
