"""Craft engine: interactive history rewriting.

This package builds, checks and executes history rewrite plans:
- models: Action variants, HunkGroup, CompiledStep, CompiledPlan
- errors: ValidationError hierarchy, ConflictError, ExecutionError
- plan: Plan, PlanSnapshot
- validation: validate_plan, collect_violations
- compiler: compile_plan
- executor: PlanExecutor, ExecutionState
- controller: CraftController, CraftMode
- planfile: read_plan_file, apply_plan_file
"""

# Models
from histcraft.craft.models import (
    Action,
    CompiledPlan,
    CompiledStep,
    Drop,
    Edit,
    Fixup,
    HunkGroup,
    MergeMode,
    Pick,
    Reword,
    Split,
    Squash,
    StepKind,
)

# Errors
from histcraft.craft.errors import (
    ConflictError,
    CraftError,
    ExecutionError,
    InvalidGroupAssignment,
    InvalidSquashTarget,
    PlanFileError,
    PlanValidationError,
    ValidationError,
    Violation,
    ViolationKind,
)

# Plan model
from histcraft.craft.plan import Plan, PlanEntry, PlanSnapshot

# Validation and compilation
from histcraft.craft.validation import collect_violations, validate_plan
from histcraft.craft.compiler import compile_plan

# Execution
from histcraft.craft.executor import (
    ExecutionState,
    ExecutionStatus,
    PlanExecutor,
    combine_messages,
    rewrites_published,
)

# Interactive session
from histcraft.craft.controller import CraftController, CraftMode

# Plan files
from histcraft.craft.planfile import PlanFile, apply_plan_file, read_plan_file


__all__ = [
    # Models
    "Action",
    "Pick",
    "Reword",
    "Split",
    "Squash",
    "Fixup",
    "Drop",
    "Edit",
    "HunkGroup",
    "StepKind",
    "MergeMode",
    "CompiledStep",
    "CompiledPlan",
    # Errors
    "CraftError",
    "ValidationError",
    "InvalidGroupAssignment",
    "InvalidSquashTarget",
    "PlanValidationError",
    "PlanFileError",
    "Violation",
    "ViolationKind",
    "ConflictError",
    "ExecutionError",
    # Plan
    "Plan",
    "PlanEntry",
    "PlanSnapshot",
    "validate_plan",
    "collect_violations",
    "compile_plan",
    # Execution
    "PlanExecutor",
    "ExecutionState",
    "ExecutionStatus",
    "combine_messages",
    "rewrites_published",
    # Session
    "CraftController",
    "CraftMode",
    # Plan files
    "PlanFile",
    "read_plan_file",
    "apply_plan_file",
]
