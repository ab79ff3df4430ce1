"""Build pipeline: step identifiers, plan resolution and the dispatcher."""

from .dispatcher import BuildDispatcher, NoopHooks, StepContext, StepHooks
from .patch import apply_patch, read_patch, strip_level
from .steps import DEFAULT_PLAN, STEP_ALIASES, BuildPlan, BuildStep

__all__ = [
    "DEFAULT_PLAN",
    "STEP_ALIASES",
    "BuildDispatcher",
    "BuildPlan",
    "BuildStep",
    "NoopHooks",
    "StepContext",
    "StepHooks",
    "apply_patch",
    "read_patch",
    "strip_level",
]
