"""
Step catalog module.

Generates the ordered operational steps of a job from its stop count:
depot departure, arrival and work at each stop, then the return to depot.
"""
from .catalog import (
    StepDefinition,
    StepKind,
    StepStatus,
    billing_step_id,
    can_advance_to_step,
    generate_steps,
    progress_percentage,
    step_name,
    step_status,
    total_steps,
)

__all__ = [
    "StepDefinition",
    "StepKind",
    "StepStatus",
    "billing_step_id",
    "can_advance_to_step",
    "generate_steps",
    "progress_percentage",
    "step_name",
    "step_status",
    "total_steps",
]
