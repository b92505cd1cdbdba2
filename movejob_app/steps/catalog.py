"""
Step catalog generation.

For N stops the catalog is laid out as:

    step 1        Depart depot
    step 2i       Arrive at stop i          (i = 1..N)
    step 2i+1     Work at stop i            (billing trigger when i == N)
    step 2N+2     Return to depot           (terminal, only with return)

so ``total = 1 + 2N + 1`` with the return step and ``1 + 2N`` without it.
Step 0 is the implicit "not started" sentinel and is never materialized.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional, Sequence

from ..errors import InvalidConfiguration


class StepKind(str, Enum):
    """Operational meaning of a step."""
    DEPOT_DEPARTURE = "depot_departure"
    ARRIVE_AT_STOP = "arrive_at_stop"
    WORK_AT_STOP = "work_at_stop"
    RETURN_TO_DEPOT = "return_to_depot"


class StepStatus(str, Enum):
    """Status of a step relative to the job's current step."""
    PENDING = "pending"
    CURRENT = "current"
    COMPLETED = "completed"


@dataclass(frozen=True)
class StepDefinition:
    """Immutable definition of one job step."""

    id: int                                          # 1-based
    name: str
    kind: StepKind
    is_billing_trigger: bool = False
    is_terminal: bool = False
    stop_index: Optional[int] = None                 # 0-based, None for depot steps

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "isBillingTrigger": self.is_billing_trigger,
            "isTerminal": self.is_terminal,
            "stopIndex": self.stop_index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StepDefinition":
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            kind=StepKind(data["kind"]),
            is_billing_trigger=bool(data.get("isBillingTrigger", False)),
            is_terminal=bool(data.get("isTerminal", False)),
            stop_index=data.get("stopIndex"),
        )


def _validate_stop_count(stop_count: int) -> None:
    if isinstance(stop_count, bool) or not isinstance(stop_count, int):
        raise InvalidConfiguration(
            "Stop count must be an integer",
            field="stop_count",
            value=stop_count,
        )
    if stop_count < 1:
        raise InvalidConfiguration(
            f"Stop count must be at least 1, got {stop_count}",
            field="stop_count",
            value=stop_count,
        )


def total_steps(stop_count: int, include_return: bool = True) -> int:
    """Number of materialized steps for a job with ``stop_count`` stops."""
    _validate_stop_count(stop_count)
    base = 1 + 2 * stop_count
    return base + 1 if include_return else base


def billing_step_id(stop_count: int) -> int:
    """Step at which payment collection is expected: work at the last stop."""
    _validate_stop_count(stop_count)
    return 2 * stop_count + 1


def generate_steps(
    stop_count: int,
    include_return: bool = True,
    stop_labels: Optional[Sequence[str]] = None
) -> tuple[StepDefinition, ...]:
    """
    Generate the ordered step catalog for a job.

    Args:
        stop_count: Number of stops (addresses) on the job, at least 1
        include_return: Append the final return-to-depot step
        stop_labels: Optional display labels (e.g. street addresses) per stop

    Returns:
        Tuple of StepDefinition ordered by id, terminal step last

    Raises:
        InvalidConfiguration: If stop_count is below 1
    """
    _validate_stop_count(stop_count)
    labels = tuple(stop_labels) if stop_labels else None
    return _generate_cached(stop_count, include_return, labels)


@lru_cache(maxsize=128)
def _generate_cached(
    stop_count: int,
    include_return: bool,
    labels: Optional[tuple[str, ...]]
) -> tuple[StepDefinition, ...]:
    last_id = total_steps(stop_count, include_return)
    billing_id = billing_step_id(stop_count)

    steps = [StepDefinition(
        id=1,
        name="Depart depot",
        kind=StepKind.DEPOT_DEPARTURE,
    )]

    for index in range(stop_count):
        number = index + 1
        label = labels[index] if labels and index < len(labels) and labels[index] else None
        suffix = f" ({label})" if label else ""

        steps.append(StepDefinition(
            id=2 * number,
            name=f"Arrive at stop {number}{suffix}",
            kind=StepKind.ARRIVE_AT_STOP,
            stop_index=index,
        ))

        work_id = 2 * number + 1
        steps.append(StepDefinition(
            id=work_id,
            name=f"Work at stop {number}{suffix}",
            kind=StepKind.WORK_AT_STOP,
            is_billing_trigger=work_id == billing_id,
            is_terminal=work_id == last_id,
            stop_index=index,
        ))

    if include_return:
        steps.append(StepDefinition(
            id=last_id,
            name="Return to depot",
            kind=StepKind.RETURN_TO_DEPOT,
            is_terminal=True,
        ))

    return tuple(steps)


def can_advance_to_step(current_step: int, target_step: int, total: int) -> bool:
    """A job only ever moves forward one step at a time, up to the terminal step."""
    return target_step == current_step + 1 and target_step <= total


def step_status(step_id: int, current_step: int) -> StepStatus:
    """Status of ``step_id`` relative to ``current_step``."""
    if step_id < current_step:
        return StepStatus.COMPLETED
    if step_id == current_step:
        return StepStatus.CURRENT
    return StepStatus.PENDING


def progress_percentage(current_step: int, total: int) -> int:
    """Progress from 0 (not started) to 100 (terminal step reached)."""
    if total <= 0:
        return 0
    clamped = min(max(current_step, 0), total)
    return round(clamped / total * 100)


def step_name(step_id: int, steps: Sequence[StepDefinition]) -> str:
    """Display name of a step, with a generic fallback."""
    if step_id == 0:
        return "Not started"
    for step in steps:
        if step.id == step_id:
            return step.name
    return f"Step {step_id}"
