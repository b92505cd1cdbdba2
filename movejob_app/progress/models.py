"""
Job progress data models.

JobProgressState is immutable; its ``with_*`` methods return the next
state or raise InvalidTransition. ``is_completed`` is derived from the step
completion stamps so it can never disagree with them.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence

from ..errors import InvalidTransition
from ..steps.catalog import StepDefinition


@dataclass(frozen=True)
class ProgressStep:
    """A catalog step with its completion stamp."""
    definition: StepDefinition
    completed_at_ms: Optional[int] = None

    @property
    def id(self) -> int:
        return self.definition.id

    @property
    def is_complete(self) -> bool:
        return self.completed_at_ms is not None

    def to_dict(self) -> dict[str, Any]:
        data = self.definition.to_dict()
        data["completedAtMs"] = self.completed_at_ms
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressStep":
        completed = data.get("completedAtMs")
        return cls(
            definition=StepDefinition.from_dict(data),
            completed_at_ms=None if completed is None else int(completed),
        )


@dataclass(frozen=True)
class JobProgressState:
    """Step-completion record of a single job."""

    job_id: str
    actual_step: int
    steps: tuple[ProgressStep, ...]
    completed_at_ms: Optional[int] = None
    last_synced_at_ms: int = 0
    last_modified_at_ms: int = 0
    is_dirty: bool = False

    @classmethod
    def from_catalog(
        cls,
        job_id: str,
        steps: Sequence[StepDefinition],
        actual_step: int = 0,
        now: int = 0
    ) -> "JobProgressState":
        """Fresh progress over a step catalog, as confirmed by the remote source."""
        return cls(
            job_id=job_id,
            actual_step=max(0, min(actual_step, len(steps))),
            steps=tuple(ProgressStep(definition=s) for s in steps),
            last_synced_at_ms=now,
            last_modified_at_ms=now,
        )

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def is_completed(self) -> bool:
        return bool(self.steps) and all(step.is_complete for step in self.steps)

    @property
    def can_go_next(self) -> bool:
        return self.actual_step < self.total_steps

    @property
    def can_go_previous(self) -> bool:
        return self.actual_step > 1

    @property
    def current_step_index(self) -> int:
        """0-based index of the actual step (0 before the job starts)."""
        return max(0, self.actual_step - 1)

    def step(self, step_id: int) -> Optional[ProgressStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def _modified(self, now: int, **changes: Any) -> "JobProgressState":
        return replace(self, last_modified_at_ms=now, is_dirty=True, **changes)

    def with_step(self, step: int, now: int, command: str = "set_step") -> "JobProgressState":
        if step < 1 or step > self.total_steps:
            raise InvalidTransition(
                f"Step {step} is outside 1..{self.total_steps}",
                command=command,
                current_step=self.actual_step,
                attempted_step=step,
            )
        return self._modified(now, actual_step=step)

    def with_step_completed(self, step_id: int, now: int) -> "JobProgressState":
        target = self.step(step_id)
        if target is None:
            raise InvalidTransition(
                f"Unknown step {step_id}",
                command="complete_step",
                current_step=self.actual_step,
                attempted_step=step_id,
            )

        steps = tuple(
            replace(s, completed_at_ms=now) if s.id == step_id and not s.is_complete else s
            for s in self.steps
        )
        completed_at = self.completed_at_ms
        if completed_at is None and all(s.is_complete for s in steps):
            completed_at = now

        return self._modified(now, steps=steps, completed_at_ms=completed_at)

    def with_job_completed(self, now: int) -> "JobProgressState":
        steps = tuple(
            s if s.is_complete else replace(s, completed_at_ms=now)
            for s in self.steps
        )
        completed_at = self.completed_at_ms if self.completed_at_ms is not None else now
        return self._modified(now, steps=steps, completed_at_ms=completed_at)

    def with_reset(self, now: int) -> "JobProgressState":
        steps = tuple(replace(s, completed_at_ms=None) for s in self.steps)
        return self._modified(
            now,
            actual_step=1,
            steps=steps,
            completed_at_ms=None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "actualStep": self.actual_step,
            "steps": [s.to_dict() for s in self.steps],
            "totalSteps": self.total_steps,
            "isCompleted": self.is_completed,
            "completedAtMs": self.completed_at_ms,
            "lastSyncedAtMs": self.last_synced_at_ms,
            "lastModifiedAtMs": self.last_modified_at_ms,
            "isDirty": self.is_dirty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobProgressState":
        completed = data.get("completedAtMs")
        return cls(
            job_id=str(data["jobId"]),
            actual_step=int(data.get("actualStep", 0)),
            steps=tuple(ProgressStep.from_dict(s) for s in data.get("steps", [])),
            completed_at_ms=None if completed is None else int(completed),
            last_synced_at_ms=int(data.get("lastSyncedAtMs", 0)),
            last_modified_at_ms=int(data.get("lastModifiedAtMs", 0)),
            is_dirty=bool(data.get("isDirty", False)),
        )
