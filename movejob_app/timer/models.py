"""
Job timer data models.

All records are immutable; every transition produces a new JobTimerState.
Serialized field names follow the persisted record shape (camelCase).
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class TimerPhase(str, Enum):
    """Timer lifecycle phases."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    ON_BREAK = "on_break"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class StepInterval:
    """Time spent in one step; end and duration are None while the step is active."""
    step: int
    started_at_ms: int
    ended_at_ms: Optional[int] = None
    duration_ms: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at_ms is None

    def closed_at(self, now: int) -> "StepInterval":
        return replace(self, ended_at_ms=now, duration_ms=max(0, now - self.started_at_ms))

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "startedAtMs": self.started_at_ms,
            "endedAtMs": self.ended_at_ms,
            "durationMs": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepInterval":
        return cls(
            step=int(data["step"]),
            started_at_ms=int(data["startedAtMs"]),
            ended_at_ms=None if data.get("endedAtMs") is None else int(data["endedAtMs"]),
            duration_ms=None if data.get("durationMs") is None else int(data["durationMs"]),
        )


@dataclass(frozen=True)
class BreakInterval:
    """A suspension of billable time; end is None while the break is ongoing."""
    start_ms: int
    end_ms: Optional[int] = None

    def duration_at(self, now: int) -> int:
        end = self.end_ms if self.end_ms is not None else now
        return max(0, end - self.start_ms)

    def to_dict(self) -> dict[str, Any]:
        return {"startMs": self.start_ms, "endMs": self.end_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BreakInterval":
        return cls(
            start_ms=int(data["startMs"]),
            end_ms=None if data.get("endMs") is None else int(data["endMs"]),
        )


@dataclass(frozen=True)
class JobTimerState:
    """Timer record of a single job."""

    job_id: str
    total_steps: int
    started_at_ms: int = 0
    current_step: int = 0
    intervals: tuple[StepInterval, ...] = field(default_factory=tuple)
    is_running: bool = False
    is_on_break: bool = False
    break_intervals: tuple[BreakInterval, ...] = field(default_factory=tuple)
    total_elapsed_ms: int = 0                        # Frozen once terminal

    # Completion figures, frozen when the terminal step is reached
    final_cost: Optional[float] = None
    final_billable_hours: Optional[float] = None
    completion_notified: bool = False
    last_modified_at_ms: int = 0

    @property
    def phase(self) -> TimerPhase:
        if self.current_step >= self.total_steps and self.current_step > 0:
            return TimerPhase.TERMINAL
        if self.current_step == 0 or not self.is_running:
            return TimerPhase.NOT_STARTED
        if self.is_on_break:
            return TimerPhase.ON_BREAK
        return TimerPhase.RUNNING

    @property
    def is_started(self) -> bool:
        return self.started_at_ms > 0

    @property
    def is_terminal(self) -> bool:
        return self.phase == TimerPhase.TERMINAL

    @property
    def open_interval(self) -> Optional[StepInterval]:
        if self.intervals and self.intervals[-1].is_open:
            return self.intervals[-1]
        return None

    def break_ms(self, now: int) -> int:
        """Accumulated break time, including an ongoing break up to ``now``."""
        return sum(b.duration_at(now) for b in self.break_intervals)

    def elapsed_ms(self, now: int) -> int:
        """Wall-clock time since start; keeps advancing during breaks, frozen once terminal."""
        if not self.is_started:
            return 0
        if self.is_terminal:
            return self.total_elapsed_ms
        return max(0, now - self.started_at_ms)

    def billable_ms(self, now: int) -> int:
        """Elapsed time minus break time."""
        if self.is_terminal:
            return max(0, self.total_elapsed_ms - self.break_ms(now))
        return max(0, self.elapsed_ms(now) - self.break_ms(now))

    def with_changes(self, now: int, **changes: Any) -> "JobTimerState":
        return replace(self, last_modified_at_ms=now, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "totalSteps": self.total_steps,
            "startedAtMs": self.started_at_ms,
            "currentStep": self.current_step,
            "intervals": [i.to_dict() for i in self.intervals],
            "isRunning": self.is_running,
            "isOnBreak": self.is_on_break,
            "breakIntervals": [b.to_dict() for b in self.break_intervals],
            "totalElapsedMs": self.total_elapsed_ms,
            "finalCost": self.final_cost,
            "finalBillableHours": self.final_billable_hours,
            "completionNotified": self.completion_notified,
            "lastModifiedAtMs": self.last_modified_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobTimerState":
        return cls(
            job_id=str(data["jobId"]),
            total_steps=int(data["totalSteps"]),
            started_at_ms=int(data.get("startedAtMs", 0)),
            current_step=int(data.get("currentStep", 0)),
            intervals=tuple(StepInterval.from_dict(i) for i in data.get("intervals", [])),
            is_running=bool(data.get("isRunning", False)),
            is_on_break=bool(data.get("isOnBreak", False)),
            break_intervals=tuple(
                BreakInterval.from_dict(b) for b in data.get("breakIntervals", [])
            ),
            total_elapsed_ms=int(data.get("totalElapsedMs", 0)),
            final_cost=data.get("finalCost"),
            final_billable_hours=data.get("finalBillableHours"),
            completion_notified=bool(data.get("completionNotified", False)),
            last_modified_at_ms=int(data.get("lastModifiedAtMs", 0)),
        )
