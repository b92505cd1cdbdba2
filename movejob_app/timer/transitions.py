"""
Pure timer transitions.

Each function validates the command against the current state and returns
the next state, raising InvalidTransition when the command does not apply.
Nothing here touches storage, clocks or callbacks.
"""

from ..errors import InvalidTransition
from .models import BreakInterval, JobTimerState, StepInterval, TimerPhase


def fresh_state(job_id: str, total_steps: int, now: int = 0) -> JobTimerState:
    """A never-started timer record."""
    return JobTimerState(job_id=job_id, total_steps=total_steps, last_modified_at_ms=now)


def start(state: JobTimerState, now: int) -> JobTimerState:
    """NotStarted -> Running(step=1), opening the first interval."""
    if state.phase != TimerPhase.NOT_STARTED or state.is_started:
        raise InvalidTransition(
            "Timer already started",
            command="start",
            current_step=state.current_step,
            attempted_step=1,
        )

    return state.with_changes(
        now,
        started_at_ms=now,
        current_step=1,
        intervals=(StepInterval(step=1, started_at_ms=now),),
        is_running=True,
        is_on_break=False,
        break_intervals=(),
        total_elapsed_ms=0,
    )


def advance(state: JobTimerState, target: int, now: int) -> JobTimerState:
    """
    Running(step=k) -> Running(step=k+1), or Terminal when k+1 is the last step.

    Closes the open interval and opens one for ``target`` unless the job
    reaches its terminal step, in which case the elapsed time is frozen.
    Completion figures are left to the caller.
    """
    phase = state.phase
    if phase != TimerPhase.RUNNING:
        raise InvalidTransition(
            f"Cannot advance from phase {phase.value}",
            command="advance_step",
            current_step=state.current_step,
            attempted_step=target,
        )

    if target != state.current_step + 1 or target > state.total_steps:
        raise InvalidTransition(
            f"Step {target} does not follow step {state.current_step}",
            command="advance_step",
            current_step=state.current_step,
            attempted_step=target,
        )

    intervals = list(state.intervals)
    if intervals and intervals[-1].is_open:
        intervals[-1] = intervals[-1].closed_at(now)

    if target < state.total_steps:
        intervals.append(StepInterval(step=target, started_at_ms=now))
        return state.with_changes(
            now,
            current_step=target,
            intervals=tuple(intervals),
        )

    return state.with_changes(
        now,
        current_step=target,
        intervals=tuple(intervals),
        is_running=False,
        is_on_break=False,
        total_elapsed_ms=max(0, now - state.started_at_ms),
    )


def begin_break(state: JobTimerState, now: int) -> JobTimerState:
    """Running -> OnBreak."""
    if state.phase != TimerPhase.RUNNING:
        raise InvalidTransition(
            f"Cannot start a break from phase {state.phase.value}",
            command="start_break",
            current_step=state.current_step,
        )

    return state.with_changes(
        now,
        is_on_break=True,
        break_intervals=state.break_intervals + (BreakInterval(start_ms=now),),
    )


def end_break(state: JobTimerState, now: int) -> JobTimerState:
    """OnBreak -> Running."""
    if state.phase != TimerPhase.ON_BREAK:
        raise InvalidTransition(
            f"Cannot stop a break from phase {state.phase.value}",
            command="stop_break",
            current_step=state.current_step,
        )

    breaks = list(state.break_intervals)
    if breaks and breaks[-1].end_ms is None:
        breaks[-1] = BreakInterval(start_ms=breaks[-1].start_ms, end_ms=max(now, breaks[-1].start_ms))

    return state.with_changes(
        now,
        is_on_break=False,
        break_intervals=tuple(breaks),
    )
