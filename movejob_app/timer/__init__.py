"""
Job timer state machine.

Owns the live clock of a job: NotStarted -> Running <-> OnBreak -> Terminal.
"""
from .machine import JobTimer
from .models import BreakInterval, JobTimerState, StepInterval, TimerPhase

__all__ = [
    "BreakInterval",
    "JobTimer",
    "JobTimerState",
    "StepInterval",
    "TimerPhase",
]
