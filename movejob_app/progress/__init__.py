"""
Job progress state machine.

Tracks which steps are marked complete and whether the job as a whole is
complete, independently from wall-clock timing.
"""
from .machine import JobProgress
from .models import JobProgressState, ProgressStep

__all__ = ["JobProgress", "JobProgressState", "ProgressStep"]
