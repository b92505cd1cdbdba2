"""
Durable key/value persistence for job state records.
"""
from .job_state_store import JobStateStore

__all__ = ["JobStateStore"]
