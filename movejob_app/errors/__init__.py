"""
Error classification for the job execution engine.

Transition-level errors are recovered locally by the state machines and
turned into no-ops. Storage read errors degrade to "not found". Only
configuration errors and storage write errors reach the caller.
"""

from .base import EngineError
from .transitions import (
    InvalidConfiguration,
    InvalidTransition,
)
from .storage import (
    StorageError,
    StorageReadError,
    StorageWriteError,
)

__all__ = [
    "EngineError",
    # Command and configuration errors
    "InvalidConfiguration",
    "InvalidTransition",
    # Storage errors
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
]
