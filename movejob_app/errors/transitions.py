"""
Command and configuration error classifications.

InvalidTransition never escapes a state machine: it is raised by the
validation helpers and caught at the command boundary, where the command
becomes a logged no-op.
"""

from typing import Optional, Any

from .base import EngineError


class InvalidConfiguration(EngineError):
    """Configuration value that cannot produce a usable job."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, **kwargs):
        super().__init__(message, recoverable=False, **kwargs)
        self.field = field
        self.value = value


class InvalidTransition(EngineError):
    """Out-of-order step advance, double start, or similar rejected command."""

    def __init__(self, message: str, command: Optional[str] = None,
                 current_step: Optional[int] = None,
                 attempted_step: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.command = command
        self.current_step = current_step
        self.attempted_step = attempted_step
