"""Base error type shared by every engine exception."""

from typing import Optional, Dict, Any


class EngineError(Exception):
    """Base class for all job engine errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recoverable: bool = True):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = recoverable
