"""
Storage error classifications.

StorageReadError is swallowed by the store (load returns None).
StorageWriteError is propagated so the operator can be warned that the
state may not survive a restart; the in-memory state stays authoritative.
"""

from typing import Optional

from .base import EngineError


class StorageError(EngineError):
    """Persistent storage failure."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 key: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.key = key


class StorageReadError(StorageError):
    """Stored record is unreadable or corrupt."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, operation=kwargs.pop("operation", "load"), **kwargs)


class StorageWriteError(StorageError):
    """Record could not be written durably."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, operation=kwargs.pop("operation", "save"), **kwargs)
