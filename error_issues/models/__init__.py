"""Data models for the error issue lifecycle."""

from .error import CapturedError, ErrorJob
from .record import LifecycleRecord
from .result import ProcessOutcome, ProcessResult

__all__ = [
    # Error models
    "CapturedError",
    "ErrorJob",
    # Lifecycle models
    "LifecycleRecord",
    # Result models
    "ProcessOutcome",
    "ProcessResult",
]
