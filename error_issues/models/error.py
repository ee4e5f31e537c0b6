"""Captured error data models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class CapturedError(BaseModel):
    """Error facts captured from the host application's failure path."""

    model_config = ConfigDict(frozen=True)

    message: str
    source_file: str
    source_line: int
    stack_trace: str = ""
    status_code: int = 500


class ErrorJob(BaseModel):
    """Queue envelope carrying a captured error to a worker."""

    error: CapturedError
    attempt: int = 1
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
