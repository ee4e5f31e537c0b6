"""Occurrence lifecycle data models."""

from typing import Optional

from pydantic import BaseModel, Field


class LifecycleRecord(BaseModel):
    """Per-fingerprint link between an error and its tracker issue."""

    fingerprint: str
    tracker_issue_id: int
    occurrence_count: int = Field(ge=1)
    expires_at: Optional[float] = None  # epoch seconds, assigned by the store

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now
