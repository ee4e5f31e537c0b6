"""Processing result data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ProcessOutcome(str, Enum):
    """Outcome of processing one captured error."""

    CREATED = "created"
    COMMENTED = "commented"
    STORE_UNAVAILABLE = "store_unavailable"
    TRACKER_UNAVAILABLE = "tracker_unavailable"
    TRACKER_REJECTED = "tracker_rejected"


class ProcessResult(BaseModel):
    """Result of a lifecycle manager run."""

    outcome: ProcessOutcome
    fingerprint: str
    issue_id: Optional[int] = None
    occurrence_count: Optional[int] = None
    record_saved: bool = False
    retryable: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (ProcessOutcome.CREATED, ProcessOutcome.COMMENTED)
