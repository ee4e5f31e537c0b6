"""Error deduplication and issue lifecycle services."""

from error_issues.services.fingerprint import fingerprint
from error_issues.services.occurrence_store import (
    OccurrenceStore,
    InMemoryOccurrenceStore,
    StoreUnavailable
)
from error_issues.services.redis_store import RedisOccurrenceStore
from error_issues.services.tracker_client import (
    GitHubTrackerClient,
    TrackerError,
    TrackerUnavailable,
    TrackerRejected
)
from error_issues.services.lifecycle_manager import (
    LifecycleManager,
    create_lifecycle_manager,
    create_occurrence_store
)
from error_issues.services.job_queue import (
    JobQueue,
    InMemoryJobQueue,
    RedisJobQueue,
    QueueUnavailable,
    create_job_queue
)

__all__ = [
    'fingerprint',
    'OccurrenceStore',
    'InMemoryOccurrenceStore',
    'StoreUnavailable',
    'RedisOccurrenceStore',
    'GitHubTrackerClient',
    'TrackerError',
    'TrackerUnavailable',
    'TrackerRejected',
    'LifecycleManager',
    'create_lifecycle_manager',
    'create_occurrence_store',
    'JobQueue',
    'InMemoryJobQueue',
    'RedisJobQueue',
    'QueueUnavailable',
    'create_job_queue'
]
