"""
Lifecycle Manager component.

Decides, for one captured error, whether to open a tracker issue or to add an
occurrence comment to the issue already linked to its fingerprint, performs
that call and writes the updated record back to the Occurrence Store.

Failure rules:
- A failed store lookup stops the run before any tracker call. Treating it
  as "unseen" would open duplicate issues whenever the store is slow.
- A failed tracker call writes nothing, so the next occurrence retries the
  same step with the same count.
- A failed store write after a successful tracker call is logged and
  reported on the result; the tracker side effect is not rolled back. After
  a create this leaves an issue with no record, and the next occurrence will
  open another one.

Concurrency: there is no per-fingerprint lock. Two workers handling the first
occurrences of the same error at the same instant can both miss in the store
and both open an issue; the later ``put`` wins and the other issue is no
longer tracked. Deployments that cannot accept this must route all jobs for a
fingerprint through a single consumer.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from error_issues.config import Settings
from error_issues.models.error import CapturedError
from error_issues.models.record import LifecycleRecord
from error_issues.models.result import ProcessOutcome, ProcessResult
from error_issues.services.fingerprint import fingerprint
from error_issues.services.occurrence_store import (
    InMemoryOccurrenceStore,
    OccurrenceStore,
    StoreUnavailable,
)
from error_issues.services.redis_store import RedisOccurrenceStore
from error_issues.services.tracker_client import (
    GitHubTrackerClient,
    TrackerError,
    TrackerRejected,
    build_comment_body,
    build_issue_body,
    build_issue_title,
)
from error_issues.utils.logging import ContextLoggerAdapter, get_logger

logger = get_logger(__name__)


class LifecycleManager:
    """Maps captured errors onto tracker issues, one issue per fingerprint per window."""

    def __init__(
        self,
        store: OccurrenceStore,
        tracker: GitHubTrackerClient,
        labels: List[str],
        ttl_seconds: int,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the manager.

        Args:
            store: Occurrence Store backend
            tracker: Tracker client
            labels: Labels applied to newly opened issues
            ttl_seconds: Tracking window, refreshed on every occurrence
            clock: Source of the timestamp written into occurrence comments
        """
        self.store = store
        self.tracker = tracker
        self.labels = list(labels)
        self.ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def process(self, error: CapturedError) -> ProcessResult:
        """
        Report one occurrence of an error.

        Never raises for store or tracker failures; the outcome is carried
        by the returned result.

        Args:
            error: Captured error selected for reporting

        Returns:
            ProcessResult describing what happened
        """
        fp = fingerprint(error.message, error.source_file, error.source_line)
        log = logger.with_context(fingerprint=fp, status_code=error.status_code)

        try:
            record = await self.store.get(fp)
        except StoreUnavailable as e:
            log.warning(f"Occurrence lookup failed, deferring report: {e}")
            return ProcessResult(
                outcome=ProcessOutcome.STORE_UNAVAILABLE,
                fingerprint=fp,
                retryable=True,
                error=str(e)
            )

        if record is None:
            return await self._open_issue(fp, error, log)
        return await self._add_occurrence(fp, record, log)

    async def _open_issue(
        self,
        fp: str,
        error: CapturedError,
        log: ContextLoggerAdapter
    ) -> ProcessResult:
        log.info(f"First occurrence of {error.source_file}:{error.source_line}, opening issue")

        try:
            issue_id = await self.tracker.create_issue(
                build_issue_title(error.status_code, error.message),
                build_issue_body(error, 1),
                self.labels
            )
        except TrackerError as e:
            return self._tracker_failure(fp, e, log)

        saved = await self._save(fp, LifecycleRecord(
            fingerprint=fp,
            tracker_issue_id=issue_id,
            occurrence_count=1
        ), log.with_context(issue_id=issue_id))

        return ProcessResult(
            outcome=ProcessOutcome.CREATED,
            fingerprint=fp,
            issue_id=issue_id,
            occurrence_count=1,
            record_saved=saved
        )

    async def _add_occurrence(
        self,
        fp: str,
        record: LifecycleRecord,
        log: ContextLoggerAdapter
    ) -> ProcessResult:
        issue_id = record.tracker_issue_id
        new_count = record.occurrence_count + 1
        log = log.with_context(issue_id=issue_id)
        log.info(f"Repeat occurrence, count={new_count}")

        try:
            await self.tracker.add_comment(issue_id, build_comment_body(new_count, self._clock()))
        except TrackerError as e:
            return self._tracker_failure(fp, e, log)

        saved = await self._save(fp, LifecycleRecord(
            fingerprint=fp,
            tracker_issue_id=issue_id,
            occurrence_count=new_count
        ), log)

        return ProcessResult(
            outcome=ProcessOutcome.COMMENTED,
            fingerprint=fp,
            issue_id=issue_id,
            occurrence_count=new_count,
            record_saved=saved
        )

    async def _save(self, fp: str, record: LifecycleRecord, log: ContextLoggerAdapter) -> bool:
        try:
            await self.store.put(fp, record, self.ttl_seconds)
        except StoreUnavailable as e:
            log.error(
                f"Tracker updated but occurrence record not saved "
                f"(count={record.occurrence_count}): {e}"
            )
            return False
        return True

    def _tracker_failure(
        self,
        fp: str,
        error: TrackerError,
        log: ContextLoggerAdapter
    ) -> ProcessResult:
        if isinstance(error, TrackerRejected):
            outcome = ProcessOutcome.TRACKER_REJECTED
            retryable = error.retryable
        else:
            outcome = ProcessOutcome.TRACKER_UNAVAILABLE
            retryable = True

        log.warning(f"Tracker call failed ({outcome.value}): {error}")
        return ProcessResult(
            outcome=outcome,
            fingerprint=fp,
            retryable=retryable,
            error=str(error)
        )


def create_occurrence_store(settings: Settings) -> OccurrenceStore:
    """Pick the store backend: Redis when configured, otherwise in-process."""
    if settings.redis_url:
        return RedisOccurrenceStore(redis_url=settings.redis_url)
    return InMemoryOccurrenceStore()


def create_lifecycle_manager(
    settings: Settings,
    store: Optional[OccurrenceStore] = None,
    tracker: Optional[GitHubTrackerClient] = None
) -> LifecycleManager:
    """
    Wire a manager from settings.

    A Redis store returned here still needs ``initialize()`` before use.
    """
    return LifecycleManager(
        store=store or create_occurrence_store(settings),
        tracker=tracker or GitHubTrackerClient.from_settings(settings),
        labels=settings.github_labels,
        ttl_seconds=settings.error_issue_cache_ttl
    )
