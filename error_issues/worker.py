"""
Worker process for the error job queue.

Polls the job queue for captured errors and runs the Lifecycle Manager on
each one. Retryable failures are put back on the queue with an incremented
attempt counter; this is the only retry path, the manager itself never
retries. Supports multiple worker instances for parallel processing and
implements graceful shutdown on SIGTERM.
"""

import asyncio
import signal
import sys
from typing import Optional

from error_issues.config import get_settings
from error_issues.models.error import ErrorJob
from error_issues.models.result import ProcessResult
from error_issues.services.job_queue import JobQueue, QueueUnavailable, create_job_queue
from error_issues.services.lifecycle_manager import LifecycleManager, create_lifecycle_manager
from error_issues.utils.logging import setup_logging, get_logger, log_error_with_context
from error_issues.utils.metrics import emit_metric

logger = get_logger(__name__)


class Worker:
    """Worker that drains the error job queue into the tracker."""

    def __init__(
        self,
        queue: JobQueue,
        manager: LifecycleManager,
        max_job_attempts: int = 5,
        retry_delay: float = 1.0,
        poll_timeout: float = 5
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue to consume from and re-enqueue retries onto
            manager: Lifecycle manager that processes each error
            max_job_attempts: Attempts before a retryable job is dropped
            retry_delay: Base delay before re-enqueueing, multiplied by attempt
            poll_timeout: Blocking dequeue timeout, bounds shutdown latency
        """
        self.queue = queue
        self.manager = manager
        self.max_job_attempts = max_job_attempts
        self.retry_delay = retry_delay
        self.poll_timeout = poll_timeout
        self.running = False
        self.current_job: Optional[ErrorJob] = None

    async def start(self, handle_signals: bool = True) -> None:
        """
        Start the worker process.

        Initializes connections and begins polling the job queue. Pass
        handle_signals=False when running inside a host app that owns
        SIGTERM/SIGINT handling.
        """
        logger.info("Starting worker process...")

        await self.queue.initialize()
        await self.manager.store.initialize()

        self.running = True
        if handle_signals:
            self._register_signal_handlers()

        logger.info("Worker process started successfully")
        await self._process_jobs()

    async def stop(self) -> None:
        """
        Stop the worker process.

        The loop exits after the job in progress, at the latest one poll
        timeout later.
        """
        self.running = False

        await self.queue.close()
        await self.manager.store.close()
        await self.manager.tracker.close()

        logger.info("Worker process stopped")

    async def _process_jobs(self) -> None:
        """
        Main job processing loop.

        Continuously polls the job queue and processes error jobs.
        """
        logger.info("Starting job processing loop...")

        while self.running:
            try:
                job = await self.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue

                self.current_job = job
                try:
                    await self._process_job(job)
                finally:
                    self.current_job = None

            except asyncio.CancelledError:
                logger.info("Job processing cancelled")
                break

            except QueueUnavailable as e:
                logger.error(f"Job queue unavailable: {e}")
                await asyncio.sleep(1)

            except Exception as e:
                # One bad job must not stop the loop
                log_error_with_context(logger, f"Error processing job: {e}", e)
                await asyncio.sleep(1)

        logger.info("Job processing loop stopped")

    async def _process_job(self, job: ErrorJob) -> ProcessResult:
        """
        Process one job and requeue it if the failure is retryable.

        Args:
            job: Job taken from the queue

        Returns:
            Result of the lifecycle manager run
        """
        result = await self.manager.process(job.error)
        log = logger.with_context(
            fingerprint=result.fingerprint,
            status_code=job.error.status_code,
            attempt=job.attempt
        )

        emit_metric("error_issues.jobs.processed", 1, outcome=result.outcome.value)

        if result.success:
            if not result.record_saved:
                log.warning(
                    f"Issue #{result.issue_id} updated but occurrence record missing; "
                    "the next occurrence may open a duplicate issue"
                )
            log.info(f"Job completed: {result.outcome.value} issue #{result.issue_id}")
            return result

        if result.retryable and job.attempt < self.max_job_attempts:
            try:
                await self._requeue(job, log)
                return result
            except QueueUnavailable as e:
                log.error(f"Could not requeue error report: {e}")

        log.error(
            f"Dropping error report after attempt {job.attempt}: "
            f"{result.outcome.value} ({result.error})"
        )
        emit_metric("error_issues.jobs.dropped", 1, outcome=result.outcome.value)

        return result

    async def _requeue(self, job: ErrorJob, log) -> None:
        delay = self.retry_delay * job.attempt
        if delay > 0:
            await asyncio.sleep(delay)

        retry = job.model_copy(update={"attempt": job.attempt + 1})
        await self.queue.enqueue(retry)
        log.info(f"Requeued error report for attempt {retry.attempt}/{self.max_job_attempts}")

    def _register_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received signal {signal_name}, initiating graceful shutdown...")
            self.running = False

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)


async def main():
    """Main entry point for worker process."""
    settings = get_settings()
    setup_logging(settings.log_level.upper())

    if not settings.redis_url:
        logger.warning(
            "REDIS_URL is not set; this worker only sees jobs enqueued in its own process"
        )

    worker = Worker(
        queue=create_job_queue(settings),
        manager=create_lifecycle_manager(settings),
        max_job_attempts=settings.max_job_attempts
    )

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Worker process failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await worker.stop()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
