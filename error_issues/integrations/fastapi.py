"""
FastAPI capture hook.

Registers exception handlers on a host app that turn failures into
CapturedError values and enqueue them for a worker. The request that failed
only pays for the enqueue; the tracker is never called on the request path.
"""

import traceback
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from error_issues.config import Settings
from error_issues.models.error import CapturedError, ErrorJob
from error_issues.services.job_queue import JobQueue, QueueUnavailable
from error_issues.utils.logging import get_logger

logger = get_logger(__name__)


def build_captured_error(exc: BaseException, status_code: int) -> CapturedError:
    """
    Extract the reportable facts from an exception.

    The source location is the innermost traceback frame, where the
    exception was raised.
    """
    frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
    if frames:
        source_file, source_line = frames[-1].filename, frames[-1].lineno or 0
    else:
        source_file, source_line = "<unknown>", 0

    if isinstance(exc, StarletteHTTPException):
        message = str(exc.detail)
    else:
        message = str(exc) or type(exc).__name__

    return CapturedError(
        message=message,
        source_file=source_file,
        source_line=source_line,
        stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        status_code=status_code
    )


class ErrorReporter:
    """Filters failures and hands the reportable ones to the job queue."""

    def __init__(self, queue: JobQueue, monitor_statuses: Iterable[int], enabled: bool = True):
        """
        Args:
            queue: Queue read by the worker
            monitor_statuses: HTTP status codes worth an issue
            enabled: Whether this environment reports at all
        """
        self.queue = queue
        self.monitor_statuses = set(monitor_statuses)
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings, queue: JobQueue) -> "ErrorReporter":
        return cls(
            queue=queue,
            monitor_statuses=settings.github_monitor_statuses,
            enabled=settings.reporting_enabled
        )

    def should_report(self, status_code: int) -> bool:
        return self.enabled and status_code in self.monitor_statuses

    async def report(self, exc: BaseException, status_code: int) -> bool:
        """
        Enqueue an exception for reporting if it passes the filters.

        Enqueue failures are logged and swallowed so they never replace the
        host app's own error response.

        Returns:
            True if a job was enqueued
        """
        if not self.should_report(status_code):
            return False

        error = build_captured_error(exc, status_code)
        try:
            await self.queue.enqueue(ErrorJob(error=error))
        except QueueUnavailable as e:
            logger.error(f"Could not enqueue HTTP {status_code} error report: {e}",
                         extra={"status_code": status_code})
            return False

        logger.info(f"Captured HTTP {status_code}, enqueued error report",
                    extra={"status_code": status_code})
        return True


def install_error_reporter(app: FastAPI, reporter: ErrorReporter) -> None:
    """
    Register capture handlers on a FastAPI app.

    HTTP exceptions keep their own status code and FastAPI's default
    response; any other unhandled exception is reported as a 500.
    """

    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        await reporter.report(exc, exc.status_code)
        return await http_exception_handler(request, exc)

    async def handle_unhandled_exception(request: Request, exc: Exception):
        await reporter.report(exc, 500)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unhandled_exception)
