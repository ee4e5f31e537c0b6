"""
Metrics emission for observability.

This module provides metrics tracking for:
- Processing outcomes per captured error
- Tracker API call latency
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict

from error_issues.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


@asynccontextmanager
async def track_api_call(
    service: str,
    endpoint: str,
    method: str,
    logger_adapter
):
    """
    Context manager to track API call timing.

    Usage:
        async with track_api_call("github", "/issues", "POST", logger) as call:
            response = await client.post(...)
            call["status_code"] = response.status_code

    Args:
        service: Service name
        endpoint: API endpoint
        method: HTTP method
        logger_adapter: Logger for logging API calls

    Yields:
        Mutable dict the caller may fill with ``status_code``
    """
    start_time = time.time()
    call: Dict[str, Any] = {"status_code": None}
    error = None

    try:
        yield call
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000

        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            status_code=call["status_code"],
            duration_ms=duration_ms,
            error=str(error) if error else None
        )
        emit_metric(f"{service}.request.duration_ms", duration_ms, method=method)


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a structured log record.

    Log-based metrics can be picked up by any log pipeline that
    extracts ``metric_name`` / ``metric_value`` fields.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
