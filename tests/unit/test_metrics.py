"""
Unit tests for metrics utilities.
"""

import logging

import pytest

from error_issues.utils.logging import get_logger
from error_issues.utils.metrics import emit_metric, track_api_call


def test_emit_metric(caplog):
    """Test metric emission as a log record."""
    caplog.set_level(logging.INFO, logger="error_issues.utils.metrics")

    emit_metric("error_issues.jobs.processed", 1, outcome="created")

    record = next(r for r in caplog.records if r.getMessage() == "Metric: error_issues.jobs.processed")
    assert record.metric_value == 1
    assert record.metric_tags == {"outcome": "created"}


@pytest.mark.asyncio
async def test_track_api_call_logs_status_and_duration(caplog):
    caplog.set_level(logging.INFO)
    logger = get_logger("test_track_api_call")

    async with track_api_call("github", "/issues", "POST", logger) as call:
        call["status_code"] = 201

    record = next(r for r in caplog.records if r.getMessage() == "API call: POST /issues")
    assert record.http_status == 201
    assert record.duration_ms >= 0
    assert record.service == "github"


@pytest.mark.asyncio
async def test_track_api_call_logs_and_reraises_errors(caplog):
    caplog.set_level(logging.INFO)
    logger = get_logger("test_track_api_call_error")

    with pytest.raises(RuntimeError):
        async with track_api_call("github", "/issues", "POST", logger):
            raise RuntimeError("connection reset")

    record = next(r for r in caplog.records if r.getMessage() == "API call failed: POST /issues")
    assert record.levelno == logging.ERROR
    assert record.error == "connection reset"
