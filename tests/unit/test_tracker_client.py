"""
Unit tests for the GitHub tracker client and body formatting.
"""

import asyncio
import json
import time
from datetime import datetime

import httpx
import pytest

from error_issues.services.tracker_client import (
    GitHubTrackerClient,
    TrackerRejected,
    TrackerUnavailable,
    build_comment_body,
    build_issue_body,
    build_issue_title,
    truncate,
)
from error_issues.utils.resilience import CircuitState


class RecordingTransport:
    """Collects requests and answers with a fixed response."""

    def __init__(self, status_code: int = 201, payload=None, exc: Exception = None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {"number": 7}
        self.exc = exc
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, json=self.payload)


def make_client(transport: RecordingTransport) -> GitHubTrackerClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return GitHubTrackerClient(token="ghp_test", repository="acme/shop", http_client=http_client)


class TestCreateIssue:
    """Test issue creation."""

    @pytest.mark.asyncio
    async def test_create_issue_posts_and_returns_number(self):
        """Creation hits the issues endpoint and returns the issue number."""
        transport = RecordingTransport(payload={"number": 7, "id": 99999})
        client = make_client(transport)

        number = await client.create_issue("[500] Boom", "body", ["bug", "prod"])

        assert number == 7
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.github.com/repos/acme/shop/issues"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        assert json.loads(request.content) == {
            "title": "[500] Boom",
            "body": "body",
            "labels": ["bug", "prod"],
        }

    @pytest.mark.asyncio
    async def test_rejected_response(self):
        """Non-success responses raise TrackerRejected with the status."""
        transport = RecordingTransport(status_code=401, payload={"message": "Bad credentials"})
        client = make_client(transport)

        with pytest.raises(TrackerRejected) as exc_info:
            await client.create_issue("t", "b", [])

        assert exc_info.value.status_code == 401
        assert "Bad credentials" in str(exc_info.value)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_missing_issue_number_is_rejected(self):
        """A success response without a numeric number cannot be tracked."""
        client = make_client(RecordingTransport(payload={"id": "abc"}))

        with pytest.raises(TrackerRejected):
            await client.create_issue("t", "b", [])

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        """Timeouts raise TrackerUnavailable."""
        transport = RecordingTransport(exc=httpx.ReadTimeout("timed out"))
        client = make_client(transport)

        with pytest.raises(TrackerUnavailable):
            await client.create_issue("t", "b", [])

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        """Transport errors raise TrackerUnavailable."""
        client = make_client(RecordingTransport(exc=httpx.ConnectError("refused")))

        with pytest.raises(TrackerUnavailable):
            await client.create_issue("t", "b", [])

    @pytest.mark.asyncio
    async def test_create_is_not_retried(self):
        """One failed create means one request; retries belong to the queue."""
        transport = RecordingTransport(status_code=502, payload={"message": "Bad gateway"})
        client = make_client(transport)

        with pytest.raises(TrackerRejected) as exc_info:
            await client.create_issue("t", "b", [])

        assert len(transport.requests) == 1
        assert exc_info.value.retryable is True


class TestAddComment:
    """Test occurrence comments."""

    @pytest.mark.asyncio
    async def test_add_comment_posts_body(self):
        """Comments go to the issue's comments endpoint with no labels."""
        transport = RecordingTransport(payload={"id": 1})
        client = make_client(transport)

        await client.add_comment(7, "seen again")

        request = transport.requests[0]
        assert str(request.url) == "https://api.github.com/repos/acme/shop/issues/7/comments"
        assert json.loads(request.content) == {"body": "seen again"}

    @pytest.mark.asyncio
    async def test_rate_limited_comment(self):
        """Rate limiting is a retryable rejection."""
        client = make_client(RecordingTransport(status_code=429, payload={"message": "slow down"}))

        with pytest.raises(TrackerRejected) as exc_info:
            await client.add_comment(7, "body")

        assert exc_info.value.retryable is True


class TestCircuitBreaker:
    """Test circuit breaker integration."""

    @pytest.mark.asyncio
    async def test_open_circuit_is_unavailable_without_request(self):
        """An open circuit fails fast."""
        transport = RecordingTransport()
        client = make_client(transport)
        client.circuit_breaker.state = CircuitState.OPEN
        client.circuit_breaker.last_failure_time = time.time()

        with pytest.raises(TrackerUnavailable):
            await client.add_comment(7, "body")

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_validation_errors_do_not_open_circuit(self):
        """Client-side rejections say nothing about tracker health."""
        client = make_client(RecordingTransport(status_code=422, payload={"message": "Validation Failed"}))

        for _ in range(10):
            with pytest.raises(TrackerRejected):
                await client.create_issue("t", "b", [])

        assert client.circuit_breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_repeated_timeouts_open_circuit(self):
        """Unreachable tracker opens the circuit."""
        client = make_client(RecordingTransport(exc=httpx.ConnectTimeout("timeout")))

        for _ in range(5):
            with pytest.raises(TrackerUnavailable):
                await client.create_issue("t", "b", [])

        assert client.circuit_breaker.get_state() == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_cancelled_half_open_request_does_not_block_client(self):
        """A request abandoned while half-open leaves room for the next one."""
        requests = []

        async def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if len(requests) == 1:
                await asyncio.sleep(60)
            return httpx.Response(201, json={"number": 8})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = GitHubTrackerClient(token="ghp_test", repository="acme/shop", http_client=http_client)
        client.circuit_breaker.state = CircuitState.OPEN
        client.circuit_breaker.last_failure_time = time.time() - 120

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(client.create_issue("t", "b", []), timeout=0.05)

        assert await client.create_issue("t", "b", []) == 8
        assert len(requests) == 2
        assert client.circuit_breaker.get_state() == CircuitState.CLOSED


class TestFormatting:
    """Test issue and comment bodies."""

    def test_title_short_message(self):
        assert build_issue_title(500, "Division by zero") == "[500] Division by zero"

    def test_title_truncates_long_message(self):
        title = build_issue_title(503, "x" * 100)

        assert title == "[503] " + "x" * 80 + "..."

    def test_truncate_exact_limit_is_untouched(self):
        assert truncate("y" * 80) == "y" * 80

    def test_issue_body_contents(self, division_error):
        body = build_issue_body(division_error, 1)

        assert "**Status:** 500" in body
        assert "**Error Message:** Division by zero" in body
        assert "**Location:** calc.x : 42" in body
        assert "**Occurrences:** 1" in body
        assert f"```\n{division_error.stack_trace}\n```" in body

    def test_comment_body_has_count_and_timestamp_but_no_trace(self, division_error):
        body = build_comment_body(3, datetime(2024, 1, 2, 3, 4, 5))

        assert "**3×**" in body
        assert "Timestamp: 2024-01-02 03:04:05" in body
        assert division_error.stack_trace not in body
        assert "```" not in body
