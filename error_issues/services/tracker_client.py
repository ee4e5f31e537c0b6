"""
Tracker Client component.

Opens issues and posts occurrence comments on GitHub through the REST API.
Issue and comment bodies are built here as well, so the wording of what a
developer sees in the tracker lives in one place.

Calls are never retried here: repeating a create request after an ambiguous
failure could open a second issue for the same error. Retrying is left to the
job queue, which re-runs the whole lifecycle decision.
"""

from datetime import datetime
from typing import List, Optional

import httpx

from error_issues.config import Settings
from error_issues.models.error import CapturedError
from error_issues.utils.logging import get_logger
from error_issues.utils.metrics import track_api_call
from error_issues.utils.resilience import CircuitBreaker, CircuitBreakerOpenError

logger = get_logger(__name__)

TITLE_MESSAGE_LIMIT = 80


class TrackerError(Exception):
    """Base exception for tracker failures."""
    pass


class TrackerUnavailable(TrackerError):
    """The tracker could not be reached (connection error, timeout, open circuit)."""
    pass


class TrackerRejected(TrackerError):
    """The tracker answered with a non-success response."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Tracker rejected request with HTTP {status_code}: {message}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Rate limiting and server-side errors may succeed later."""
        return self.status_code == 429 or self.status_code >= 500


def truncate(text: str, limit: int = TITLE_MESSAGE_LIMIT, end: str = "...") -> str:
    """Cut text to ``limit`` characters, marking the cut with ``end``."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + end


def build_issue_title(status_code: int, message: str) -> str:
    return f"[{status_code}] {truncate(message)}"


def build_issue_body(error: CapturedError, count: int = 1) -> str:
    """
    Build the markdown body for a newly opened issue.

    Args:
        error: Captured error details
        count: Occurrence count to display

    Returns:
        Formatted markdown
    """
    parts = [
        f"**Status:** {error.status_code}",
        "",
        f"**Error Message:** {error.message}",
        "",
        f"**Location:** {error.source_file} : {error.source_line}",
        "",
        f"**Occurrences:** {count}",
        "",
        "**Stack Trace:**",
        "```",
        error.stack_trace,
        "```",
    ]
    return "\n".join(parts)


def build_comment_body(count: int, observed_at: datetime) -> str:
    """
    Build the markdown body for a repeat occurrence.

    The stack trace is left out; it is already on the issue.
    """
    return (
        f"> This error has occurred **{count}×** so far.\n\n"
        f"Timestamp: {observed_at.strftime('%Y-%m-%d %H:%M:%S')}"
    )


def _trips_circuit(error: BaseException) -> bool:
    if isinstance(error, TrackerRejected):
        return error.retryable
    return True


def create_tracker_circuit_breaker() -> CircuitBreaker:
    """Create circuit breaker configured for tracker API calls."""
    return CircuitBreaker(
        failure_threshold=5,
        timeout=60,
        half_open_max_calls=1,
        should_trip=_trips_circuit
    )


class GitHubTrackerClient:
    """Creates issues and comments in one GitHub repository."""

    SERVICE_NAME = "github"

    def __init__(
        self,
        token: str,
        repository: str,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the tracker client.

        Args:
            token: GitHub token with permission to write issues
            repository: Target repository in "owner/repo" format
            api_url: GitHub REST API root
            timeout: Per-request timeout in seconds
            http_client: Optional pre-built httpx client (not closed by us)
            circuit_breaker: Optional CircuitBreaker instance for fault tolerance
        """
        self._repository = repository
        self._base_url = f"{api_url.rstrip('/')}/repos/{repository}"
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "error-issues",
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.circuit_breaker = circuit_breaker or create_tracker_circuit_breaker()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GitHubTrackerClient":
        return cls(
            token=settings.github_token,
            repository=settings.github_repo,
            api_url=settings.github_api_url,
            timeout=settings.tracker_timeout_seconds,
            **kwargs
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create_issue(self, title: str, body: str, labels: List[str]) -> int:
        """
        Open a new issue.

        Args:
            title: Issue title
            body: Markdown body
            labels: Labels applied verbatim

        Returns:
            The issue number assigned by GitHub

        Raises:
            TrackerUnavailable: If GitHub could not be reached
            TrackerRejected: If GitHub refused the request
        """
        response = await self._post("/issues", {
            "title": title,
            "body": body,
            "labels": list(labels),
        })

        try:
            number = response.json().get("number")
        except (ValueError, AttributeError):
            number = None

        if not isinstance(number, int) or isinstance(number, bool):
            raise TrackerRejected(response.status_code, "response has no issue number")

        logger.info(f"Created issue #{number} in {self._repository}", extra={"issue_id": number})
        return number

    async def add_comment(self, issue_id: int, body: str) -> None:
        """
        Comment on an existing issue.

        Raises:
            TrackerUnavailable: If GitHub could not be reached
            TrackerRejected: If GitHub refused the request
        """
        await self._post(f"/issues/{issue_id}/comments", {"body": body})
        logger.info(f"Commented on issue #{issue_id} in {self._repository}", extra={"issue_id": issue_id})

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        url = f"{self._base_url}{path}"

        try:
            async with track_api_call(self.SERVICE_NAME, path, "POST", logger) as call:
                async def _send() -> httpx.Response:
                    response = await self._client.post(url, json=payload, headers=self._headers)
                    call["status_code"] = response.status_code
                    if not response.is_success:
                        raise TrackerRejected(response.status_code, self._error_message(response))
                    return response

                return await self.circuit_breaker.call(_send)

        except CircuitBreakerOpenError as e:
            raise TrackerUnavailable(str(e)) from e
        except httpx.TimeoutException as e:
            raise TrackerUnavailable(f"Timed out calling {path}: {e}") from e
        except httpx.TransportError as e:
            raise TrackerUnavailable(f"Could not reach tracker at {path}: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return str(response.json().get("message") or response.reason_phrase)
        except (ValueError, AttributeError):
            return response.reason_phrase or "unknown error"
