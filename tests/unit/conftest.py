"""Shared fixtures for unit tests."""

import pytest

from error_issues.models.error import CapturedError


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def division_error() -> CapturedError:
    """The canonical captured error used across tests."""
    return CapturedError(
        message="Division by zero",
        source_file="calc.x",
        source_line=42,
        stack_trace="#0 calc.x(42): divide()\n#1 {main}",
        status_code=500
    )
