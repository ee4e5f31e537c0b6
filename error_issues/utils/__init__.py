"""
Utility modules for error issue reporting.
"""

from error_issues.utils.logging import (
    get_logger,
    setup_logging,
    log_api_call,
    log_error_with_context,
)
from error_issues.utils.metrics import (
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_api_call",
    "log_error_with_context",
    "track_api_call",
    "emit_metric",
]
