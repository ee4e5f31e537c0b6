"""
Error fingerprinting.

A fingerprint is the deduplication key for an error: the same message raised
from the same source line always maps to the same fingerprint, in every
process. The stack trace is deliberately left out so that occurrences with
differently truncated traces still collapse onto one issue.
"""

import hashlib
import json


def fingerprint(message: str, source_file: str, source_line: int) -> str:
    """
    Compute the stable identity of an error.

    Args:
        message: Error message
        source_file: File the error was raised from
        source_line: Line number within source_file

    Returns:
        40-character hex digest
    """
    # JSON keeps field boundaries unambiguous whatever the fields contain
    key = json.dumps([message or "", source_file or "", int(source_line)])
    return hashlib.sha1(key.encode("utf-8")).hexdigest()
