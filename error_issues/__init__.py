"""Mirror recurring application errors into deduplicated GitHub issues."""

__version__ = "0.1.0"
