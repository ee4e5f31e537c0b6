"""
Application configuration management.
"""

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GitHub
    github_token: str
    github_repo: str  # "owner/repo"
    github_api_url: str = "https://api.github.com"
    github_labels: Annotated[List[str], NoDecode] = ["bug"]
    github_monitor_statuses: Annotated[List[int], NoDecode] = [500]
    tracker_timeout_seconds: float = 10.0

    # Occurrence tracking window
    error_issue_cache_ttl: int = 3600

    # Redis (in-memory store and queue when unset)
    redis_url: Optional[str] = None

    # Application
    environment: str = "production"
    report_environments: Annotated[List[str], NoDecode] = ["production"]
    max_job_attempts: int = 5
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @field_validator("github_labels", "report_environments", mode="before")
    @classmethod
    def _split_names(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("github_monitor_statuses", mode="before")
    @classmethod
    def _split_statuses(cls, value):
        if isinstance(value, str):
            return [int(item) for item in value.split(",") if item.strip()]
        if isinstance(value, int):
            return [value]
        return value

    @field_validator("github_repo")
    @classmethod
    def _check_repo(cls, value: str) -> str:
        owner, _, name = value.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError("github_repo must be in 'owner/repo' format")
        return value

    @property
    def reporting_enabled(self) -> bool:
        """Whether the current environment reports errors to the tracker."""
        return self.environment in self.report_environments


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
