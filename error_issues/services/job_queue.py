"""
Job queue for handing captured errors from the capture hook to workers.

The hook enqueues an ErrorJob and returns; a worker dequeues it and runs the
Lifecycle Manager. Nothing else is shared between the two sides.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError
from pydantic import ValidationError

from error_issues.config import Settings
from error_issues.models.error import ErrorJob
from error_issues.utils.logging import get_logger

logger = get_logger(__name__)


class QueueUnavailable(Exception):
    """Raised when a job cannot be enqueued or dequeued."""
    pass


class JobQueue(ABC):
    """FIFO queue of error jobs."""

    @abstractmethod
    async def enqueue(self, job: ErrorJob) -> None:
        """Append a job to the queue."""

    @abstractmethod
    async def dequeue(self, timeout: float = 5) -> Optional[ErrorJob]:
        """Wait up to ``timeout`` seconds for the next job; None if none arrived."""

    async def initialize(self) -> None:
        """Open backend connections."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryJobQueue(JobQueue):
    """asyncio queue for a host app and worker sharing one event loop."""

    def __init__(self, maxsize: int = 0):
        self._queue: "asyncio.Queue[ErrorJob]" = asyncio.Queue(maxsize=maxsize)

    async def enqueue(self, job: ErrorJob) -> None:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as e:
            raise QueueUnavailable("In-memory job queue is full") from e

    async def dequeue(self, timeout: float = 5) -> Optional[ErrorJob]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def qsize(self) -> int:
        return self._queue.qsize()


class RedisJobQueue(JobQueue):
    """Redis list queue shared by any number of worker processes."""

    JOB_QUEUE_KEY = "error_issues:jobs"

    def __init__(self, redis_url: Optional[str] = None, connection_timeout: int = 5):
        self._redis_url = redis_url
        self._connection_timeout = connection_timeout
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    async def initialize(self) -> None:
        try:
            # Blocking pops need a socket timeout longer than the pop timeout
            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=10,
                decode_responses=True,
                socket_connect_timeout=self._connection_timeout
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            logger.info("Redis job queue initialized")
        except RedisError as e:
            logger.error(f"Failed to initialize Redis job queue: {e}")
            raise QueueUnavailable(f"Failed to connect to Redis: {e}") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        logger.info("Redis job queue closed")

    def _require_client(self) -> redis.Redis:
        if not self._client:
            raise QueueUnavailable("Redis job queue not initialized. Call initialize() first.")
        return self._client

    async def enqueue(self, job: ErrorJob) -> None:
        client = self._require_client()
        try:
            # Right push, left pop: FIFO
            await client.rpush(self.JOB_QUEUE_KEY, job.model_dump_json())
        except RedisError as e:
            raise QueueUnavailable(f"Failed to enqueue error job: {e}") from e

        logger.debug(f"Enqueued error job (attempt {job.attempt})")

    async def dequeue(self, timeout: float = 5) -> Optional[ErrorJob]:
        client = self._require_client()
        try:
            result = await client.blpop([self.JOB_QUEUE_KEY], timeout=timeout)
        except RedisError as e:
            raise QueueUnavailable(f"Failed to dequeue error job: {e}") from e

        if not result:
            return None

        _, job_json = result
        try:
            return ErrorJob(**json.loads(job_json))
        except (ValueError, ValidationError) as e:
            logger.error(f"Dropping malformed error job: {e}")
            return None

    async def get_queue_length(self) -> int:
        client = self._require_client()
        try:
            return await client.llen(self.JOB_QUEUE_KEY)
        except RedisError as e:
            raise QueueUnavailable(f"Failed to read queue length: {e}") from e


def create_job_queue(settings: Settings) -> JobQueue:
    """Pick the queue backend: Redis when configured, otherwise in-process."""
    if settings.redis_url:
        return RedisJobQueue(redis_url=settings.redis_url)
    return InMemoryJobQueue()
