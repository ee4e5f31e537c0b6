"""
Redis-backed Occurrence Store for multi-instance deployments.

Records are stored as JSON strings written with ``SET ... EX ttl`` so Redis
removes them on its own. Reads additionally compare ``expires_at`` against
the local clock so a record past its window is a miss even if Redis has not
evicted it yet.

Includes connection pooling and retry logic for transient failures.
"""

import json
import time
import asyncio
from typing import Callable, Optional
from contextlib import asynccontextmanager
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from pydantic import ValidationError

from error_issues.models.record import LifecycleRecord
from error_issues.services.occurrence_store import OccurrenceStore, StoreUnavailable
from error_issues.utils.logging import get_logger


logger = get_logger(__name__)


class RedisOccurrenceStore(OccurrenceStore):
    """
    Occurrence Store on Redis with connection pooling and retry logic.
    """

    RECORD_KEY = "error_issues:occurrence:{fingerprint}"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        connection_timeout: int = 5,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize Redis store.

        Args:
            redis_url: Redis connection URL
            max_retries: Maximum number of attempts for transient errors
            retry_delay: Base delay between retries (exponential backoff)
            connection_timeout: Socket and connect timeout in seconds
            clock: Source of epoch seconds, for expiry checks
        """
        self._redis_url = redis_url
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._connection_timeout = connection_timeout
        self._clock = clock or time.time

    async def initialize(self) -> None:
        """
        Initialize Redis connection pool.

        Should be called during application startup.

        Raises:
            StoreUnavailable: If the connection cannot be established
        """
        try:
            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=10,
                decode_responses=True,
                socket_timeout=self._connection_timeout,
                socket_connect_timeout=self._connection_timeout
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()

            logger.info("Redis occurrence store initialized")

        except (RedisError, OSError) as e:
            logger.error(f"Failed to initialize Redis occurrence store: {e}")
            raise StoreUnavailable(f"Failed to connect to Redis: {e}") from e

    async def close(self) -> None:
        """
        Close Redis connection pool.

        Should be called during application shutdown.
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        logger.info("Redis occurrence store closed")

    @asynccontextmanager
    async def _get_client(self):
        """
        Get Redis client with connection check.

        Yields:
            redis.Redis: Redis client instance

        Raises:
            StoreUnavailable: If client not initialized
        """
        if not self._client:
            raise StoreUnavailable("Redis store not initialized. Call initialize() first.")

        yield self._client

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Execute Redis operation with retry logic.

        Connection and timeout errors are retried with exponential backoff;
        any other Redis error fails immediately.

        Raises:
            StoreUnavailable: If operation fails
        """
        last_error = None

        for attempt in range(self._max_retries):
            try:
                return await operation(*args, **kwargs)

            except (ConnectionError, TimeoutError) as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Redis operation failed (attempt {attempt + 1}/{self._max_retries}), "
                        f"retrying in {delay}s: {e}"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"Redis operation failed after {self._max_retries} attempts: {e}")

            except RedisError as e:
                logger.error(f"Redis operation failed with non-transient error: {e}")
                raise StoreUnavailable(f"Redis operation failed: {e}") from e

        raise StoreUnavailable(
            f"Redis operation failed after {self._max_retries} retries: {last_error}"
        ) from last_error

    def _record_key(self, fingerprint: str) -> str:
        """Get Redis key for an occurrence record."""
        return self.RECORD_KEY.format(fingerprint=fingerprint)

    async def get(self, fingerprint: str) -> Optional[LifecycleRecord]:
        async def _get():
            async with self._get_client() as client:
                return await client.get(self._record_key(fingerprint))

        record_json = await self._retry_operation(_get)

        if not record_json:
            return None

        try:
            record = LifecycleRecord(**json.loads(record_json))
        except (ValueError, ValidationError) as e:
            # Unreadable data cannot be trusted to carry an issue id
            raise StoreUnavailable(f"Corrupt occurrence record for {fingerprint}: {e}") from e

        if record.is_expired(self._clock()):
            return None

        return record

    async def put(self, fingerprint: str, record: LifecycleRecord, ttl: int) -> LifecycleRecord:
        stored = record.model_copy(update={
            "fingerprint": fingerprint,
            "expires_at": self._clock() + ttl,
        })

        async def _put():
            async with self._get_client() as client:
                await client.set(
                    self._record_key(fingerprint),
                    stored.model_dump_json(),
                    ex=max(int(ttl), 1)
                )

        await self._retry_operation(_put)
        logger.debug(f"Stored occurrence record (count={stored.occurrence_count})",
                     extra={"fingerprint": fingerprint})

        return stored
