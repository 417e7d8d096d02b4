"""
Redis client wrapper for the scan job queue.

This service provides Redis operations for:
- Job records using hashes (state, progress, failure reason, result)
- The pending-job queue using a list

Includes connection pooling and retry logic for resilience.
"""

import json
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ConnectionError, TimeoutError

from dora_tracker.models.job import JobKind, JobState, ScanJob
from dora_tracker.utils.logging import get_logger, log_job_transition


logger = get_logger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails after retries."""
    pass


class RedisClient:
    """
    Redis client wrapper with connection pooling and retry logic.

    Provides methods for:
    - Job queue operations (list push/pop)
    - Job record operations (hash fields)
    """

    # Redis keys
    JOB_KEY = "job:{job_id}"
    JOB_QUEUE_KEY = "job_queue:scans"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        connection_timeout: int = 5
    ):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL. If None, will load from settings.
            max_retries: Maximum number of retry attempts for transient errors
            retry_delay: Base delay between retries (exponential backoff)
            connection_timeout: Connection timeout in seconds
        """
        self._redis_url = redis_url
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._connection_timeout = connection_timeout

    async def initialize(self) -> None:
        """
        Initialize Redis connection pool.

        Raises:
            RedisConnectionError: If connection fails
        """
        try:
            if not self._redis_url:
                from dora_tracker.config import settings
                self._redis_url = settings.redis_url

            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=10,
                decode_responses=True,
                socket_timeout=None,
                socket_connect_timeout=self._connection_timeout
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()

            logger.info("Redis connection pool initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise RedisConnectionError(f"Failed to connect to Redis: {e}")

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        logger.info("Redis connection pool closed")

    @asynccontextmanager
    async def _get_client(self):
        if not self._client:
            raise RuntimeError("Redis client not initialized. Call initialize() first.")

        yield self._client

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Execute Redis operation with retry logic.

        Raises:
            RedisConnectionError: If operation fails after all retries
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
                # Non-transient errors, don't retry
                logger.error(f"Redis operation failed with non-transient error: {e}")
                raise

        raise RedisConnectionError(f"Redis operation failed after {self._max_retries} retries: {last_error}")

    def _job_key(self, job_id: str) -> str:
        return self.JOB_KEY.format(job_id=job_id)

    # ========== Job Queue Operations (List) ==========

    async def enqueue_job(self, kind: JobKind, data: Dict[str, Any]) -> ScanJob:
        """
        Create a job record and push its id onto the queue.

        Args:
            kind: Job kind (dev, uat, prod)
            data: Job arguments (``repo_ref`` or ``doc_id``)

        Returns:
            The waiting ScanJob

        Raises:
            RedisConnectionError: If operation fails after retries
        """
        job = ScanJob(
            id=uuid.uuid4().hex,
            kind=kind,
            data=data,
            created_at=datetime.now(timezone.utc)
        )

        async def _enqueue():
            async with self._get_client() as client:
                await client.hset(self._job_key(job.id), mapping={
                    "kind": job.kind.value,
                    "data": json.dumps(job.data),
                    "state": job.state.value,
                    "progress": job.progress,
                    "created_at": job.created_at.isoformat(),
                })
                # Push to list (right push for FIFO)
                await client.rpush(self.JOB_QUEUE_KEY, job.id)

        await self._retry_operation(_enqueue)
        log_job_transition(logger, job.id, job.kind.value, job.state.value)
        return job

    async def dequeue_job(self, timeout: int = 0) -> Optional[ScanJob]:
        """
        Pop the next job and mark it active.

        Args:
            timeout: Blocking timeout in seconds (0 for non-blocking)

        Returns:
            ScanJob if available, None if queue is empty
        """
        async def _dequeue():
            async with self._get_client() as client:
                # Pop from list (left pop for FIFO)
                if timeout > 0:
                    result = await client.blpop(self.JOB_QUEUE_KEY, timeout=timeout)
                    if not result:
                        return None
                    _, job_id = result
                else:
                    job_id = await client.lpop(self.JOB_QUEUE_KEY)

                if not job_id:
                    return None

                key = self._job_key(job_id)
                if await client.exists(key):
                    await client.hset(key, "state", JobState.ACTIVE.value)
                return job_id

        job_id = await self._retry_operation(_dequeue)
        if job_id is None:
            return None

        job = await self.get_job(job_id)
        if job is None:
            logger.warning(f"Dequeued job {job_id} has no record; dropping it", extra={"job_id": job_id})
            return None

        log_job_transition(logger, job.id, job.kind.value, job.state.value)
        return job

    async def get_queue_length(self) -> int:
        async def _get_length():
            async with self._get_client() as client:
                return await client.llen(self.JOB_QUEUE_KEY)

        return await self._retry_operation(_get_length)

    # ========== Job Record Operations (Hash) ==========

    async def get_job(self, job_id: str) -> Optional[ScanJob]:
        """
        Retrieve a job record.

        Returns:
            ScanJob if found, None otherwise
        """
        async def _get():
            async with self._get_client() as client:
                return await client.hgetall(self._job_key(job_id))

        fields = await self._retry_operation(_get)
        if not fields:
            return None

        return ScanJob(
            id=job_id,
            kind=fields["kind"],
            data=json.loads(fields.get("data") or "{}"),
            state=fields.get("state", JobState.WAITING.value),
            progress=int(fields.get("progress", 0)),
            failed_reason=fields.get("failed_reason") or None,
            result=json.loads(fields["result"]) if fields.get("result") else None,
            created_at=fields["created_at"],
            finished_on=fields.get("finished_on") or None
        )

    async def update_job_progress(self, job_id: str, progress: int) -> None:
        """Set a job's progress, clamped to 0..100."""
        progress = max(0, min(100, int(progress)))

        async def _update():
            async with self._get_client() as client:
                await client.hset(self._job_key(job_id), "progress", progress)

        await self._retry_operation(_update)
        logger.debug(f"Job {job_id} progress {progress}", extra={"job_id": job_id})

    async def mark_job_completed(self, job_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        """Record successful completion of a job."""
        async def _complete():
            async with self._get_client() as client:
                await client.hset(self._job_key(job_id), mapping={
                    "state": JobState.COMPLETED.value,
                    "progress": 100,
                    "result": json.dumps(result or {}, default=str),
                    "finished_on": datetime.now(timezone.utc).isoformat(),
                })

        await self._retry_operation(_complete)

    async def mark_job_failed(self, job_id: str, reason: str) -> None:
        """Record the terminal failure of a job and why."""
        async def _fail():
            async with self._get_client() as client:
                await client.hset(self._job_key(job_id), mapping={
                    "state": JobState.FAILED.value,
                    "failed_reason": reason,
                    "finished_on": datetime.now(timezone.utc).isoformat(),
                })

        await self._retry_operation(_fail)

    # ========== Utility Methods ==========

    async def ping(self) -> bool:
        """
        Test Redis connection.

        Returns:
            True if connection is healthy
        """
        async def _ping():
            async with self._get_client() as client:
                return await client.ping()

        return await self._retry_operation(_ping)


def get_redis_client() -> RedisClient:
    """
    Create a Redis client from settings.

    Returns:
        RedisClient instance
    """
    return RedisClient()
