"""
Unit tests for Redis client wrapper.

Tests Redis operations using fakeredis for isolated testing.
"""

import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import fakeredis
from redis.exceptions import ConnectionError

from dora_tracker.models.job import JobKind, JobState
from dora_tracker.services.redis_client import RedisClient, RedisConnectionError


@pytest.fixture
async def redis_client() -> AsyncGenerator[RedisClient, None]:
    """Create Redis client with fakeredis for testing."""
    client = RedisClient(redis_url="redis://localhost:6379/0", retry_delay=0.01)

    # Replace the real Redis client with fakeredis
    fake_redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    client._client = fake_redis

    yield client

    # Cleanup
    await fake_redis.flushdb()
    await fake_redis.aclose()


class TestJobQueueOperations:
    """Test job queue operations."""

    @pytest.mark.asyncio
    async def test_enqueue_creates_waiting_job(self, redis_client: RedisClient):
        job = await redis_client.enqueue_job(JobKind.DEV, {"repo_ref": "acme/widget"})

        stored = await redis_client.get_job(job.id)
        assert stored.kind == JobKind.DEV
        assert stored.state == JobState.WAITING
        assert stored.data == {"repo_ref": "acme/widget"}
        assert stored.progress == 0
        assert await redis_client.get_queue_length() == 1

    @pytest.mark.asyncio
    async def test_dequeue_is_fifo_and_marks_active(self, redis_client: RedisClient):
        first = await redis_client.enqueue_job(JobKind.UAT, {"doc_id": "doc-uat"})
        second = await redis_client.enqueue_job(JobKind.PROD, {"doc_id": "doc-prod"})

        job = await redis_client.dequeue_job()

        assert job.id == first.id
        assert job.state == JobState.ACTIVE
        assert (await redis_client.dequeue_job()).id == second.id
        assert await redis_client.get_queue_length() == 0

    @pytest.mark.asyncio
    async def test_dequeue_empty_queue(self, redis_client: RedisClient):
        assert await redis_client.dequeue_job() is None
        assert await redis_client.dequeue_job(timeout=1) is None

    @pytest.mark.asyncio
    async def test_dequeue_drops_orphaned_id(self, redis_client: RedisClient):
        await redis_client._client.rpush(RedisClient.JOB_QUEUE_KEY, "missing")

        assert await redis_client.dequeue_job() is None


class TestJobRecordOperations:
    """Test job state transitions."""

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, redis_client: RedisClient):
        job = await redis_client.enqueue_job(JobKind.DEV, {"repo_ref": "acme/widget"})

        await redis_client.update_job_progress(job.id, 50)
        assert (await redis_client.get_job(job.id)).progress == 50

        await redis_client.update_job_progress(job.id, 150)
        assert (await redis_client.get_job(job.id)).progress == 100

    @pytest.mark.asyncio
    async def test_mark_completed(self, redis_client: RedisClient):
        job = await redis_client.enqueue_job(JobKind.DEV, {"repo_ref": "acme/widget"})

        await redis_client.mark_job_completed(job.id, {"commits_created": 3})

        stored = await redis_client.get_job(job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.progress == 100
        assert stored.result == {"commits_created": 3}
        assert stored.finished_on is not None
        assert stored.failed_reason is None

    @pytest.mark.asyncio
    async def test_mark_failed(self, redis_client: RedisClient):
        job = await redis_client.enqueue_job(JobKind.PROD, {"doc_id": "doc-1"})

        await redis_client.mark_job_failed(job.id, "ScanError: Document doc-1 is empty")

        stored = await redis_client.get_job(job.id)
        assert stored.state == JobState.FAILED
        assert stored.failed_reason == "ScanError: Document doc-1 is empty"
        assert stored.finished_on is not None

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, redis_client: RedisClient):
        assert await redis_client.get_job("nope") is None


class TestRetryLogic:
    """Test retry behaviour on transient errors."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, redis_client: RedisClient):
        operation = AsyncMock(side_effect=[ConnectionError("down"), "ok"])

        assert await redis_client._retry_operation(operation) == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, redis_client: RedisClient):
        operation = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(RedisConnectionError):
            await redis_client._retry_operation(operation)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_uninitialized_client(self):
        client = RedisClient(redis_url="redis://localhost:6379/0")

        with pytest.raises(RuntimeError):
            await client.get_job("x")
