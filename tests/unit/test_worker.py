"""
Unit tests for the scan worker.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dora_tracker.models.job import JobKind, JobState, ScanJob
from dora_tracker.worker import Worker


def make_job(kind: JobKind, **data) -> ScanJob:
    return ScanJob(
        id="job-1",
        kind=kind,
        data=data,
        state=JobState.ACTIVE,
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc)
    )


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.update_job_progress = AsyncMock()
    client.mark_job_completed = AsyncMock()
    client.mark_job_failed = AsyncMock()
    client.dequeue_job = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest.fixture
def github():
    client = MagicMock()
    client.get_repository = AsyncMock(return_value={"id": 7, "private": False, "default_branch": "main"})
    client.list_commits = AsyncMock(return_value=[{
        "sha": "a" * 40,
        "commit": {
            "author": {"name": "dev"},
            "committer": {"name": "dev", "date": "2024-01-02T10:00:00Z"},
            "message": "initial",
        },
    }])
    client.list_workflow_runs = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def documents():
    client = MagicMock()
    client.read_blocks = AsyncMock(return_value=[])
    return client


@pytest.fixture
def worker(redis_client, store, documents, github):
    return Worker(
        redis_client=redis_client,
        store=store,
        documents=documents,
        github_factory=lambda metrics: github
    )


@pytest.mark.asyncio
async def test_dev_job_completes_with_summary(worker, redis_client, github, store):
    await worker.process_job(make_job(JobKind.DEV, repo_ref="acme/widget"))

    redis_client.mark_job_failed.assert_not_awaited()
    job_id, result = redis_client.mark_job_completed.await_args.args
    assert job_id == "job-1"
    assert result["target"] == "acme/widget"
    assert result["commits_created"] == 1
    assert [call.args[1] for call in redis_client.update_job_progress.await_args_list] == [50, 100]
    assert len(store.commits) == 1
    github.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_dev_job_without_repo_ref_fails(worker, redis_client, github):
    await worker.process_job(make_job(JobKind.DEV))

    job_id, reason = redis_client.mark_job_failed.await_args.args
    assert job_id == "job-1"
    assert reason.startswith("ScanError:")
    redis_client.mark_job_completed.assert_not_awaited()
    github.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_release_job_with_empty_document_fails(worker, redis_client, documents):
    await worker.process_job(make_job(JobKind.PROD, doc_id="doc-1"))

    documents.read_blocks.assert_awaited_once_with("doc-1")
    _, reason = redis_client.mark_job_failed.await_args.args
    assert "doc-1" in reason


@pytest.mark.asyncio
async def test_unexpected_error_is_recorded(worker, redis_client, github):
    github.get_repository.side_effect = RuntimeError("boom")

    await worker.process_job(make_job(JobKind.DEV, repo_ref="acme/widget"))

    _, reason = redis_client.mark_job_failed.await_args.args
    assert reason == "RuntimeError: boom"


@pytest.mark.asyncio
async def test_stop_is_idempotent(redis_client):
    store = MagicMock()
    store.close = AsyncMock()
    worker = Worker(redis_client=redis_client, store=store, documents=MagicMock())

    await worker.stop()
    await worker.stop()

    redis_client.close.assert_awaited_once()
    store.close.assert_awaited_once()


def test_default_clients_come_from_factories():
    with patch("dora_tracker.worker.get_redis_client") as redis_factory, \
            patch("dora_tracker.worker.get_store") as store_factory, \
            patch("dora_tracker.worker.get_document_client") as documents_factory:
        worker = Worker()

    assert worker.redis_client is redis_factory.return_value
    assert worker.store is store_factory.return_value
    assert worker.documents is documents_factory.return_value
