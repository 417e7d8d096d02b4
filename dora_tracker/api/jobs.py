"""
Scan job REST API endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dora_tracker.api.dependencies import get_redis_client, verify_api_key
from dora_tracker.config import settings
from dora_tracker.models.api_response import JobAccepted, JobStatusResponse
from dora_tracker.models.job import DevScanRequest, JobKind, ReleaseScanRequest
from dora_tracker.services.github_client import GitHubAPIError, get_github_client
from dora_tracker.services.redis_client import RedisClient, RedisConnectionError
from dora_tracker.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])


@router.post("/dev", response_model=JobAccepted, status_code=202)
async def enqueue_dev_scan(
    request: DevScanRequest,
    redis_client: RedisClient = Depends(get_redis_client)
) -> JobAccepted:
    """
    Queue a dev scan of one repository.

    Args:
        request: ``repo_ref`` as ``owner/name`` or a GitHub URL

    Returns:
        Accepted job id
    """
    try:
        job = await redis_client.enqueue_job(JobKind.DEV, {"repo_ref": request.repo_ref})
    except RedisConnectionError as e:
        logger.error(f"Failed to enqueue dev scan: {e}")
        raise HTTPException(status_code=503, detail="Job queue unavailable")

    return JobAccepted(job_ids=[job.id], message=f"Dev scan queued for {request.repo_ref}")


@router.post("/dev/org", response_model=JobAccepted, status_code=202)
async def enqueue_org_dev_scans(
    redis_client: RedisClient = Depends(get_redis_client)
) -> JobAccepted:
    """
    Queue a dev scan for every repository of the configured organization.

    Raises:
        HTTPException: 400 if no organization is configured, 502 if GitHub
            cannot list its repositories
    """
    if not settings.github_org:
        raise HTTPException(status_code=400, detail="GITHUB_ORG is not configured")

    async with get_github_client() as github:
        try:
            repositories = await github.list_org_repositories(settings.github_org)
        except GitHubAPIError as e:
            logger.error(f"Failed to list repositories of {settings.github_org}: {e}")
            raise HTTPException(status_code=502, detail=f"Could not list repositories: {e}")

    job_ids = []
    try:
        for repository in repositories:
            job = await redis_client.enqueue_job(JobKind.DEV, {"repo_ref": repository["full_name"]})
            job_ids.append(job.id)
    except RedisConnectionError as e:
        logger.error(f"Failed to enqueue org scans after {len(job_ids)} jobs: {e}")
        raise HTTPException(status_code=503, detail="Job queue unavailable")

    logger.info(f"Queued {len(job_ids)} dev scans for {settings.github_org}")
    return JobAccepted(
        job_ids=job_ids,
        message=f"{len(job_ids)} dev scans queued for {settings.github_org}"
    )


@router.post("/{kind}", response_model=JobAccepted, status_code=202)
async def enqueue_release_scan(
    kind: JobKind,
    request: Optional[ReleaseScanRequest] = None,
    redis_client: RedisClient = Depends(get_redis_client)
) -> JobAccepted:
    """
    Queue a uat or prod scan of a release-log document.

    Args:
        kind: ``uat`` or ``prod``
        request: Optional ``doc_id``; defaults to the configured document
    """
    if kind is JobKind.DEV:
        raise HTTPException(status_code=400, detail="Use /api/v1/jobs/dev for dev scans")

    default_doc = settings.uat_doc_id if kind is JobKind.UAT else settings.prod_doc_id
    doc_id = (request.doc_id if request else None) or default_doc
    if not doc_id:
        raise HTTPException(status_code=400, detail=f"No document configured for {kind.value}")

    try:
        job = await redis_client.enqueue_job(kind, {"doc_id": doc_id})
    except RedisConnectionError as e:
        logger.error(f"Failed to enqueue {kind.value} scan: {e}")
        raise HTTPException(status_code=503, detail="Job queue unavailable")

    return JobAccepted(job_ids=[job.id], message=f"{kind.value} scan queued for document {doc_id}")


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    redis_client: RedisClient = Depends(get_redis_client)
) -> JobStatusResponse:
    """
    Get the state and progress of a queued job.

    Raises:
        HTTPException: 404 if the job does not exist
    """
    job = await redis_client.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    return JobStatusResponse(
        id=job.id,
        kind=job.kind.value,
        state=job.state.value,
        progress=job.progress,
        failed_reason=job.failed_reason,
        result=job.result,
        finished_on=job.finished_on
    )
