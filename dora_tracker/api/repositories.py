"""
Read-only REST API over tracked repositories and their deployments.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dora_tracker.api.dependencies import get_store, verify_api_key
from dora_tracker.models.deployment import Deployment, Environment
from dora_tracker.models.repository import Repository
from dora_tracker.services.store import ReconciliationStore
from dora_tracker.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/repositories", tags=["repositories"], dependencies=[Depends(verify_api_key)])


@router.get("", response_model=List[Repository])
async def list_repositories(store: ReconciliationStore = Depends(get_store)) -> List[Repository]:
    """List all tracked repositories."""
    return await store.list_repositories()


@router.get("/{owner}/{name}/deployments", response_model=List[Deployment])
async def list_deployments(
    owner: str,
    name: str,
    environment: Optional[Environment] = Query(None),
    store: ReconciliationStore = Depends(get_store)
) -> List[Deployment]:
    """
    List recorded deployments of one repository.

    Args:
        environment: Restrict to ``dev``, ``uat`` or ``prod``

    Raises:
        HTTPException: 404 if the repository is not tracked
    """
    repository = await store.find_repository(owner, name)
    if repository is None:
        raise HTTPException(status_code=404, detail=f"Repository {owner}/{name} not found")

    return await store.list_deployments(repository.id, environment)
