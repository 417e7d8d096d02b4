"""
Shared FastAPI dependencies.

Long-lived clients are created on application startup and kept on
``app.state``; routes receive them through these providers so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Depends, Header, HTTPException, Request

from dora_tracker.config import settings
from dora_tracker.services.ingestor import WebhookIngestor
from dora_tracker.services.redis_client import RedisClient
from dora_tracker.services.store import ReconciliationStore


async def verify_api_key(x_api_key: str = Header(None)) -> None:
    """
    Verify API key for admin endpoints.

    Args:
        x_api_key: API key from request header

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    expected_key = settings.admin_api_key or settings.webhook_secret

    if x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_store(request: Request) -> ReconciliationStore:
    return request.app.state.store


def get_redis_client(request: Request) -> RedisClient:
    return request.app.state.redis_client


def get_ingestor(store: ReconciliationStore = Depends(get_store)) -> WebhookIngestor:
    return WebhookIngestor(store, settings.workflow_name_filter)
