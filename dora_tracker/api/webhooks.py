"""
Webhook endpoint for GitHub events.
"""

import hashlib
import hmac
import json
import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from dora_tracker.api.dependencies import get_ingestor
from dora_tracker.config import settings
from dora_tracker.models.api_response import WebhookResponse
from dora_tracker.models.events import decode_event
from dora_tracker.services.ingestor import WebhookIngestor
from dora_tracker.services.store import NotFoundError
from dora_tracker.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

SIGNATURE_PATTERN = re.compile(r"^sha256=(?P<digest>[0-9a-fA-F]+)$")


class SignatureError(Exception):
    """Raised when the webhook signature header is unusable or wrong."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> None:
    """
    Verify the ``X-Hub-Signature-256`` header against the raw body.

    Args:
        payload: Raw request payload
        signature: Header value, ``sha256=<hex>``
        secret: Shared webhook secret

    Raises:
        SignatureError: 400 if missing or malformed, 403 if it does not match
    """
    if not signature:
        raise SignatureError("Signature not specified", 400)

    match = SIGNATURE_PATTERN.match(signature)
    if not match:
        raise SignatureError("Invalid signature format", 400)

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()

    # Constant-time comparison
    if not hmac.compare_digest(match.group("digest").lower(), expected):
        raise SignatureError("Invalid signature", 403)


@router.post("/github", response_model=WebhookResponse)
async def handle_github_webhook(
    request: Request,
    ingestor: WebhookIngestor = Depends(get_ingestor),
    x_hub_signature: Optional[str] = Header(None, alias="X-Hub-Signature-256"),
    x_github_event: Optional[str] = Header(None, alias="X-GitHub-Event")
):
    """
    Receive and apply a GitHub webhook event.

    This endpoint:
    1. Validates the HMAC signature over the raw body
    2. Decodes the payload into its event model
    3. Applies it to the store synchronously

    Returns:
        WebhookResponse, or an empty 204 when the event needs no action

    Raises:
        HTTPException: 400/403 for rejected requests, 500 when the event
            references an unknown repository or commit
    """
    payload = await request.body()

    try:
        verify_webhook_signature(payload, x_hub_signature, settings.webhook_secret)
    except SignatureError as e:
        logger.warning(f"Rejected webhook: {e}", extra={"event": x_github_event})
        raise HTTPException(status_code=e.status_code, detail=str(e))

    try:
        event = decode_event(x_github_event, json.loads(payload))
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning(f"Invalid {x_github_event} payload: {e}", extra={"event": x_github_event})
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if event is None:
        logger.info(f"Ignoring event type: {x_github_event}", extra={"event": x_github_event})
        return WebhookResponse(status="ignored", message=f"Event type {x_github_event} not processed")

    try:
        outcome = await ingestor.handle(event)
    except NotFoundError as e:
        logger.error(f"Webhook references unknown entity: {e}", extra={"event": x_github_event})
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error(f"Error handling webhook: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error processing webhook")

    if outcome.status_code == 204:
        return Response(status_code=204)

    return JSONResponse(
        status_code=outcome.status_code,
        content=WebhookResponse(status=outcome.status, message=outcome.message).model_dump()
    )
