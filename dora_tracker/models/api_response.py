"""API response data models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Response from webhook handler."""

    status: str
    message: str


class JobAccepted(BaseModel):
    """Response for enqueued scan jobs."""

    job_ids: List[str]
    message: str


class JobStatusResponse(BaseModel):
    """Externally visible state of a scan job."""

    id: str
    kind: str
    state: str
    progress: int
    failed_reason: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    finished_on: Optional[datetime] = None
