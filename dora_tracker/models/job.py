"""Scan job data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobKind(str, Enum):
    """Scan job kinds; the value is also the target environment."""

    DEV = "dev"
    UAT = "uat"
    PROD = "prod"


class JobState(str, Enum):
    """Job lifecycle state."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanJob(BaseModel):
    """A queued scan and its progress."""

    id: str
    kind: JobKind
    data: Dict[str, Any] = {}
    state: JobState = JobState.WAITING
    progress: int = Field(default=0, ge=0, le=100)
    failed_reason: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: datetime
    finished_on: Optional[datetime] = None


class DevScanRequest(BaseModel):
    """Request body for a dev scan of one repository."""

    repo_ref: str = Field(min_length=3, description="owner/name or a GitHub repository URL")


class ReleaseScanRequest(BaseModel):
    """Request body for a uat/prod scan of a release-log document."""

    doc_id: Optional[str] = None
