"""Data models for the DORA tracker."""

from .api_response import JobAccepted, JobStatusResponse, WebhookResponse
from .commit import Commit, CommitCreate
from .deployment import (
    Deployment,
    DeploymentAttrs,
    DeploymentKey,
    Environment,
    release_name,
)
from .events import (
    PullRequestEvent,
    RepositoryEvent,
    WebhookEvent,
    WorkflowRunEvent,
    decode_event,
)
from .job import DevScanRequest, JobKind, JobState, ReleaseScanRequest, ScanJob
from .release import ReleaseDeclaration, ReleaseReference
from .repository import Repository, RepositoryCreate
from .result import CorrelationReport, Failed, Ok, Result, Skipped

__all__ = [
    # Store models
    "Repository",
    "RepositoryCreate",
    "Commit",
    "CommitCreate",
    "Deployment",
    "DeploymentAttrs",
    "DeploymentKey",
    "Environment",
    "release_name",
    # Webhook event models
    "WebhookEvent",
    "PullRequestEvent",
    "WorkflowRunEvent",
    "RepositoryEvent",
    "decode_event",
    # Release log models
    "ReleaseDeclaration",
    "ReleaseReference",
    # Job models
    "JobKind",
    "JobState",
    "ScanJob",
    "DevScanRequest",
    "ReleaseScanRequest",
    # Outcome types
    "Ok",
    "Skipped",
    "Failed",
    "Result",
    "CorrelationReport",
    # API response models
    "WebhookResponse",
    "JobAccepted",
    "JobStatusResponse",
]
