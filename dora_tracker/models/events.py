"""GitHub webhook event models.

Inbound payloads are decoded into a closed union discriminated by the
``X-GitHub-Event`` header value before anything is dispatched. Only the
fields the ingestor reads are declared; everything else is ignored.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class GitHubUser(BaseModel):
    login: str
    name: Optional[str] = None


class RepositoryPayload(BaseModel):
    """``repository`` object shared by every event."""

    id: Optional[int] = None
    full_name: str = Field(pattern=r"^[^/]+/[^/]+$")
    private: bool = False
    default_branch: str = "main"

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[1]


class PullRequestBase(BaseModel):
    ref: str


class PullRequestPayload(BaseModel):
    number: Optional[int] = None
    title: str = ""
    merged: bool = False
    merge_commit_sha: Optional[str] = None
    merge_commit_message: Optional[str] = None
    merged_at: Optional[datetime] = None
    base: PullRequestBase
    merged_by: Optional[GitHubUser] = None
    user: Optional[GitHubUser] = None


class WorkflowRunPayload(BaseModel):
    id: int
    name: Optional[str] = None
    head_branch: Optional[str] = None
    head_sha: str
    status: Optional[str] = None
    conclusion: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class WorkflowPayload(BaseModel):
    name: str


class PullRequestEvent(BaseModel):
    event: Literal["pull_request"]
    action: str
    pull_request: PullRequestPayload
    repository: RepositoryPayload


class WorkflowRunEvent(BaseModel):
    event: Literal["workflow_run"]
    action: str
    workflow_run: WorkflowRunPayload
    workflow: Optional[WorkflowPayload] = None
    repository: RepositoryPayload

    @property
    def run_name(self) -> str:
        if self.workflow is not None:
            return self.workflow.name
        return self.workflow_run.name or f"run-{self.workflow_run.id}"


class RepositoryEvent(BaseModel):
    event: Literal["repository"]
    action: str
    repository: RepositoryPayload


WebhookEvent = Annotated[
    Union[PullRequestEvent, WorkflowRunEvent, RepositoryEvent],
    Field(discriminator="event"),
]

SUPPORTED_EVENTS = frozenset({"pull_request", "workflow_run", "repository"})

_event_adapter: TypeAdapter = TypeAdapter(WebhookEvent)


def decode_event(event_name: Optional[str], payload: dict) -> Optional[WebhookEvent]:
    """
    Decode a raw webhook payload into its event variant.

    Args:
        event_name: ``X-GitHub-Event`` header value
        payload: Parsed JSON body

    Returns:
        The typed event, or None for event types the tracker does not handle

    Raises:
        pydantic.ValidationError: If the payload does not fit its variant
    """
    if event_name not in SUPPORTED_EVENTS:
        return None
    return _event_adapter.validate_python({**payload, "event": event_name})
