"""
Webhook ingestor.

Applies decoded GitHub events to the store. Signature verification and
payload decoding happen in the route before anything reaches here; this
module only decides what an event means for repositories, commits and dev
deployments.
"""

from dataclasses import dataclass
from typing import Optional

from dora_tracker.models.commit import CommitCreate
from dora_tracker.models.deployment import DeploymentAttrs, DeploymentKey, Environment
from dora_tracker.models.events import (
    PullRequestEvent,
    RepositoryEvent,
    WebhookEvent,
    WorkflowRunEvent,
)
from dora_tracker.models.repository import RepositoryCreate
from dora_tracker.services.correlator import matches_name_filter
from dora_tracker.services.store import (
    NotFoundError,
    ReconciliationStore,
    RepositoryExistsError,
)
from dora_tracker.utils.logging import get_logger, log_webhook_event


logger = get_logger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    """HTTP status and message to answer the webhook with."""

    status_code: int
    message: str = ""
    status: str = "processed"


NO_CONTENT = IngestOutcome(status_code=204, status="ignored")


def strip_ref(ref: str) -> str:
    return ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref


class WebhookIngestor:
    """Dispatches webhook events to their handlers."""

    def __init__(self, store: ReconciliationStore, workflow_name_filter: Optional[str] = None):
        if workflow_name_filter is None:
            from dora_tracker.config import settings
            workflow_name_filter = settings.workflow_name_filter

        self.store = store
        self.workflow_name_filter = workflow_name_filter

    async def handle(self, event: WebhookEvent) -> IngestOutcome:
        """
        Apply one event.

        Raises:
            NotFoundError: If the event references an untracked repository
                or an unknown commit
        """
        log_webhook_event(logger, event.event, event.action, event.repository.full_name)

        if isinstance(event, PullRequestEvent):
            return await self._handle_pull_request(event)
        if isinstance(event, WorkflowRunEvent):
            return await self._handle_workflow_run(event)
        if isinstance(event, RepositoryEvent):
            return await self._handle_repository(event)
        return IngestOutcome(status_code=200, message=f"Event {event.event} not processed", status="ignored")

    async def _handle_pull_request(self, event: PullRequestEvent) -> IngestOutcome:
        pull_request = event.pull_request
        if event.action != "closed" or not pull_request.merged:
            return NO_CONTENT

        payload = event.repository
        repository = await self.store.require_repository(payload.owner, payload.name)

        if strip_ref(pull_request.base.ref) != repository.default_branch:
            return NO_CONTENT

        if not pull_request.merge_commit_sha or pull_request.merged_at is None:
            logger.warning(
                f"Merged pull request #{pull_request.number} has no merge commit",
                extra={"repository": repository.full_name}
            )
            return NO_CONTENT

        merged_by = pull_request.merged_by
        commit, created = await self.store.create_commit(CommitCreate(
            repository_id=repository.id,
            sha=pull_request.merge_commit_sha,
            author=(merged_by.name or merged_by.login) if merged_by else None,
            message=pull_request.merge_commit_message or pull_request.title,
            created_at=pull_request.merged_at
        ))

        verb = "added to" if created else "already in"
        logger.info(
            f"Commit {commit.sha} {verb} repository {repository.full_name}",
            extra={"repository": repository.full_name, "sha": commit.sha}
        )
        return IngestOutcome(
            status_code=200,
            message=f"Commit {commit.sha} {verb} repository {repository.full_name}"
        )

    async def _handle_workflow_run(self, event: WorkflowRunEvent) -> IngestOutcome:
        run = event.workflow_run
        if event.action != "completed" or not run.head_branch:
            return NO_CONTENT

        payload = event.repository
        repository = await self.store.require_repository(payload.owner, payload.name)

        if run.head_branch != repository.default_branch:
            return NO_CONTENT
        if not matches_name_filter(event.run_name, self.workflow_name_filter):
            logger.debug(f"Workflow {event.run_name!r} does not match filter {self.workflow_name_filter!r}")
            return NO_CONTENT

        commit = await self.store.find_commit(repository.id, run.head_sha)
        if commit is None:
            raise NotFoundError(f"Commit {run.head_sha} does not exist in {repository.full_name}")

        _, created = await self.store.find_or_create_deployment(
            DeploymentKey(
                repository_id=repository.id,
                commit_id=commit.id,
                environment=Environment.DEV,
                name=event.run_name
            ),
            DeploymentAttrs(
                status=run.conclusion,
                started_at=run.created_at,
                finished_at=run.updated_at
            )
        )

        verb = "added to" if created else "already recorded in"
        return IngestOutcome(
            status_code=200,
            message=(
                f"Deployment of commit {commit.sha} in dev environment "
                f"{verb} repository {repository.full_name}"
            )
        )

    async def _handle_repository(self, event: RepositoryEvent) -> IngestOutcome:
        payload = event.repository

        if event.action == "created":
            try:
                repository = await self.store.create_repository(RepositoryCreate(
                    gh_id=payload.id,
                    owner=payload.owner,
                    name=payload.name,
                    private=payload.private,
                    default_branch=payload.default_branch
                ))
            except RepositoryExistsError:
                logger.info(f"Repository {payload.full_name} is already tracked")
                return IngestOutcome(
                    status_code=200,
                    message=f"Repository {payload.full_name} already tracked",
                    status="ignored"
                )
            return IngestOutcome(status_code=200, message=f"Repository {repository.full_name} created")

        if event.action == "deleted":
            repository = await self.store.find_repository(payload.owner, payload.name)
            if repository is None:
                return NO_CONTENT
            await self.store.delete_repository(repository)
            return IngestOutcome(status_code=200, message=f"Repository {repository.full_name} deleted")

        return NO_CONTENT
