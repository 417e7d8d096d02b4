"""
Environment correlator.

Turns source-control facts into deployment records:

- a release tag deployed to uat/prod is attributed to every commit it
  introduced since the previous tag (or to the tag's head commit alone when
  it is the repository's first tag);
- a completed workflow run on the default branch is a dev deployment of its
  head commit.

Every write is a find-or-create on the deployment key, so correlating the
same release or run again is a no-op. Per-commit work runs concurrently
under a semaphore; one commit failing does not abort its siblings.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from dora_tracker.models.commit import Commit
from dora_tracker.models.deployment import (
    DeploymentAttrs,
    DeploymentKey,
    Environment,
    release_name,
)
from dora_tracker.models.repository import Repository
from dora_tracker.models.result import CorrelationReport, Failed, Ok, Result, Skipped
from dora_tracker.services.github_client import GitHubAPIError, GitHubClient
from dora_tracker.services.store import ReconciliationStore
from dora_tracker.utils.logging import get_logger
from dora_tracker.utils.resilience import report_partial_failure


logger = get_logger(__name__)

RELEASE_STATUS = "success"


def parse_github_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp as GitHub renders it (``...Z``)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def matches_name_filter(name: Optional[str], name_filter: Optional[str]) -> bool:
    """Case-insensitive substring match; an empty filter matches everything."""
    if not name_filter:
        return True
    return name_filter.lower() in (name or "").lower()


class EnvironmentCorrelator:
    """Attaches deployments to commits for releases and workflow runs."""

    def __init__(
        self,
        github: GitHubClient,
        store: ReconciliationStore,
        max_concurrency: Optional[int] = None
    ):
        """
        Initialize the correlator.

        Args:
            github: GitHub API client
            store: Reconciliation store
            max_concurrency: Bound on concurrent per-commit work. If None,
                will load from settings.
        """
        if max_concurrency is None:
            from dora_tracker.config import settings
            max_concurrency = settings.github_max_concurrency

        self.github = github
        self.store = store
        self._semaphore = asyncio.Semaphore(max_concurrency)

    # ========== Releases (uat / prod) ==========

    async def correlate_release(
        self,
        repository: Repository,
        tag_name: str,
        environment: Environment,
        version: str,
        released_at: datetime
    ) -> CorrelationReport:
        """
        Record a deployment for every commit introduced by ``tag_name``.

        Args:
            repository: Repository the tag belongs to
            tag_name: Released tag
            environment: ``uat`` or ``prod``
            version: Normalized release version from the release log
            released_at: Timestamp declared in the release log

        Returns:
            CorrelationReport whose outcome is Ok (with per-commit results),
            Skipped (tag unknown) or Failed (tag list unavailable)
        """
        name = release_name(environment, version)
        log = logger.with_context(repository=repository.full_name, environment=environment.value)
        report = CorrelationReport(subject=f"{repository.full_name}@{tag_name}", outcome=Ok(name))

        try:
            tags = await self.github.list_tags(repository.owner, repository.name)
        except GitHubAPIError as e:
            log.error(f"Could not list tags for {repository.full_name}: {e}")
            report.outcome = Failed(e)
            return report

        index = next((i for i, tag in enumerate(tags) if tag.get("name") == tag_name), None)
        if index is None:
            log.warning(f"Tag {tag_name} not found for {repository.full_name}")
            report.outcome = Skipped(f"tag {tag_name} not found")
            return report

        current = tags[index]
        previous = tags[index + 1] if index + 1 < len(tags) else None

        if previous is None:
            candidates = [current["commit"]["sha"]]
            log.info(f"{tag_name} is the first tag of {repository.full_name}; single-commit release")
        else:
            try:
                compared = await self.github.compare(
                    repository.owner,
                    repository.name,
                    previous["commit"]["sha"],
                    current["commit"]["sha"]
                )
            except GitHubAPIError as e:
                log.error(f"Could not compare {previous.get('name')}...{tag_name}: {e}")
                report.outcome = Failed(e)
                return report
            candidates = [commit["sha"] for commit in compared]
            log.info(
                f"{tag_name} introduces {len(candidates)} commits since {previous.get('name')}"
            )

        if not candidates:
            return report

        finished_at = await self._release_finished_at(repository, tag_name, environment, released_at)

        report.results = list(await asyncio.gather(*(
            self._deploy_commit(repository, sha, environment, name, finished_at)
            for sha in candidates
        )))

        report_partial_failure(
            f"correlate {name}",
            total_items=len(candidates),
            successful_items=len(candidates) - report.failed,
            errors=[r.reason for r in report.results if isinstance(r, Failed)],
            context={"repository": repository.full_name, "environment": environment.value}
        )
        return report

    async def _release_finished_at(
        self,
        repository: Repository,
        tag_name: str,
        environment: Environment,
        released_at: datetime
    ) -> datetime:
        """
        prod: the release-log timestamp. uat: the GitHub release's publish
        time, falling back to the release-log timestamp.
        """
        if environment is not Environment.UAT:
            return released_at

        try:
            release = await self.github.get_release_by_tag(repository.owner, repository.name, tag_name)
        except GitHubAPIError as e:
            logger.warning(
                f"No GitHub release for {repository.full_name}@{tag_name}, using release log time: {e}",
                extra={"repository": repository.full_name}
            )
            return released_at

        published = parse_github_timestamp(release.get("published_at") or release.get("created_at"))
        return published or released_at

    async def _deploy_commit(
        self,
        repository: Repository,
        sha: str,
        environment: Environment,
        name: str,
        finished_at: datetime
    ) -> Result:
        async with self._semaphore:
            try:
                commit = await self.store.find_commit(repository.id, sha)
                if commit is None:
                    logger.warning(
                        f"Commit not found: {sha}",
                        extra={"repository": repository.full_name, "sha": sha}
                    )
                    return Skipped(f"commit {sha} not stored")

                deployment, created = await self.store.find_or_create_deployment(
                    DeploymentKey(
                        repository_id=repository.id,
                        commit_id=commit.id,
                        environment=environment,
                        name=name
                    ),
                    DeploymentAttrs(
                        status=RELEASE_STATUS,
                        started_at=commit.created_at,
                        finished_at=finished_at
                    )
                )
                return Ok((deployment, created))
            except Exception as e:
                logger.error(
                    f"Error processing commit {sha}: {e}",
                    extra={"repository": repository.full_name, "sha": sha},
                    exc_info=True
                )
                return Failed(e)

    # ========== Workflow runs (dev) ==========

    async def correlate_workflow_runs(
        self,
        repository: Repository,
        runs: List[Dict[str, Any]],
        name_filter: Optional[str] = None
    ) -> CorrelationReport:
        """
        Record a dev deployment for each completed run on the default branch.

        Args:
            repository: Repository the runs belong to
            runs: Workflow run objects as returned by GitHub
            name_filter: Case-insensitive substring a run name must contain

        Returns:
            CorrelationReport with one result per eligible run
        """
        report = CorrelationReport(subject=f"{repository.full_name} workflow runs", outcome=Ok(len(runs)))

        eligible = [
            run for run in runs
            if run.get("status") == "completed"
            and run.get("head_branch") == repository.default_branch
            and matches_name_filter(run.get("name"), name_filter)
        ]
        if not eligible:
            logger.info(
                f"No matching workflow runs for {repository.full_name} (filter={name_filter!r})",
                extra={"repository": repository.full_name}
            )
            return report

        report.results = list(await asyncio.gather(*(
            self._deploy_run(repository, run) for run in eligible
        )))
        return report

    async def _deploy_run(self, repository: Repository, run: Dict[str, Any]) -> Result:
        async with self._semaphore:
            sha = run.get("head_sha", "")
            try:
                commit = await self.store.find_commit(repository.id, sha)
                if commit is None:
                    return Skipped(f"commit {sha} not stored")
                return Ok(await self.record_dev_deployment(
                    repository,
                    commit,
                    name=run.get("name") or f"run-{run.get('id')}",
                    status=run.get("conclusion"),
                    started_at=parse_github_timestamp(run.get("created_at")),
                    finished_at=parse_github_timestamp(run.get("updated_at"))
                ))
            except Exception as e:
                logger.error(
                    f"Error processing deployment for run {run.get('name')}: {e}",
                    extra={"repository": repository.full_name, "sha": sha},
                    exc_info=True
                )
                return Failed(e)

    async def record_dev_deployment(
        self,
        repository: Repository,
        commit: Commit,
        name: str,
        status: Optional[str],
        started_at: Optional[datetime],
        finished_at: Optional[datetime]
    ):
        """Find-or-create the dev deployment of ``commit`` by workflow ``name``."""
        return await self.store.find_or_create_deployment(
            DeploymentKey(
                repository_id=repository.id,
                commit_id=commit.id,
                environment=Environment.DEV,
                name=name
            ),
            DeploymentAttrs(status=status, started_at=started_at, finished_at=finished_at)
        )
