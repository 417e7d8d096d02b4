"""
Scan orchestrator.

Runs the two scheduled scan kinds:

- dev: ensure the repository is tracked, backfill its default-branch
  commits, then correlate its workflow runs into dev deployments;
- uat/prod: read a release-log document, parse its version blocks and
  correlate every referenced tag release into deployments.

Progress is reported through an injected async callback so the same code
runs under the job worker and in tests.
"""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from dora_tracker.models.commit import Commit, CommitCreate
from dora_tracker.models.deployment import Environment
from dora_tracker.models.release import ReleaseDeclaration
from dora_tracker.models.repository import Repository, RepositoryCreate
from dora_tracker.models.result import CorrelationReport, Failed, Ok, Skipped
from dora_tracker.services.correlator import EnvironmentCorrelator, parse_github_timestamp
from dora_tracker.services.document_client import DocumentClient
from dora_tracker.services.github_client import GitHubAPIError, GitHubClient
from dora_tracker.services.store import ReconciliationStore, RepositoryExistsError
from dora_tracker.services.version_parser import parse_release_reference, parse_version_block
from dora_tracker.utils.logging import get_logger, log_error_with_context


logger = get_logger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]

REPO_URL_PATTERN = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>[^/\s]+)/(?P<name>[^/\s]+?)(?:\.git)?/?$"
)
REPO_REF_PATTERN = re.compile(r"^(?P<owner>[^/\s]+)/(?P<name>[^/\s]+)$")


class ScanError(Exception):
    """Raised when a scan cannot proceed at all."""
    pass


async def _no_progress(_: int) -> None:
    return None


def parse_repo_ref(repo_ref: str) -> Tuple[str, str]:
    """
    Split ``owner/name`` or a GitHub repository URL into owner and name.

    Raises:
        ScanError: If the reference matches neither form
    """
    repo_ref = repo_ref.strip()
    match = REPO_URL_PATTERN.match(repo_ref) or REPO_REF_PATTERN.match(repo_ref)
    if not match:
        raise ScanError(f"Invalid repository reference: {repo_ref!r}")
    return match.group("owner"), match.group("name")


def _committed_at(item: Dict[str, Any]) -> Optional[datetime]:
    """Committer date of a GitHub commit item, or None if absent or malformed."""
    date = (((item.get("commit") or {}).get("committer")) or {}).get("date")
    try:
        committed_at = parse_github_timestamp(date)
    except ValueError:
        return None
    if committed_at is not None and committed_at.tzinfo is None:
        committed_at = committed_at.replace(tzinfo=timezone.utc)
    return committed_at


@dataclass
class ScanSummary:
    """Totals for one scan job."""

    target: str
    commits_created: int = 0
    deployments_created: int = 0
    deployments_existing: int = 0
    skipped: int = 0
    failed: int = 0
    releases: List[str] = field(default_factory=list)

    def add_report(self, report: CorrelationReport) -> None:
        self.deployments_created += report.created
        self.deployments_existing += report.existing
        self.skipped += report.skipped
        self.failed += report.failed
        if isinstance(report.outcome, Skipped):
            self.skipped += 1
        elif isinstance(report.outcome, Failed):
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "commits_created": self.commits_created,
            "deployments_created": self.deployments_created,
            "deployments_existing": self.deployments_existing,
            "skipped": self.skipped,
            "failed": self.failed,
            "releases": self.releases,
        }


class ScanOrchestrator:
    """Coordinates GitHub, the release-log documents and the store for scans."""

    def __init__(
        self,
        github: GitHubClient,
        store: ReconciliationStore,
        correlator: EnvironmentCorrelator,
        documents: Optional[DocumentClient] = None,
        workflow_name_filter: Optional[str] = None,
        max_concurrency: Optional[int] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            github: GitHub API client
            store: Reconciliation store
            correlator: Environment correlator sharing the same client and store
            documents: Release-log document client (required for uat/prod scans)
            workflow_name_filter: Workflow name filter for dev scans. If None,
                will load from settings.
            max_concurrency: Bound on concurrent commit writes and release
                references. If None, will load from settings.
        """
        if workflow_name_filter is None or max_concurrency is None:
            from dora_tracker.config import settings
            if workflow_name_filter is None:
                workflow_name_filter = settings.workflow_name_filter
            if max_concurrency is None:
                max_concurrency = settings.github_max_concurrency

        self.github = github
        self.store = store
        self.correlator = correlator
        self.documents = documents
        self.workflow_name_filter = workflow_name_filter
        self._semaphore = asyncio.Semaphore(max_concurrency)

    # ========== Dev scans ==========

    async def scan_repository(self, owner: str, name: str) -> Repository:
        """
        Return the tracked repository, creating it from GitHub metadata if needed.

        Raises:
            GitHubAPIError: If the repository is untracked and GitHub cannot describe it
        """
        repository = await self.store.find_repository(owner, name)
        if repository is not None:
            return repository

        data = await self.github.get_repository(owner, name)
        try:
            repository = await self.store.create_repository(RepositoryCreate(
                gh_id=data.get("id"),
                owner=owner,
                name=name,
                private=data.get("private", False),
                default_branch=data.get("default_branch") or "main"
            ))
            logger.info(f"Tracking new repository {repository.full_name}")
        except RepositoryExistsError:
            # Created concurrently by a webhook or another scan
            repository = await self.store.require_repository(owner, name)
        return repository

    async def scan_commits(self, repository: Repository) -> List[Commit]:
        """
        Store default-branch commits not seen before.

        Incremental when the repository has been scanned before. Returns the
        commits that are newly stored by this call. When a commit cannot be
        stored, ``last_scanned_at`` stops at its committer date so the next
        scan fetches it again.
        """
        started = datetime.now(timezone.utc)
        items = await self.github.list_commits(
            repository.owner,
            repository.name,
            repository.default_branch,
            since=repository.last_scanned_at
        )
        logger.info(
            f"Scanning {len(items)} commits from {repository.full_name}",
            extra={"repository": repository.full_name}
        )

        results = await asyncio.gather(*(self._store_commit(repository, item) for item in items))
        created = [commit for commit, was_created in results if commit is not None and was_created]

        failed_dates = []
        for item, (commit, _) in zip(items, results):
            if commit is None:
                committed_at = _committed_at(item)
                if committed_at is not None:
                    failed_dates.append(committed_at)
        watermark = min([started, *failed_dates])
        if failed_dates:
            logger.warning(
                f"{len(failed_dates)} commits of {repository.full_name} not stored; "
                f"next scan starts at {watermark.isoformat()}",
                extra={"repository": repository.full_name}
            )

        await self.store.mark_scanned(repository.id, watermark)
        return created

    async def _store_commit(self, repository: Repository, item: Dict[str, Any]):
        sha = item.get("sha", "")
        details = item.get("commit") or {}
        committed_at = (details.get("committer") or {}).get("date")
        if not committed_at:
            logger.warning(
                f"Skipping commit {sha} due to missing committer date",
                extra={"repository": repository.full_name, "sha": sha}
            )
            return None, False

        async with self._semaphore:
            try:
                return await self.store.create_commit(CommitCreate(
                    repository_id=repository.id,
                    sha=sha,
                    author=(details.get("author") or {}).get("name"),
                    message=details.get("message"),
                    created_at=committed_at
                ))
            except Exception as e:
                log_error_with_context(
                    logger,
                    f"Error processing commit {sha}",
                    e,
                    repository=repository.full_name,
                    sha=sha
                )
                return None, False

    async def scan_workflows(self, repository: Repository) -> CorrelationReport:
        """Correlate default-branch workflow runs into dev deployments."""
        try:
            runs = await self.github.list_workflow_runs(
                repository.owner,
                repository.name,
                repository.default_branch
            )
        except GitHubAPIError as e:
            logger.error(
                f"Error fetching workflow runs for {repository.full_name}: {e}",
                extra={"repository": repository.full_name}
            )
            return CorrelationReport(subject=f"{repository.full_name} workflow runs", outcome=Failed(e))

        return await self.correlator.correlate_workflow_runs(repository, runs, self.workflow_name_filter)

    async def run_dev_scan(
        self,
        repo_ref: str,
        progress: ProgressCallback = _no_progress
    ) -> ScanSummary:
        """
        Scan one repository for commits and dev deployments.

        Args:
            repo_ref: ``owner/name`` or a GitHub repository URL
            progress: Async callback receiving 0..100

        Raises:
            ScanError: If ``repo_ref`` is not a repository reference
            GitHubAPIError: If the repository or its commits cannot be read
        """
        owner, name = parse_repo_ref(repo_ref)
        summary = ScanSummary(target=f"{owner}/{name}")

        repository = await self.scan_repository(owner, name)
        log = logger.with_context(repository=repository.full_name, environment=Environment.DEV.value)

        log.info("Scanning commits")
        summary.commits_created = len(await self.scan_commits(repository))
        await progress(50)

        log.info("Scanning workflow runs")
        summary.add_report(await self.scan_workflows(repository))
        await progress(100)

        log.info(
            f"Dev scan complete: {summary.commits_created} commits, "
            f"{summary.deployments_created} new deployments"
        )
        return summary

    # ========== Release scans (uat / prod) ==========

    async def run_release_scan(
        self,
        environment: Environment,
        doc_id: str,
        progress: ProgressCallback = _no_progress
    ) -> ScanSummary:
        """
        Correlate every release declared in a release-log document.

        Args:
            environment: ``uat`` or ``prod``
            doc_id: Document identifier
            progress: Async callback receiving 0..100

        Raises:
            DocumentSourceError: If the document cannot be fetched
            ScanError: If the document is empty or holds no parseable block
        """
        if environment is Environment.DEV:
            raise ScanError("Release scans apply to uat and prod only")
        if self.documents is None:
            raise ScanError("No document client configured")

        summary = ScanSummary(target=f"{environment.value}:{doc_id}")
        log = logger.with_context(environment=environment.value)

        blocks = await self.documents.read_blocks(doc_id)
        if not blocks:
            raise ScanError(f"Document {doc_id} is empty or could not be read")

        declarations: List[ReleaseDeclaration] = []
        for block in blocks:
            result = parse_version_block(block)
            if isinstance(result, Ok):
                declarations.append(result.value)
            else:
                summary.skipped += 1

        if not declarations:
            raise ScanError(f"Document {doc_id} contains no release blocks")

        log.info(f"Parsed {len(declarations)} release blocks from {doc_id}")
        await progress(10)

        reports = await asyncio.gather(*(
            self._correlate_reference(environment, declaration, line)
            for declaration in declarations
            for line in declaration.release_references
        ))
        for report in reports:
            summary.add_report(report)
        summary.releases.extend(declaration.version for declaration in declarations)

        await progress(100)
        log.info(
            f"{environment.value} scan complete: {summary.deployments_created} new deployments, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _correlate_reference(
        self,
        environment: Environment,
        declaration: ReleaseDeclaration,
        line: str
    ) -> CorrelationReport:
        reference = parse_release_reference(line)
        if reference is None:
            logger.warning(
                f"Invalid release reference in {declaration.version}: {line!r}",
                extra={"environment": environment.value}
            )
            return CorrelationReport(subject=line, outcome=Skipped("invalid reference"))

        async with self._semaphore:
            try:
                repository = await self.store.find_repository(reference.owner, reference.repo)
                if repository is None:
                    logger.warning(
                        f"Repository {reference.full_name} not found for {declaration.version}",
                        extra={"environment": environment.value, "repository": reference.full_name}
                    )
                    return CorrelationReport(
                        subject=reference.full_name,
                        outcome=Skipped("repository not tracked")
                    )

                return await self.correlator.correlate_release(
                    repository,
                    reference.tag,
                    environment,
                    declaration.version,
                    declaration.released_at
                )
            except Exception as e:
                log_error_with_context(
                    logger,
                    f"Error correlating {reference.full_name}@{reference.tag}",
                    e,
                    environment=environment.value,
                    repository=reference.full_name
                )
                return CorrelationReport(
                    subject=f"{reference.full_name}@{reference.tag}",
                    outcome=Failed(e)
                )
