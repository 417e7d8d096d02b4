"""
Worker process for the scan job queue.

Polls the Redis job queue for scan jobs and runs them through the
ScanOrchestrator. Supports multiple worker instances for parallel
processing and implements graceful shutdown on SIGTERM.
"""

import asyncio
import signal
import sys
from typing import Callable, Optional

from dora_tracker.config import settings
from dora_tracker.models.deployment import Environment
from dora_tracker.models.job import JobKind, ScanJob
from dora_tracker.services.correlator import EnvironmentCorrelator
from dora_tracker.services.document_client import DocumentClient, get_document_client
from dora_tracker.services.github_client import GitHubClient
from dora_tracker.services.redis_client import RedisClient, get_redis_client
from dora_tracker.services.scanner import ScanError, ScanOrchestrator, ScanSummary
from dora_tracker.services.store import ReconciliationStore, get_store
from dora_tracker.utils.logging import get_logger, log_job_transition, setup_logging
from dora_tracker.utils.metrics import ScanMetrics, emit_metric

# Configure structured logging
setup_logging(settings.log_level.upper())
logger = get_logger(__name__)


class Worker:
    """Worker process that polls the Redis job queue and runs scans."""

    def __init__(
        self,
        redis_client: Optional[RedisClient] = None,
        store: Optional[ReconciliationStore] = None,
        documents: Optional[DocumentClient] = None,
        github_factory: Optional[Callable[[ScanMetrics], GitHubClient]] = None
    ):
        """
        Initialize the worker.

        Args:
            redis_client: Job queue client
            store: Reconciliation store
            documents: Release-log document client
            github_factory: Builds a GitHub client for one job's metrics
        """
        self.redis_client = redis_client or get_redis_client()
        self.store = store or get_store()
        self.documents = documents or get_document_client()
        self.github_factory = github_factory or (lambda metrics: GitHubClient(metrics=metrics))
        self.running = False
        self.current_job: Optional[ScanJob] = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """
        Start the worker process.

        Initializes connections and begins polling the job queue.
        """
        logger.info("Starting worker process...")

        try:
            await self.redis_client.initialize()
            await self.store.initialize()
            logger.info("Redis and database connections initialized")

            self.running = True
            self._register_signal_handlers()

            logger.info("Worker process started successfully")
            await self._process_jobs()

        except Exception as e:
            logger.error(f"Failed to start worker: {e}", exc_info=True)
            raise

    async def stop(self) -> None:
        """
        Stop the worker process gracefully.

        Lets the current job finish its step before closing connections.
        """
        if self._shutdown_event.is_set():
            return

        logger.info("Stopping worker process...")
        self.running = False

        if self.current_job:
            logger.info(f"Waiting for current job {self.current_job.id} to complete...")
            await asyncio.sleep(2)

        await self.redis_client.close()
        await self.store.close()
        self._shutdown_event.set()

        logger.info("Worker process stopped")

    async def _process_jobs(self) -> None:
        """
        Main job processing loop.

        Blocking pop with a timeout so the running flag is checked periodically.
        """
        logger.info("Starting job processing loop...")

        while self.running:
            try:
                job = await self.redis_client.dequeue_job(timeout=settings.job_poll_timeout_seconds)
                if job is None:
                    continue

                self.current_job = job
                await self.process_job(job)
                self.current_job = None

            except asyncio.CancelledError:
                logger.info("Job processing cancelled")
                break

            except Exception as e:
                logger.error(f"Error processing job: {e}", exc_info=True)
                # Continue processing other jobs
                await asyncio.sleep(1)

        logger.info("Job processing loop stopped")

    async def process_job(self, job: ScanJob) -> None:
        """
        Run one job and record its terminal state.

        Failures are recorded on the job, never raised to the polling loop.
        """
        target = job.data.get("repo_ref") or job.data.get("doc_id") or ""
        metrics = ScanMetrics(job_id=job.id, kind=job.kind.value, target=target)
        metrics.start()

        github = self.github_factory(metrics)
        try:
            summary = await self._run(job, github)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.error(f"Job {job.id} failed: {reason}", extra={"job_id": job.id}, exc_info=True)
            await self.redis_client.mark_job_failed(job.id, reason)
            metrics.complete(status="failed", error_message=reason)
            log_job_transition(logger, job.id, job.kind.value, "failed")
            return
        finally:
            await github.close()

        metrics.commits_created = summary.commits_created
        metrics.deployments_created = summary.deployments_created
        metrics.deployments_existing = summary.deployments_existing
        metrics.skipped = summary.skipped
        metrics.failed = summary.failed

        await self.redis_client.mark_job_completed(job.id, summary.to_dict())
        metrics.complete(status="completed")
        emit_metric("scan.deployments_created", summary.deployments_created, kind=job.kind.value)
        emit_metric("scan.duration_ms", metrics.duration_ms or 0, kind=job.kind.value)
        log_job_transition(logger, job.id, job.kind.value, "completed", progress=100)

    async def _run(self, job: ScanJob, github: GitHubClient) -> ScanSummary:
        orchestrator = ScanOrchestrator(
            github=github,
            store=self.store,
            correlator=EnvironmentCorrelator(github, self.store),
            documents=self.documents
        )

        async def progress(value: int) -> None:
            await self.redis_client.update_job_progress(job.id, value)

        if job.kind is JobKind.DEV:
            repo_ref = job.data.get("repo_ref")
            if not repo_ref:
                raise ScanError("Dev scan requires repo_ref")
            return await orchestrator.run_dev_scan(repo_ref, progress)

        doc_id = job.data.get("doc_id")
        if not doc_id:
            raise ScanError(f"{job.kind.value} scan requires doc_id")
        return await orchestrator.run_release_scan(Environment(job.kind.value), doc_id, progress)

    def _register_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received signal {signal_name}, initiating graceful shutdown...")
            self.running = False

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        logger.info("Signal handlers registered (SIGTERM, SIGINT)")


async def main():
    """Main entry point for worker process."""
    logger.info("Worker process starting...")

    worker = Worker()

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Worker process failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await worker.stop()


def run() -> None:
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
