"""
Operational metrics for scan jobs.

Tracks per-job execution time, records written, items skipped or failed,
and outbound API call latency. This is observability for the tracker
itself; deployment frequency and lead time reporting live elsewhere.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from dora_tracker.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class ScanMetrics:
    """
    Collects metrics during a scan job.

    Tracks:
    - Execution start/end time
    - Commits and deployments created
    - Skipped and failed items
    - API call counts and latency
    """

    def __init__(self, job_id: str, kind: str, target: str):
        """
        Initialize metrics collector.

        Args:
            job_id: Job ID
            kind: Job kind ('dev', 'uat', 'prod')
            target: Repository reference or document id
        """
        self.job_id = job_id
        self.kind = kind
        self.target = target

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        self.commits_created: int = 0
        self.deployments_created: int = 0
        self.deployments_existing: int = 0
        self.skipped: int = 0
        self.failed: int = 0

        self.api_calls: Dict[str, int] = {}
        self.api_latencies: Dict[str, list[float]] = {}

        self.status: str = "running"
        self.error_message: Optional[str] = None

    def start(self) -> None:
        """Mark job execution start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"

    def complete(self, status: str = "completed", error_message: Optional[str] = None) -> None:
        """
        Mark job execution completion.

        Args:
            status: Final status ('completed', 'failed')
            error_message: Error message if failed
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        self.error_message = error_message

        if self.start_time:
            duration = (self.end_time - self.start_time).total_seconds()
            self.duration_ms = int(duration * 1000)

        logger.info(
            f"Scan metrics for job {self.job_id}",
            extra={"job_id": self.job_id, **self.get_metrics_summary()}
        )

    def record_api_call(self, service: str, duration_ms: float) -> None:
        """
        Record API call and latency.

        Args:
            service: Service name (e.g., 'github', 'google_docs')
            duration_ms: Call duration in milliseconds
        """
        self.api_calls[service] = self.api_calls.get(service, 0) + 1
        self.api_latencies.setdefault(service, []).append(duration_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary: Dict[str, Any] = {
            "kind": self.kind,
            "target": self.target,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "commits_created": self.commits_created,
            "deployments_created": self.deployments_created,
            "deployments_existing": self.deployments_existing,
            "skipped": self.skipped,
            "failed": self.failed,
            "api_calls": self.api_calls,
        }

        if self.api_latencies:
            latency_stats = {}
            for service, latencies in self.api_latencies.items():
                if latencies:
                    latency_stats[service] = {
                        "count": len(latencies),
                        "min_ms": round(min(latencies), 2),
                        "max_ms": round(max(latencies), 2),
                        "avg_ms": round(sum(latencies) / len(latencies), 2),
                    }
            summary["api_latencies"] = latency_stats

        if self.error_message:
            summary["error_message"] = self.error_message

        return summary


@asynccontextmanager
async def track_api_call(
    metrics: Optional[ScanMetrics],
    service: str,
    endpoint: str,
    method: str,
    logger_adapter
):
    """
    Context manager to track API call timing.

    Usage:
        async with track_api_call(metrics, "github", "/repos/acme/widget/tags", "GET", logger):
            response = await client.get(url)
    """
    start_time = time.time()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000

        if metrics:
            metrics.record_api_call(service, duration_ms)

        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None
        )


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric.

    Logged as a structured record so a log shipper can forward it to a
    monitoring backend.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
