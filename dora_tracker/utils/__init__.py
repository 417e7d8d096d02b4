"""
Utility modules for the DORA tracker.
"""

from dora_tracker.utils.logging import (
    get_logger,
    setup_logging,
    log_webhook_event,
    log_job_transition,
    log_api_call,
    log_error_with_context,
)
from dora_tracker.utils.metrics import (
    ScanMetrics,
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_webhook_event",
    "log_job_transition",
    "log_api_call",
    "log_error_with_context",
    "ScanMetrics",
    "track_api_call",
    "emit_metric",
]
