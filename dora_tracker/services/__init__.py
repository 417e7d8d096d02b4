"""Business logic services package."""

from dora_tracker.services.store import (
    ReconciliationStore,
    StoreError,
    RepositoryExistsError,
    NotFoundError,
    get_store
)
from dora_tracker.services.redis_client import (
    RedisClient,
    RedisConnectionError,
    get_redis_client
)
from dora_tracker.services.github_client import (
    GitHubClient,
    GitHubAPIError,
    GitHubTransientError,
    GitHubPermanentError,
    GitHubNotFoundError,
    get_github_client
)
from dora_tracker.services.document_client import (
    DocumentClient,
    DocumentSourceError,
    get_document_client
)
from dora_tracker.services.correlator import EnvironmentCorrelator
from dora_tracker.services.ingestor import IngestOutcome, WebhookIngestor
from dora_tracker.services.scanner import ScanError, ScanOrchestrator, ScanSummary

__all__ = [
    'ReconciliationStore',
    'StoreError',
    'RepositoryExistsError',
    'NotFoundError',
    'get_store',
    'RedisClient',
    'RedisConnectionError',
    'get_redis_client',
    'GitHubClient',
    'GitHubAPIError',
    'GitHubTransientError',
    'GitHubPermanentError',
    'GitHubNotFoundError',
    'get_github_client',
    'DocumentClient',
    'DocumentSourceError',
    'get_document_client',
    'EnvironmentCorrelator',
    'IngestOutcome',
    'WebhookIngestor',
    'ScanError',
    'ScanOrchestrator',
    'ScanSummary'
]
