"""
GitHub REST API client.

Thin async wrapper over the endpoints the tracker consumes: repository
metadata, tags, commits, workflow runs, commit comparison and releases.
Handles bearer auth, ``Link``-header pagination, error classification and
retry of transient failures behind a circuit breaker.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from dora_tracker.utils.logging import get_logger
from dora_tracker.utils.metrics import ScanMetrics, track_api_call
from dora_tracker.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    create_github_circuit_breaker,
    retry_with_backoff,
)


logger = get_logger(__name__)


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubTransientError(GitHubAPIError):
    """Network failure, 5xx or rate limiting; may succeed on retry."""
    pass


class GitHubPermanentError(GitHubAPIError):
    """Request rejected; retrying will not help."""
    pass


class GitHubNotFoundError(GitHubPermanentError):
    """Requested resource does not exist (or is not visible to the token)."""
    pass


class GitHubClient:
    """
    Async GitHub REST client.

    All list endpoints are fully paginated and return plain JSON dicts as
    GitHub sends them. One instance is created per process or job and passed
    explicitly to the components that need it.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        per_page: int = 100,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[ScanMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            token: Personal access token. If None, will load from settings.
            base_url: API root. If None, will load from settings.
            timeout: Per-request timeout in seconds
            per_page: Page size for list endpoints (GitHub max is 100)
            circuit_breaker: Optional CircuitBreaker instance
            metrics: Optional job metrics collector for call latency
            transport: Optional httpx transport (used by tests)
        """
        if token is None or base_url is None:
            from dora_tracker.config import settings
            token = token if token is not None else settings.github_token
            base_url = base_url or settings.github_api_url

        self.per_page = per_page
        self.metrics = metrics
        self.circuit_breaker = circuit_breaker or create_github_circuit_breaker(
            counted_exceptions=(GitHubTransientError,)
        )
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ========== Transport ==========

    def _raise_for_status(self, method: str, url: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json().get("message", response.text)
        except ValueError:
            detail = response.text
        message = f"{method} {url} returned {status}: {detail}"

        if status == 404:
            raise GitHubNotFoundError(message, status)
        if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
            raise GitHubTransientError(message, status)
        if status >= 500:
            raise GitHubTransientError(message, status)
        raise GitHubPermanentError(message, status)

    @retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(GitHubTransientError,))
    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        async def _send() -> httpx.Response:
            async with track_api_call(self.metrics, "github", url, method, logger):
                try:
                    response = await self._client.request(method, url, params=params)
                except httpx.TransportError as e:
                    raise GitHubTransientError(f"{method} {url} failed: {e}") from e
                self._raise_for_status(method, url, response)
                return response

        try:
            return await self.circuit_breaker.call(_send)
        except CircuitBreakerOpenError as e:
            raise GitHubTransientError(str(e)) from e

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request("GET", url, params=params)
        return response.json()

    async def _paginate(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Follow ``rel="next"`` links until exhausted and concatenate the pages."""
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        page_params: Optional[Dict[str, Any]] = {"per_page": self.per_page, **(params or {})}

        while next_url:
            response = await self._request("GET", next_url, params=page_params)
            data = response.json()
            items.extend(data.get(items_key, []) if items_key else data)
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            page_params = None

        return items

    # ========== Endpoints ==========

    async def get_repository(self, owner: str, name: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{name}")

    async def list_tags(self, owner: str, name: str) -> List[Dict[str, Any]]:
        """List tags newest-first, each with ``name`` and ``commit.sha``."""
        return await self._paginate(f"/repos/{owner}/{name}/tags")

    async def list_commits(
        self,
        owner: str,
        name: str,
        branch: str,
        since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        List commits reachable from ``branch``.

        Args:
            since: Only commits after this instant (incremental scans)
        """
        params: Dict[str, Any] = {"sha": branch}
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            params["since"] = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return await self._paginate(f"/repos/{owner}/{name}/commits", params)

    async def list_workflow_runs(self, owner: str, name: str, branch: str) -> List[Dict[str, Any]]:
        return await self._paginate(
            f"/repos/{owner}/{name}/actions/runs",
            {"branch": branch},
            items_key="workflow_runs"
        )

    async def compare(self, owner: str, name: str, base: str, head: str) -> List[Dict[str, Any]]:
        """
        Commits reachable from ``head`` but not from ``base``, oldest first.
        """
        return await self._paginate(
            f"/repos/{owner}/{name}/compare/{base}...{head}",
            items_key="commits"
        )

    async def get_release_by_tag(self, owner: str, name: str, tag: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{name}/releases/tags/{tag}")

    async def list_org_repositories(self, org: str) -> List[Dict[str, Any]]:
        return await self._paginate(f"/orgs/{org}/repos")


def get_github_client(metrics: Optional[ScanMetrics] = None) -> GitHubClient:
    """
    Create a GitHub client from settings.

    Returns:
        GitHubClient instance
    """
    return GitHubClient(metrics=metrics)
