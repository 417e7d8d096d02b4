"""
Unit tests for the release-log document client.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dora_tracker.services.document_client import DocumentClient, DocumentSourceError
from dora_tracker.utils.resilience import CircuitBreaker


def paragraph(text: str) -> dict:
    return {"paragraph": {"elements": [{"textRun": {"content": text}}]}}


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("dora_tracker.utils.resilience.asyncio.sleep", new=AsyncMock()):
        yield


@pytest.fixture
def service():
    """Mock Docs service resource."""
    return MagicMock()


@pytest.fixture
def client(service):
    return DocumentClient(service=service, circuit_breaker=CircuitBreaker(failure_threshold=100))


@pytest.mark.asyncio
async def test_read_blocks(client, service):
    service.documents.return_value.get.return_value.execute.return_value = {
        "body": {"content": [
            {"sectionBreak": {}},
            paragraph("v1.2.0 (2024-03-01)\n"),
            paragraph("Version\n"),
            paragraph("\n"),
            paragraph("v1.1.0 (2024-02-01)\n"),
        ]}
    }

    blocks = await client.read_blocks("doc-1")

    assert blocks == ["v1.2.0 (2024-03-01)\nVersion", "v1.1.0 (2024-02-01)"]
    service.documents.return_value.get.assert_called_with(documentId="doc-1")


@pytest.mark.asyncio
async def test_empty_document(client, service):
    service.documents.return_value.get.return_value.execute.return_value = {"body": {}}

    assert await client.read_blocks("doc-1") == []


@pytest.mark.asyncio
async def test_fetch_failure_is_retried_then_raised(client, service):
    execute = service.documents.return_value.get.return_value.execute
    execute.side_effect = RuntimeError("403 forbidden")

    with pytest.raises(DocumentSourceError):
        await client.read_blocks("doc-1")

    assert execute.call_count == 3


@pytest.mark.asyncio
async def test_transient_failure_recovers(client, service):
    execute = service.documents.return_value.get.return_value.execute
    execute.side_effect = [RuntimeError("503"), {"body": {"content": [paragraph("Release notes\n")]}}]

    assert await client.read_blocks("doc-1") == ["Release notes"]
