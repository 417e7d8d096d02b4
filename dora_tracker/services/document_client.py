"""
Release-log document client.

Reads a Google Docs document with a service account and returns its text as
an ordered list of blocks: paragraph text runs are concatenated and the
result is split on blank-line boundaries. Block grammar is handled by the
version parser.
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from dora_tracker.utils.logging import get_logger
from dora_tracker.utils.resilience import (
    CircuitBreaker,
    create_google_docs_circuit_breaker,
    retry_with_backoff,
)


logger = get_logger(__name__)

DOCS_SCOPES = ["https://www.googleapis.com/auth/documents.readonly"]

_BLANK_LINES = re.compile(r"\n\s*\n")


class DocumentSourceError(Exception):
    """Raised when a document cannot be fetched."""
    pass


def extract_blocks(content: Optional[List[Dict[str, Any]]]) -> List[str]:
    """
    Convert a Docs ``body.content`` structure into text blocks.

    Args:
        content: List of structural elements from the Docs API

    Returns:
        Non-empty blocks, trimmed, in document order
    """
    if not content:
        return []

    text_runs: List[str] = []
    for element in content:
        paragraph = element.get("paragraph")
        if not paragraph:
            continue
        for paragraph_element in paragraph.get("elements", []):
            text = (paragraph_element.get("textRun") or {}).get("content")
            if text:
                text_runs.append(text)

    return split_blocks("".join(text_runs))


def split_blocks(text: str) -> List[str]:
    """Split raw text on blank-line boundaries, dropping empty blocks."""
    normalized = text.replace("\r\n", "\n").replace("\x0b", "\n")
    return [block.strip() for block in _BLANK_LINES.split(normalized) if block.strip()]


class DocumentClient:
    """Reads release-log documents from Google Docs."""

    def __init__(
        self,
        credentials_file: Optional[str] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        service: Any = None,
    ):
        """
        Initialize the document client.

        Args:
            credentials_file: Service-account JSON key. If None, will load from settings.
            circuit_breaker: Optional CircuitBreaker instance
            service: Prebuilt Docs service resource (used by tests)
        """
        self._credentials_file = credentials_file
        self._service = service
        self.circuit_breaker = circuit_breaker or create_google_docs_circuit_breaker()

    def _get_service(self):
        if self._service is None:
            if not self._credentials_file:
                from dora_tracker.config import settings
                self._credentials_file = settings.google_credentials_file

            credentials = service_account.Credentials.from_service_account_file(
                self._credentials_file,
                scopes=DOCS_SCOPES
            )
            self._service = build("docs", "v1", credentials=credentials, cache_discovery=False)
        return self._service

    def _fetch_document(self, document_id: str) -> Dict[str, Any]:
        return self._get_service().documents().get(documentId=document_id).execute()

    @retry_with_backoff(max_retries=3, base_delay=2.0, exceptions=(DocumentSourceError,))
    async def _get_document(self, document_id: str) -> Dict[str, Any]:
        async def _execute():
            try:
                # The Google client is synchronous
                return await asyncio.to_thread(self._fetch_document, document_id)
            except Exception as e:
                raise DocumentSourceError(f"Failed to read document {document_id}: {e}") from e

        return await self.circuit_breaker.call(_execute)

    async def read_blocks(self, document_id: str) -> List[str]:
        """
        Fetch a document and return its text blocks.

        Raises:
            DocumentSourceError: If the document cannot be fetched
        """
        logger.info(f"Reading release log document {document_id}")
        document = await self._get_document(document_id)
        blocks = extract_blocks((document.get("body") or {}).get("content"))
        logger.info(f"Document {document_id} has {len(blocks)} blocks")
        return blocks


def get_document_client() -> DocumentClient:
    """
    Create a document client from settings.

    Returns:
        DocumentClient instance
    """
    return DocumentClient()
