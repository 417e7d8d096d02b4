"""
Release-log block parser.

A block announces one release:

    v1.2.3 (14h50, 2024-01-05)
    free-form notes ...
    Version
    github.com/acme/widget/releases/tag/v1.2.3

The heading carries either an hour and date (prod logs, UTC) or a date only
(uat logs, UTC midnight). Lines after the ``Version`` marker reference the
tagged releases that went out. Malformed blocks are skipped, never raised.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from dora_tracker.models.release import ReleaseDeclaration, ReleaseReference
from dora_tracker.models.result import Ok, Result, Skipped
from dora_tracker.utils.logging import get_logger


logger = get_logger(__name__)

VERSION_MARKER = "Version"

HEADING_PATTERN = re.compile(
    r"^(?P<version>[vV]?\d+\.\d+\.\d+(?:-[A-Za-z0-9]+)?)"
    r"\s\((?:(?P<hour>\d{2})h(?P<minute>\d{2}),\s)?(?P<date>\d{4}-\d{2}-\d{2})\)$"
)

RELEASE_REFERENCE_PATTERN = re.compile(
    r"(?:https?://)?(?P<host>[A-Za-z0-9.-]+\.[A-Za-z]{2,})"
    r"/(?P<owner>[^/\s]+)/(?P<repo>[^/\s]+)/releases/tag/(?P<tag>[^/\s?#]+)"
)


def normalize_version(token: str) -> str:
    """Ensure a version token carries a leading ``v``."""
    return token if token[:1] in ("v", "V") else f"v{token}"


def _parse_heading_timestamp(match: re.Match) -> Optional[datetime]:
    try:
        day = datetime.strptime(match.group("date"), "%Y-%m-%d")
        if match.group("hour") is None:
            return day.replace(tzinfo=timezone.utc)
        return day.replace(
            hour=int(match.group("hour")),
            minute=int(match.group("minute")),
            tzinfo=timezone.utc
        )
    except ValueError:
        return None


def parse_version_block(block: str) -> Result[ReleaseDeclaration]:
    """
    Parse one release announcement.

    Args:
        block: Text of a single block

    Returns:
        Ok(ReleaseDeclaration), or Skipped when the heading matches neither
        timestamp grammar or the ``Version`` marker line is missing
    """
    lines = block.strip().splitlines()
    if not lines:
        return Skipped("empty block")

    heading = lines[0].strip()
    match = HEADING_PATTERN.match(heading)
    if not match:
        logger.info(f"No version heading in block starting with {heading[:40]!r}")
        return Skipped(f"no version heading: {heading[:40]!r}")

    version = normalize_version(match.group("version"))
    released_at = _parse_heading_timestamp(match)
    if released_at is None:
        logger.warning(f"Invalid date or time in heading for {version}: {heading!r}")
        return Skipped(f"invalid timestamp in heading for {version}")

    rest = lines[1:]
    try:
        marker_index = rest.index(VERSION_MARKER)
    except ValueError:
        logger.warning(f'"{VERSION_MARKER}" marker not found in release block for {version}')
        return Skipped(f'"{VERSION_MARKER}" marker not found for {version}')

    return Ok(ReleaseDeclaration(
        version=version,
        content_lines=rest[:marker_index],
        release_references=[line.strip() for line in rest[marker_index + 1:] if line.strip()],
        released_at=released_at
    ))


def parse_release_reference(line: str) -> Optional[ReleaseReference]:
    """
    Extract host/owner/repo/tag from a tag-release URL line.

    Returns:
        ReleaseReference, or None if the line is not a release URL
    """
    match = RELEASE_REFERENCE_PATTERN.search(line)
    if not match:
        return None
    return ReleaseReference(
        host=match.group("host").lower(),
        owner=match.group("owner"),
        repo=match.group("repo"),
        tag=match.group("tag")
    )
