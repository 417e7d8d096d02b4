"""Release-log declaration models."""

from datetime import datetime
from typing import List

from pydantic import BaseModel


class ReleaseReference(BaseModel):
    """A tag-release URL anchoring a declared release to one repository."""

    host: str
    owner: str
    repo: str
    tag: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class ReleaseDeclaration(BaseModel):
    """One parsed release announcement block."""

    version: str
    content_lines: List[str] = []
    release_references: List[str] = []
    released_at: datetime

    @property
    def timestamp_iso(self) -> str:
        return self.released_at.strftime("%Y-%m-%dT%H:%M:%SZ")
