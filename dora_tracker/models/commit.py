"""Commit data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

SHA_PATTERN = r"^[0-9a-f]{40}$"


class Commit(BaseModel):
    """Commit observed on a repository's default branch. Never updated once stored."""

    id: int
    repository_id: int
    sha: str = Field(pattern=SHA_PATTERN)
    author: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime


class CommitCreate(BaseModel):
    """Attributes of a newly observed commit."""

    repository_id: int
    sha: str = Field(pattern=SHA_PATTERN)
    author: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime
