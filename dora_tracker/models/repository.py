"""Repository data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, computed_field


class Repository(BaseModel):
    """Tracked source repository."""

    id: int
    gh_id: Optional[int] = None
    owner: str
    name: str
    private: bool = False
    default_branch: str
    last_scanned_at: Optional[datetime] = None

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class RepositoryCreate(BaseModel):
    """Attributes required to start tracking a repository."""

    gh_id: Optional[int] = None
    owner: str
    name: str
    private: bool = False
    default_branch: str
