"""Deployment data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Environment(str, Enum):
    """Deployment target tier."""

    DEV = "dev"
    UAT = "uat"
    PROD = "prod"


class DeploymentKey(BaseModel):
    """Identity of a deployment; at most one row exists per key."""

    repository_id: int
    commit_id: int
    environment: Environment
    name: str


class DeploymentAttrs(BaseModel):
    """Attributes written only when the deployment is first recorded."""

    status: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class Deployment(BaseModel):
    """A commit reaching an environment."""

    id: int
    repository_id: int
    commit_id: int
    environment: Environment
    name: str
    status: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


def release_name(environment: Environment, version: str) -> str:
    """Name of a document-declared release, e.g. ``PROD/v1.2.3``."""
    return f"{environment.value.upper()}/{version}"
