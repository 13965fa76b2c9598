"""
Pydantic schemas for the CI server: incoming push payloads, parsed push
events and persisted build history records.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CommitState(str, Enum):
    """Commit status states understood by the source-hosting status API."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


# --- Incoming webhook body (subset of a GitHub push event) ---
class PushRepository(BaseModel):
    """Repository block of a push event."""
    model_config = ConfigDict(extra="ignore")

    clone_url: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)


class PushPayload(BaseModel):
    """Fields of a push event the CI server relies on. Everything else is ignored."""
    model_config = ConfigDict(extra="ignore")

    ref: str = Field(..., min_length=1)
    after: str = Field(..., min_length=1)
    repository: PushRepository


class PushEvent(BaseModel):
    """A validated push notification, ready to be built."""
    model_config = ConfigDict(frozen=True)

    clone_url: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1)
    commit_sha: str = Field(..., min_length=1)
    repo_full_name: str = Field(..., min_length=1)


# --- Build history ---
class HistoryRecord(BaseModel):
    """
    On-disk snapshot of one build. Field names are the persisted JSON keys.
    Written once, never updated.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    commit_sha: str = Field(..., alias="commitSHA")
    branch: str
    log: str
    date: datetime
    build_successful: bool = Field(False, alias="buildSuccessful")
    tests_successful: bool = Field(False, alias="testsSuccessful")
    error_message: Optional[str] = Field(None, alias="errorMessage")


class HistoryEntry(BaseModel):
    """A persisted build file as shown in the history listing."""
    name: str
    size_bytes: int
    modified_at: datetime
