"""Data models for checklist tasks and their revision history."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class TaskRecord(BaseModel):
    """A single checklist line parsed from a task document."""

    spec_id: str = Field(..., description="Spec the task belongs to")
    task_key: str = Field(..., description="Stable identity: spec id plus leading task text")
    line: int = Field(..., description="0-based line index in the document")
    completed: bool = Field(False, description="Whether the checkbox is marked done")
    optional: bool = Field(False, description="Whether the task carries the * marker")
    state: str = Field(" ", description="Raw checkbox state character")
    text: str = Field("", description="Task description")

    @property
    def is_required(self) -> bool:
        return not self.optional


class TaskStats(BaseModel):
    """Aggregate counts for one task document."""

    total: int = Field(0, description="Total checklist lines")
    completed: int = Field(0, description="Lines marked done")
    optional: int = Field(0, description="Lines marked optional")
    required: int = Field(0, description="Lines not marked optional")
    progress: int = Field(0, description="Completion percentage (0-100)")


class Revision(BaseModel):
    """One committed version of a task document."""

    commit_id: str = Field(..., description="Full commit SHA")
    author: str = Field(..., description="Author name")
    email: str = Field("", description="Author email")
    timestamp: datetime = Field(..., description="Author timestamp")
    content: Optional[str] = Field(None, description="Document text at this revision, None if unreadable")


class ChangeEvent(BaseModel):
    """Checkbox state change found between two consecutive revisions."""

    spec_id: str = Field(..., description="Spec the task belongs to")
    task_key: str = Field(..., description="Stable task identity")
    line: int = Field(..., description="Line index in the newer revision")
    was_completed: bool = Field(..., description="State in the older revision")
    is_completed: bool = Field(..., description="State in the newer revision")
    optional: bool = Field(False, description="Whether the task is optional")
    text: str = Field("", description="Task description")
    revision_time: datetime = Field(..., description="Timestamp of the newer revision")
    author: str = Field("unknown", description="Author of the newer revision")
    author_email: Optional[str] = Field(None, description="Author email of the newer revision")

    @property
    def is_completion(self) -> bool:
        return not self.was_completed and self.is_completed


class CompletionEvent(BaseModel):
    """Canonical, deduplicated completion of one task."""

    spec_id: str = Field(..., description="Spec the task belongs to")
    task_key: str = Field(..., description="Stable task identity")
    line: int = Field(0, description="Line index where the completion was observed")
    completed_at: datetime = Field(..., description="When the task was completed")
    optional: bool = Field(False, description="Whether the task is optional")
    text: str = Field("", description="Task description")
    author: str = Field("unknown", description="Who completed the task")
    author_email: Optional[str] = Field(None, description="Email of who completed the task")

    @property
    def is_required(self) -> bool:
        return not self.optional


class SpecCompletion(BaseModel):
    """Moment a spec document reached 100% according to its history."""

    spec_id: str = Field(..., description="Spec identifier")
    total_tasks: int = Field(..., description="Current task count of the document")
    completed_at: datetime = Field(..., description="Timestamp of the completing revision")
    author: str = Field("unknown", description="Author of the completing revision")
    author_email: Optional[str] = Field(None, description="Author email")


class SpecDocument(BaseModel):
    """A checklist document inside a repository."""

    spec_id: str = Field(..., description="Spec identifier (directory name)")
    path: Path = Field(..., description="Absolute path to the task document")
    repo_root: Path = Field(..., description="Root of the repository containing the document")

    @property
    def relative_path(self) -> str:
        return self.path.relative_to(self.repo_root).as_posix()
