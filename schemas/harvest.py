"""
Pydantic schemas for harvested entities and harvest progress
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from models.base import CheckpointStatus
from core.exceptions import CheckpointError


class IssueComment(BaseModel):
    """A comment nested under an issue, keyed by Jira's comment id"""
    comment_id: str = Field(..., min_length=1)
    author: str = "Unknown"
    body: str = ""
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None


class IssueEntity(BaseModel):
    """
    One harvested issue.

    issue_key is the stable identity used for idempotent upserts; every
    other field may change between fetches.
    """
    issue_key: str = Field(..., min_length=1, max_length=100)
    issue_id: str = Field(..., min_length=1)
    project_key: str = Field(..., min_length=1)

    summary: str = ""
    description: str = ""
    issue_type: str = ""
    status: str = ""
    priority: str = ""
    resolution: Optional[str] = None
    reporter: Optional[str] = None
    assignee: Optional[str] = None

    labels: List[str] = Field(default_factory=list)
    components: List[str] = Field(default_factory=list)
    versions: List[str] = Field(default_factory=list)
    fix_versions: List[str] = Field(default_factory=list)

    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    resolved_date: Optional[datetime] = None

    extra_metadata: Dict[str, Any] = Field(default_factory=dict)
    comments: List[IssueComment] = Field(default_factory=list)

    @validator("labels", "components", "versions", "fix_versions", pre=True)
    def clean_names(cls, v):
        """Drop empty names"""
        if v is None:
            return []
        return [str(name).strip() for name in v if name is not None and str(name).strip()]


class ProjectMetadata(BaseModel):
    """Project (collection) metadata as returned by /project/{key}"""
    project_key: str = Field(..., min_length=1)
    project_name: str
    project_url: Optional[str] = None
    description: str = ""
    extra_metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchPage(BaseModel):
    """One page of raw issue payloads from /search"""
    items: List[Dict[str, Any]]
    total: int = Field(..., ge=0)
    offset: int = Field(0, ge=0)


class ProgressCheckpoint(BaseModel):
    """
    Durable resume point for one project.

    Transitions return a new checkpoint rather than mutating this one so the
    ingestor can only publish a state after the store accepted it:

        begin()    -> RUNNING (keeps offset/count, clears error)
        advance()  -> RUNNING with offset/count moved forward
        complete() -> COMPLETED
        fail()     -> ERROR at the current offset/count
    """
    project_key: str = Field(..., min_length=1)
    last_offset: int = Field(0, ge=0)
    total_issues_scraped: int = Field(0, ge=0)
    last_issue_key: Optional[str] = None
    status: CheckpointStatus = CheckpointStatus.PENDING
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        frozen = True
        from_attributes = True

    @classmethod
    def fresh(cls, project_key: str) -> "ProgressCheckpoint":
        return cls(project_key=project_key)

    @property
    def is_completed(self) -> bool:
        return self.status == CheckpointStatus.COMPLETED

    def begin(self) -> "ProgressCheckpoint":
        now = datetime.now(timezone.utc)
        return self.model_copy(update={
            "status": CheckpointStatus.RUNNING,
            "error_message": None,
            "started_at": now,
            "completed_at": None,
            "updated_at": now,
        })

    def advance(
        self,
        processed: int,
        persisted: int,
        last_issue_key: Optional[str] = None
    ) -> "ProgressCheckpoint":
        """Move past a committed page of ``processed`` issues, ``persisted`` of which were stored."""
        if self.status != CheckpointStatus.RUNNING:
            raise CheckpointError(
                "Cannot advance a checkpoint that is not running",
                context={"project_key": self.project_key, "status": self.status.value}
            )
        if processed < 0 or persisted < 0 or persisted > processed:
            raise CheckpointError(
                "Checkpoint offset and count must not move backwards",
                context={
                    "project_key": self.project_key,
                    "processed": processed,
                    "persisted": persisted
                }
            )
        return self.model_copy(update={
            "last_offset": self.last_offset + processed,
            "total_issues_scraped": self.total_issues_scraped + persisted,
            "last_issue_key": last_issue_key or self.last_issue_key,
            "updated_at": datetime.now(timezone.utc),
        })

    def complete(self) -> "ProgressCheckpoint":
        now = datetime.now(timezone.utc)
        return self.model_copy(update={
            "status": CheckpointStatus.COMPLETED,
            "error_message": None,
            "completed_at": now,
            "updated_at": now,
        })

    def fail(self, error_message: str) -> "ProgressCheckpoint":
        return self.model_copy(update={
            "status": CheckpointStatus.ERROR,
            "error_message": error_message,
            "updated_at": datetime.now(timezone.utc),
        })


class IngestResult(BaseModel):
    """Per-project outcome reported to the caller"""
    project_key: str
    final_status: CheckpointStatus
    count_ingested: int = 0
    error: Optional[str] = None


class ExportIssue(BaseModel):
    """A stored issue joined with its project name, as read back for export"""
    issue: IssueEntity
    project_name: str = "Unknown"
