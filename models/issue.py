from sqlalchemy import Column, String, Text, DateTime, BigInteger, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class Issue(Base):
    """
    A harvested Jira issue.
    
    Idempotency:
    - issue_key is unique; the loader upserts on it so a page that is
      re-fetched after a crash overwrites rather than duplicates
    
    Field Mapping (Jira -> column):
    - key -> issue_key
    - id -> issue_id
    - fields.summary -> summary
    - fields.description (text or ADF document) -> description
    - fields.issuetype.name -> issue_type
    - fields.reporter.displayName -> reporter
    - fields.components[].name -> components
    - fields.votes / watches / subtasks -> metadata
    """
    __tablename__ = "issues"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    project_id = Column(BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    
    issue_key = Column(String(100), nullable=False)
    issue_id = Column(String(50), nullable=False)
    
    summary = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    issue_type = Column(String(100), nullable=True)
    status = Column(String(100), nullable=True)
    priority = Column(String(100), nullable=True)
    resolution = Column(String(100), nullable=True)
    reporter = Column(String(255), nullable=True)
    assignee = Column(String(255), nullable=True)
    
    labels = Column(JSONB, nullable=True)
    components = Column(JSONB, nullable=True)
    versions = Column(JSONB, nullable=True)
    fix_versions = Column(JSONB, nullable=True)
    
    # Dates as reported by Jira
    created_date = Column(DateTime(timezone=True), nullable=True, index=True)
    updated_date = Column(DateTime(timezone=True), nullable=True)
    resolved_date = Column(DateTime(timezone=True), nullable=True)
    
    extra_metadata = Column("metadata", JSONB, nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    
    project = relationship("Project", back_populates="issues")
    comments = relationship("Comment", back_populates="issue", cascade="all, delete-orphan")
    
    __table_args__ = (
        Index("idx_issue_key", "issue_key", unique=True),
        Index("idx_issue_project_created", "project_id", "created_date"),
    )
