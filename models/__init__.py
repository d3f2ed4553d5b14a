"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and the CheckpointStatus enum
    project: Jira projects (collections)
    issue: Harvested issues
    comment: Issue comments
    checkpoint: Per-project harvest progress for resume-on-failure

Usage:
    from models.base import Base, CheckpointStatus
    from models.issue import Issue
    from models.checkpoint import ScraperCheckpoint

Relationships:
    - Project → Issue (one-to-many)
    - Issue → Comment (one-to-many)
    - ScraperCheckpoint is keyed by project_key, not by foreign key, because
      it is written before the project row exists
"""

__all__ = [
    "Base",
    "CheckpointStatus",
    "Project",
    "Issue",
    "Comment",
    "ScraperCheckpoint",
]
