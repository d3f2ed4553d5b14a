"""
Pydantic schemas for data validation and serialization.

Schemas:
    harvest: Issues, comments, project metadata, search pages and the
             ProgressCheckpoint state used by the ingestor
    api: Status API response models

Usage:
    from schemas.harvest import IssueEntity, ProgressCheckpoint
    from schemas.api import HealthCheckResponse, CheckpointInfo

Example:
    checkpoint = ProgressCheckpoint.fresh("KAFKA").begin()
    checkpoint = checkpoint.advance(processed=50, persisted=49, last_issue_key="KAFKA-50")
    
    assert checkpoint.last_offset == 50
    assert checkpoint.total_issues_scraped == 49
"""

__all__ = [
    "IssueEntity",
    "IssueComment",
    "ProjectMetadata",
    "SearchPage",
    "ProgressCheckpoint",
    "IngestResult",
    "ExportIssue",
    "HealthCheckResponse",
    "CheckpointInfo",
]
