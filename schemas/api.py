"""
Pydantic schemas for API response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime, timezone
from models.base import CheckpointStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Health Check Schemas
# ============================================================================

class CheckpointInfo(BaseModel):
    """Harvest checkpoint for one project"""
    project_key: str
    status: CheckpointStatus
    last_offset: int
    total_issues_scraped: int
    last_issue_key: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    total_projects: int = 0
    completed_projects: int = 0
    failed_projects: int = 0
    status: str = Field(None, description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    checkpoints: List[CheckpointInfo] = Field(default_factory=list)

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        failed = values.get("failed_projects", 0)
        total = values.get("total_projects", 0)

        if total == 0 or failed == 0:
            return "healthy"
        elif failed < total:
            return "degraded"
        else:
            return "unhealthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-11-01T10:30:00Z",
                "database_connected": True,
                "total_projects": 3,
                "completed_projects": 3,
                "failed_projects": 0,
                "checkpoints": [
                    {
                        "project_key": "KAFKA",
                        "status": "completed",
                        "last_offset": 15230,
                        "total_issues_scraped": 15228,
                        "last_issue_key": "KAFKA-15871",
                        "completed_at": "2025-11-01T10:00:00Z"
                    }
                ]
            }
        }


# ============================================================================
# Status Schemas
# ============================================================================

class ProjectStatusResponse(BaseModel):
    """Checkpoint plus stored issue count for one project"""
    project_key: str
    checkpoint: Optional[CheckpointInfo] = None
    issues_in_database: int = 0
    timestamp: datetime = Field(default_factory=_utcnow)


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
