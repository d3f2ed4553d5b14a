from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from models.base import Base, CheckpointStatus, utcnow


class ScraperCheckpoint(Base):
    """
    Tracks harvest progress per project.
    
    Purpose:
    - Resume a harvest from the last committed pagination offset
    - Skip projects that already completed
    - Keep the failure message of the last aborted run
    
    Design:
    - One row per project_key
    - last_offset / total_issues_scraped only move forward while running
    - Written after the page it describes has been persisted
    """
    __tablename__ = "scraper_state"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    
    project_key = Column(String(50), nullable=False)
    
    last_offset = Column(Integer, nullable=False, default=0)
    total_issues_scraped = Column(Integer, nullable=False, default=0)
    last_issue_key = Column(String(100), nullable=True)
    
    status = Column(Enum(CheckpointStatus), default=CheckpointStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)
    
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    
    __table_args__ = (
        Index("idx_scraper_state_project", "project_key", unique=True),
    )
