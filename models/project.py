from sqlalchemy import Column, String, Text, DateTime, BigInteger, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class Project(Base):
    """
    A Jira project, the collection that owns harvested issues.
    
    Design:
    - One row per project_key; re-harvesting updates the row in place
    - metadata keeps lead, project type and avatar urls as returned by Jira
    """
    __tablename__ = "projects"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    
    project_key = Column(String(50), nullable=False)
    project_name = Column(String(255), nullable=False)
    project_url = Column(String(2048), nullable=True)
    description = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSONB, nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    
    issues = relationship("Issue", back_populates="project", cascade="all, delete-orphan")
    
    __table_args__ = (
        Index("idx_project_key", "project_key", unique=True),
    )
