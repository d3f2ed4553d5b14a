from sqlalchemy import Column, String, Text, DateTime, BigInteger, ForeignKey, Index
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class Comment(Base):
    """Comment on a harvested issue, keyed by Jira's comment id"""
    __tablename__ = "comments"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    issue_id = Column(BigInteger, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    
    comment_id = Column(String(50), nullable=False)
    author = Column(String(255), nullable=False, default="Unknown")
    body = Column(Text, nullable=True)
    
    created_date = Column(DateTime(timezone=True), nullable=True)
    updated_date = Column(DateTime(timezone=True), nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    
    issue = relationship("Issue", back_populates="comments")
    
    __table_args__ = (
        Index("idx_comment_id", "comment_id", unique=True),
    )
