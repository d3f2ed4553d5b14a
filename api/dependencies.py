"""
FastAPI dependencies
"""

from core.database import get_session


async def get_db():
    """Request-scoped database session"""
    async for session in get_session():
        yield session
