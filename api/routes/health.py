"""
Health check endpoint with database and harvest status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, CheckpointInfo
from models.base import CheckpointStatus
from models.checkpoint import ScraperCheckpoint
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Harvest checkpoint for every project
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {str(e)}")

    checkpoints = []
    completed = 0
    failed = 0

    if db_connected:
        try:
            result = await db.execute(select(ScraperCheckpoint).order_by(ScraperCheckpoint.project_key))
            for checkpoint in result.scalars().all():
                if checkpoint.status == CheckpointStatus.ERROR:
                    failed += 1
                elif checkpoint.status == CheckpointStatus.COMPLETED:
                    completed += 1
                checkpoints.append(CheckpointInfo.model_validate(checkpoint))
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch harvest checkpoints: {str(e)}")

    return HealthCheckResponse(
        database_connected=db_connected,
        total_projects=len(checkpoints),
        completed_projects=completed,
        failed_projects=failed,
        checkpoints=checkpoints
    )
