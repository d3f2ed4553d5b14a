"""
Per-project harvest status
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from schemas.api import CheckpointInfo, ErrorResponse, ProjectStatusResponse
from ingestion.loaders.postgres_store import PostgresStore
from core.exceptions import StoreError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Status"])


@router.get(
    "/status/{project_key}",
    response_model=ProjectStatusResponse,
    responses={503: {"model": ErrorResponse}}
)
async def project_status(project_key: str, db: AsyncSession = Depends(get_db)):
    """
    Checkpoint and stored issue count for a project.

    A project that was never harvested returns ``checkpoint: null``.
    """
    project_key = project_key.upper()
    store = PostgresStore(db)

    try:
        checkpoint = await store.get_checkpoint(project_key)
        issue_count = await store.count_entities(project_key)
    except StoreError as e:
        logger.error(f"Status lookup failed for {project_key}: {e}")
        raise HTTPException(status_code=503, detail=e.message)

    return ProjectStatusResponse(
        project_key=project_key,
        checkpoint=CheckpointInfo.model_validate(checkpoint.model_dump()) if checkpoint else None,
        issues_in_database=issue_count
    )
