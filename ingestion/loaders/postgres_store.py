"""
PostgreSQL implementation of the Store with upsert logic (idempotency)
"""

import asyncio
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from ingestion.base import Store
from models.project import Project
from models.issue import Issue
from models.comment import Comment
from models.checkpoint import ScraperCheckpoint
from schemas.harvest import (
    ExportIssue,
    IssueComment,
    IssueEntity,
    ProgressCheckpoint,
    ProjectMetadata,
)
from core.exceptions import EntityPersistError, StoreError, StoreUnavailableError
import logging

logger = logging.getLogger(__name__)

ISSUE_UPDATE_COLUMNS = [
    "project_id", "issue_id", "summary", "description", "issue_type", "status",
    "priority", "resolution", "reporter", "assignee", "labels", "components",
    "versions", "fix_versions", "created_date", "updated_date", "resolved_date",
    "metadata",
]

CHECKPOINT_UPDATE_COLUMNS = [
    "last_offset", "total_issues_scraped", "last_issue_key", "status",
    "error_message", "started_at", "completed_at",
]


def _is_unavailable(error: BaseException) -> bool:
    """Connection-level failures, as opposed to a rejected row"""
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, (OSError, asyncio.TimeoutError))


class PostgresStore(Store):
    """
    Store backed by PostgreSQL with idempotent upsert operations.

    Ensures:
    - No duplicate rows on repeated runs (INSERT ... ON CONFLICT)
    - Updates existing issues if source data changes
    - Every write is committed before the call returns, so a checkpoint
      written after a page can never point past uncommitted issues
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self._project_ids: Dict[str, int] = {}

    async def upsert_collection(self, project: ProjectMetadata) -> int:
        table = Project.__table__
        stmt = insert(table).values(
            project_key=project.project_key,
            project_name=project.project_name,
            project_url=project.project_url,
            description=project.description,
            metadata=project.extra_metadata,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["project_key"],
            set_={
                "project_name": stmt.excluded["project_name"],
                "project_url": stmt.excluded["project_url"],
                "description": stmt.excluded["description"],
                "metadata": stmt.excluded["metadata"],
                "updated_at": func.now(),
            }
        ).returning(table.c.id)

        project_id = await self._write(
            stmt,
            operation="UPSERT",
            table_name="projects",
            context={"project_key": project.project_key},
            error_cls=StoreError
        )
        self._project_ids[project.project_key] = project_id
        logger.debug(f"Saved project: {project.project_key}")
        return project_id

    async def upsert_entity(self, entity: IssueEntity) -> int:
        project_id = await self._project_id(entity.project_key)
        if project_id is None:
            raise EntityPersistError(
                f"Project {entity.project_key} is not stored",
                context={"issue_key": entity.issue_key, "project_key": entity.project_key}
            )

        table = Issue.__table__
        stmt = insert(table).values(
            project_id=project_id,
            issue_key=entity.issue_key,
            issue_id=entity.issue_id,
            summary=entity.summary,
            description=entity.description,
            issue_type=entity.issue_type,
            status=entity.status,
            priority=entity.priority,
            resolution=entity.resolution,
            reporter=entity.reporter,
            assignee=entity.assignee,
            labels=entity.labels,
            components=entity.components,
            versions=entity.versions,
            fix_versions=entity.fix_versions,
            created_date=entity.created_date,
            updated_date=entity.updated_date,
            resolved_date=entity.resolved_date,
            metadata=entity.extra_metadata,
        )
        set_ = {column: stmt.excluded[column] for column in ISSUE_UPDATE_COLUMNS}
        set_["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=["issue_key"],
            set_=set_
        ).returning(table.c.id)

        return await self._write(
            stmt,
            operation="UPSERT",
            table_name="issues",
            context={"issue_key": entity.issue_key}
        )

    async def upsert_sub_entities(self, parent_id: int, comments: List[IssueComment]) -> None:
        if not comments:
            return

        rows = [
            {
                "issue_id": parent_id,
                "comment_id": comment.comment_id,
                "author": comment.author,
                "body": comment.body,
                "created_date": comment.created_date,
                "updated_date": comment.updated_date,
            }
            for comment in comments
        ]
        stmt = insert(Comment.__table__).values(rows).on_conflict_do_nothing(
            index_elements=["comment_id"]
        )

        await self._write(
            stmt,
            operation="UPSERT",
            table_name="comments",
            context={"issue_id": parent_id, "comments": len(rows)},
            returns_id=False
        )
        logger.debug(f"Saved {len(rows)} comments for issue id {parent_id}")

    async def get_checkpoint(self, project_key: str) -> Optional[ProgressCheckpoint]:
        row = await self._read(
            select(ScraperCheckpoint).where(ScraperCheckpoint.project_key == project_key),
            table_name="scraper_state",
            context={"project_key": project_key}
        )
        record = row.scalar_one_or_none()
        if record is None:
            return None
        return ProgressCheckpoint.model_validate(record)

    async def put_checkpoint(self, checkpoint: ProgressCheckpoint) -> None:
        stmt = insert(ScraperCheckpoint.__table__).values(
            project_key=checkpoint.project_key,
            last_offset=checkpoint.last_offset,
            total_issues_scraped=checkpoint.total_issues_scraped,
            last_issue_key=checkpoint.last_issue_key,
            status=checkpoint.status,
            error_message=checkpoint.error_message,
            started_at=checkpoint.started_at,
            completed_at=checkpoint.completed_at,
        )
        set_ = {column: stmt.excluded[column] for column in CHECKPOINT_UPDATE_COLUMNS}
        set_["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=["project_key"], set_=set_)

        await self._write(
            stmt,
            operation="UPSERT",
            table_name="scraper_state",
            context={"project_key": checkpoint.project_key},
            error_cls=StoreError,
            returns_id=False
        )

    async def count_entities(self, project_key: Optional[str] = None) -> int:
        query = select(func.count()).select_from(Issue)
        if project_key:
            query = query.join(Project, Issue.project_id == Project.id).where(
                Project.project_key == project_key
            )
        result = await self._read(query, table_name="issues", context={"project_key": project_key})
        return result.scalar() or 0

    async def list_entities_for_export(self, project_key: Optional[str] = None) -> List[ExportIssue]:
        query = (
            select(Issue, Project.project_key, Project.project_name)
            .join(Project, Issue.project_id == Project.id)
            .options(selectinload(Issue.comments))
            .order_by(Issue.created_date.asc())
        )
        if project_key:
            query = query.where(Project.project_key == project_key)

        result = await self._read(query, table_name="issues", context={"project_key": project_key})

        return [
            ExportIssue(issue=self._to_entity(issue, key), project_name=name)
            for issue, key, name in result.all()
        ]

    async def _project_id(self, project_key: str) -> Optional[int]:
        if project_key not in self._project_ids:
            result = await self._read(
                select(Project.id).where(Project.project_key == project_key),
                table_name="projects",
                context={"project_key": project_key}
            )
            project_id = result.scalar_one_or_none()
            if project_id is None:
                return None
            self._project_ids[project_key] = project_id
        return self._project_ids[project_key]

    async def _write(
        self,
        stmt,
        operation: str,
        table_name: str,
        context: Dict[str, Any],
        error_cls=EntityPersistError,
        returns_id: bool = True
    ) -> Optional[int]:
        """Execute and commit one statement, translating DB errors to store errors"""
        try:
            result = await self.db.execute(stmt)
            row_id = result.scalar_one() if returns_id else None
            await self.db.commit()
            return row_id
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            await self._safe_rollback()
            details = {"operation": operation, "table_name": table_name, **context}
            if _is_unavailable(e):
                raise StoreUnavailableError("Database unavailable", context=details, original_exception=e)
            raise error_cls(f"Failed to write {table_name}", context=details, original_exception=e)

    async def _read(self, query, table_name: str, context: Dict[str, Any]):
        try:
            return await self.db.execute(query)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            await self._safe_rollback()
            details = {"operation": "SELECT", "table_name": table_name, **context}
            if _is_unavailable(e):
                raise StoreUnavailableError("Database unavailable", context=details, original_exception=e)
            raise StoreError(f"Failed to read {table_name}", context=details, original_exception=e)

    async def _safe_rollback(self):
        try:
            await self.db.rollback()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Rollback failed: {e}")

    @staticmethod
    def _to_entity(issue: Issue, project_key: str) -> IssueEntity:
        return IssueEntity(
            issue_key=issue.issue_key,
            issue_id=issue.issue_id,
            project_key=project_key,
            summary=issue.summary or "",
            description=issue.description or "",
            issue_type=issue.issue_type or "",
            status=issue.status or "",
            priority=issue.priority or "",
            resolution=issue.resolution,
            reporter=issue.reporter,
            assignee=issue.assignee,
            labels=issue.labels or [],
            components=issue.components or [],
            versions=issue.versions or [],
            fix_versions=issue.fix_versions or [],
            created_date=issue.created_date,
            updated_date=issue.updated_date,
            resolved_date=issue.resolved_date,
            extra_metadata=issue.extra_metadata or {},
            comments=[
                IssueComment(
                    comment_id=c.comment_id,
                    author=c.author or "Unknown",
                    body=c.body or "",
                    created_date=c.created_date,
                    updated_date=c.updated_date,
                )
                for c in sorted(issue.comments, key=lambda c: (c.created_date is None, c.created_date))
            ],
        )
