# ============================================================================
# File: ingestion/runner.py
# Description: Resumable, checkpointed harvest of Jira projects
# ============================================================================
"""
Checkpointed ingestor - drives fetch → persist → checkpoint per page.

State machine per project:

    NotStarted ──► Running ──► Completed
                      │
                      └──────► Error ──(resume)──► Running

Guarantees:
- At-least-once delivery: a page is persisted before the checkpoint that
  covers it, so a crash re-reads at most one page
- Resumability: a resumed run starts at the stored offset and count
- Per-issue failures are logged and skipped; page-level fetch failures and
  store outages abort the project and record status ``error``
"""

from typing import Callable, List, Optional
import logging

from ingestion.base import RemoteAPI, Store
from ingestion.extractors.paginator import PaginatedFetcher
from ingestion.transformers.issue_mapper import IssueMapper, map_project
from models.base import CheckpointStatus
from schemas.harvest import IngestResult, IssueEntity, ProgressCheckpoint, SearchPage
from core.config import settings
from core.exceptions import (
    CollectionNotFoundError,
    HarvestException,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


class CheckpointedIngestor:
    """
    Harvest orchestrator.

    Responsibilities:
    - Decide the resume point from the stored checkpoint
    - Persist every issue of a page (and its comments) before checkpointing
    - Enforce the optional max_entities cap
    - Record terminal status per project and keep going across projects
    """

    def __init__(
        self,
        remote: RemoteAPI,
        store: Store,
        page_size: Optional[int] = None,
        mapper_factory: Callable[[str], IssueMapper] = IssueMapper
    ):
        self.remote = remote
        self.store = store
        self.fetcher = PaginatedFetcher(remote)
        self.page_size = page_size or settings.BATCH_SIZE
        self.mapper_factory = mapper_factory

    async def get_status(self, project_key: str) -> Optional[ProgressCheckpoint]:
        return await self.store.get_checkpoint(project_key)

    async def ingest(
        self,
        project_keys: List[str],
        resume: bool = True,
        max_entities: Optional[int] = None
    ) -> List[IngestResult]:
        """
        Harvest projects one after another.

        A failing project is reported in its result and does not stop the
        remaining ones.
        """
        self._check_cap(max_entities)
        results = []

        for project_key in project_keys:
            logger.info("=" * 60)
            logger.info(f"Starting project: {project_key}")
            logger.info("=" * 60)

            try:
                result = await self.ingest_collection(project_key, resume, max_entities)
                logger.info(f"Completed {project_key}: {result.count_ingested} issues scraped")
            except Exception as e:
                logger.error(f"Failed to scrape project {project_key}: {e}")
                message = e.message if isinstance(e, HarvestException) else str(e)
                checkpoint = await self._status_or_none(project_key)
                result = IngestResult(
                    project_key=project_key,
                    final_status=CheckpointStatus.ERROR,
                    count_ingested=checkpoint.total_issues_scraped if checkpoint else 0,
                    error=message
                )

            results.append(result)

            snapshot = self.remote.stats()
            logger.info(f"API Stats - Requests: {snapshot.request_count}, Errors: {snapshot.error_count}")

        return results

    async def ingest_collection(
        self,
        project_key: str,
        resume: bool = True,
        max_entities: Optional[int] = None
    ) -> IngestResult:
        """
        Harvest one project from its resume point to the end (or the cap).

        Raises:
            CollectionNotFoundError: The project does not exist
            FetchError: A page could not be fetched after retries
            StoreError: The store rejected a checkpoint or is unreachable
            ValueError: max_entities is not a positive number
        """
        self._check_cap(max_entities)
        logger.info(f"Starting scrape for project: {project_key}")

        previous = await self.store.get_checkpoint(project_key) if resume else None

        if previous is not None and previous.is_completed:
            logger.info(f"Project {project_key} already completed. Use resume=False to restart.")
            return IngestResult(
                project_key=project_key,
                final_status=CheckpointStatus.COMPLETED,
                count_ingested=previous.total_issues_scraped
            )

        if previous is not None:
            checkpoint = previous.begin()
            logger.info(
                f"Resuming {project_key} at offset {checkpoint.last_offset} "
                f"({checkpoint.total_issues_scraped} issues already scraped)"
            )
        else:
            checkpoint = ProgressCheckpoint.fresh(project_key).begin()

        await self.store.put_checkpoint(checkpoint)
        committed = checkpoint

        try:
            raw_project = await self.remote.get_collection_metadata(project_key)
            if not raw_project:
                raise CollectionNotFoundError(
                    f"Project {project_key} not found",
                    context={"project_key": project_key}
                )

            project_id = await self.store.upsert_collection(map_project(raw_project))
            logger.info(f"Project metadata saved: {raw_project.get('name', project_key)} (id={project_id})")

            mapper = self.mapper_factory(project_key)
            query = self.remote.collection_query(project_key)

            while not self._cap_reached(committed, max_entities):
                page = await self.fetcher.fetch_page(query, committed.last_offset, self.page_size)
                if page is None:
                    logger.info(f"No more issues for {project_key} at offset {committed.last_offset}")
                    break

                logger.info(
                    f"Processing batch: {page.offset} to {page.offset + len(page.items)} of {page.total}"
                )

                checkpoint = await self._process_page(committed, page, mapper, max_entities)
                await self.store.put_checkpoint(checkpoint)
                committed = checkpoint

                if committed.last_offset >= page.total:
                    break

            if self._cap_reached(committed, max_entities):
                logger.info(f"Reached max issues limit: {max_entities}")

            completed = committed.complete()
            await self.store.put_checkpoint(completed)
            committed = completed

        except Exception as e:
            message = e.message if isinstance(e, HarvestException) else str(e)
            logger.error(f"Error scraping {project_key} at offset {committed.last_offset}: {message}")
            await self._record_failure(committed, message)
            raise

        logger.info(f"Completed scraping project {project_key}. Total issues: {committed.total_issues_scraped}")

        return IngestResult(
            project_key=project_key,
            final_status=committed.status,
            count_ingested=committed.total_issues_scraped
        )

    async def _process_page(
        self,
        checkpoint: ProgressCheckpoint,
        page: SearchPage,
        mapper: IssueMapper,
        max_entities: Optional[int]
    ) -> ProgressCheckpoint:
        """
        Persist each issue of the page and return the advanced checkpoint.

        Issues beyond the cap are left unprocessed so the offset only covers
        issues that were attempted.
        """
        processed = 0
        persisted = 0
        last_key = None

        for raw_issue in page.items:
            if max_entities is not None and checkpoint.total_issues_scraped + persisted >= max_entities:
                break

            processed += 1
            last_key = raw_issue.get("key") or last_key

            try:
                entity = mapper.map_issue(raw_issue)
                await self._persist_issue(entity)
                persisted += 1
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error(f"Error scraping issue {raw_issue.get('key')}: {e}")

        return checkpoint.advance(processed=processed, persisted=persisted, last_issue_key=last_key)

    async def _persist_issue(self, entity: IssueEntity):
        issue_id = await self.store.upsert_entity(entity)
        if entity.comments:
            await self.store.upsert_sub_entities(issue_id, entity.comments)
            logger.debug(f"Saved {len(entity.comments)} comments for issue {entity.issue_key}")
        logger.debug(f"Saved issue: {entity.issue_key}")

    async def _record_failure(self, checkpoint: ProgressCheckpoint, message: str):
        """Mark the project as errored at its last committed position."""
        try:
            await self.store.put_checkpoint(checkpoint.fail(message))
        except Exception as e:
            logger.error(f"Could not record error state for {checkpoint.project_key}: {e}")

    async def _status_or_none(self, project_key: str) -> Optional[ProgressCheckpoint]:
        try:
            return await self.store.get_checkpoint(project_key)
        except Exception as e:
            logger.warning(f"Could not read checkpoint for {project_key}: {e}")
            return None

    @staticmethod
    def _cap_reached(checkpoint: ProgressCheckpoint, max_entities: Optional[int]) -> bool:
        return max_entities is not None and checkpoint.total_issues_scraped >= max_entities

    @staticmethod
    def _check_cap(max_entities: Optional[int]):
        if max_entities is not None and max_entities < 1:
            raise ValueError(f"max_entities must be at least 1, got {max_entities}")
