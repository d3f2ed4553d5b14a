"""
Abstract collaborators of the ingestor: the remote API and the store
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from ingestion.retry import RequesterStats
from schemas.harvest import (
    ExportIssue,
    IssueComment,
    IssueEntity,
    ProgressCheckpoint,
    ProjectMetadata,
    SearchPage,
)


class RemoteAPI(ABC):
    """
    Read-only view of the issue tracker.

    Implementations route every call through a RetryingRequester, so
    ``search`` and ``get_collection_metadata`` only ever raise errors that were
    already classified as permanent or retried to exhaustion.
    """

    @abstractmethod
    def collection_query(self, project_key: str) -> str:
        """Search query selecting every issue of a project in a stable order"""
        pass

    @abstractmethod
    async def search(self, query: str, offset: int, page_size: int) -> Optional[SearchPage]:
        """
        Fetch one page of issues.

        Returns:
            SearchPage with raw issue payloads and the server-reported total,
            or None when the search endpoint returned not-found
        """
        pass

    @abstractmethod
    async def get_collection_metadata(self, project_key: str) -> Optional[Dict[str, Any]]:
        """Raw project payload, or None when the project does not exist"""
        pass

    @abstractmethod
    def stats(self) -> RequesterStats:
        """Request and error counters accumulated so far"""
        pass


class Store(ABC):
    """
    Persistence for projects, issues, comments and checkpoints.

    Responsibilities:
    - Idempotent upserts keyed on project_key / issue_key / comment_id
    - One checkpoint row per project
    - Raise StoreUnavailableError when the backend is unreachable and
      EntityPersistError when a single record is rejected
    """

    @abstractmethod
    async def upsert_collection(self, project: ProjectMetadata) -> int:
        """Insert or update a project and return its id"""
        pass

    @abstractmethod
    async def upsert_entity(self, entity: IssueEntity) -> int:
        """Insert or update an issue and return its id"""
        pass

    @abstractmethod
    async def upsert_sub_entities(self, parent_id: int, comments: List[IssueComment]) -> None:
        """Insert comments of an issue, ignoring ones already stored"""
        pass

    @abstractmethod
    async def get_checkpoint(self, project_key: str) -> Optional[ProgressCheckpoint]:
        pass

    @abstractmethod
    async def put_checkpoint(self, checkpoint: ProgressCheckpoint) -> None:
        """Durably replace the checkpoint row for checkpoint.project_key"""
        pass

    @abstractmethod
    async def count_entities(self, project_key: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def list_entities_for_export(self, project_key: Optional[str] = None) -> List[ExportIssue]:
        """Stored issues with comments, oldest first"""
        pass
