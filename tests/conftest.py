"""
Pytest configuration and fixtures

The harvest tests run without a database or network: the Store is an
in-memory fake, the remote is either a scripted FakeRemote or a JiraClient
over httpx.MockTransport, and time is a FakeClock whose sleep advances it.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import pytest

from ingestion.base import RemoteAPI, Store
from ingestion.retry import RequesterStats
from schemas.harvest import (
    ExportIssue,
    IssueComment,
    IssueEntity,
    ProgressCheckpoint,
    ProjectMetadata,
    SearchPage,
)
from core.exceptions import EntityPersistError, StoreUnavailableError, TransientError

JIRA_TEST_URL = "https://jira.test/rest/api/2"


class FakeClock:
    """Monotonic clock driven by its own sleep"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class InMemoryStore(Store):
    """
    Store fake with the same upsert semantics as PostgresStore.

    ``fail_issue_keys`` makes upsert_entity reject those issues;
    ``unavailable`` makes every call raise StoreUnavailableError.
    """

    def __init__(self):
        self.projects: Dict[str, ProjectMetadata] = {}
        self.issues: Dict[str, IssueEntity] = {}
        self.issue_ids: Dict[str, int] = {}
        self.comments: Dict[str, IssueComment] = {}
        self.checkpoints: Dict[str, ProgressCheckpoint] = {}
        self.checkpoint_history: List[ProgressCheckpoint] = []
        self.fail_issue_keys = set()
        self.unavailable = False
        self.unavailable_after_issues: Optional[int] = None
        self.upsert_calls = 0

    def _check_available(self):
        if self.unavailable:
            raise StoreUnavailableError("Database unavailable")

    async def upsert_collection(self, project: ProjectMetadata) -> int:
        self._check_available()
        self.projects[project.project_key] = project
        return list(self.projects).index(project.project_key) + 1

    async def upsert_entity(self, entity: IssueEntity) -> int:
        self._check_available()
        if self.unavailable_after_issues is not None and self.upsert_calls >= self.unavailable_after_issues:
            self.unavailable = True
            raise StoreUnavailableError("Database unavailable")
        self.upsert_calls += 1
        if entity.issue_key in self.fail_issue_keys:
            raise EntityPersistError("Failed to write issues", context={"issue_key": entity.issue_key})
        self.issues[entity.issue_key] = entity
        self.issue_ids.setdefault(entity.issue_key, len(self.issue_ids) + 1)
        return self.issue_ids[entity.issue_key]

    async def upsert_sub_entities(self, parent_id: int, comments: List[IssueComment]) -> None:
        self._check_available()
        for comment in comments:
            self.comments.setdefault(comment.comment_id, comment)

    async def get_checkpoint(self, project_key: str) -> Optional[ProgressCheckpoint]:
        self._check_available()
        return self.checkpoints.get(project_key)

    async def put_checkpoint(self, checkpoint: ProgressCheckpoint) -> None:
        self._check_available()
        self.checkpoints[checkpoint.project_key] = checkpoint
        self.checkpoint_history.append(checkpoint)

    async def count_entities(self, project_key: Optional[str] = None) -> int:
        self._check_available()
        return len([i for i in self.issues.values() if project_key in (None, i.project_key)])

    async def list_entities_for_export(self, project_key: Optional[str] = None) -> List[ExportIssue]:
        self._check_available()
        issues = [i for i in self.issues.values() if project_key in (None, i.project_key)]
        return [
            ExportIssue(
                issue=issue,
                project_name=self.projects[issue.project_key].project_name
                if issue.project_key in self.projects else "Unknown"
            )
            for issue in issues
        ]


class FakeRemote(RemoteAPI):
    """
    Scripted remote holding a fixed list of raw issues per project.

    ``fail_at_offsets`` maps an offset to the exception raised when that
    offset is requested (once).
    """

    def __init__(self, issues_by_project: Dict[str, List[Dict[str, Any]]]):
        self.issues_by_project = issues_by_project
        self.search_calls: List[tuple] = []
        self.metadata_calls: List[str] = []
        self.fail_at_offsets: Dict[int, Exception] = {}
        self.stats_calls = 0

    def collection_query(self, project_key: str) -> str:
        return f"project = {project_key} ORDER BY created ASC"

    async def search(self, query: str, offset: int, page_size: int) -> Optional[SearchPage]:
        self.search_calls.append((query, offset, page_size))
        if offset in self.fail_at_offsets:
            raise self.fail_at_offsets.pop(offset)
        project_key = query.split()[2]
        issues = self.issues_by_project.get(project_key, [])
        return SearchPage(items=issues[offset:offset + page_size], total=len(issues), offset=offset)

    async def get_collection_metadata(self, project_key: str) -> Optional[Dict[str, Any]]:
        self.metadata_calls.append(project_key)
        if project_key not in self.issues_by_project:
            return None
        return {"key": project_key, "name": f"{project_key.title()} Project", "self": f"{JIRA_TEST_URL}/project/{project_key}"}

    def stats(self) -> RequesterStats:
        self.stats_calls += 1
        return RequesterStats(request_count=0, error_count=0, retry_count=0, queue_size=0, in_flight=0)


def raw_issue(
    key: str,
    issue_id: Optional[str] = None,
    summary: Optional[str] = None,
    description: Any = "Steps to reproduce are in the attached log.",
    comments: Optional[List[Dict[str, Any]]] = None,
    **fields
) -> Dict[str, Any]:
    """A /search issue payload shaped like Apache Jira's"""
    number = key.rsplit("-", 1)[-1]
    payload_fields = {
        "summary": summary or f"Issue {key}",
        "description": description,
        "issuetype": {"name": "Bug"},
        "status": {"name": "Open"},
        "priority": {"name": "Major"},
        "resolution": None,
        "reporter": {"displayName": "Jane Reporter", "name": "jreporter"},
        "assignee": None,
        "labels": ["needs-triage"],
        "components": [{"name": "core"}],
        "versions": [{"name": "3.6.0"}],
        "fixVersions": [],
        "created": "2024-01-15T10:00:00.000+0000",
        "updated": "2024-01-16T08:30:00.000+0000",
        "resolutiondate": None,
        "comment": {"comments": comments or [], "total": len(comments or [])},
        "votes": {"votes": 1},
        "watches": {"watchCount": 3},
        "subtasks": [],
    }
    payload_fields.update(fields)
    return {"id": issue_id or f"1{number}", "key": key, "fields": payload_fields}


def raw_issues(project_key: str, count: int, start: int = 1) -> List[Dict[str, Any]]:
    return [raw_issue(f"{project_key}-{n}") for n in range(start, start + count)]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def make_raw_issue():
    return raw_issue


@pytest.fixture
def make_raw_issues():
    return raw_issues


@pytest.fixture
def fake_remote():
    """Factory: fake_remote({"KAFKA": [...]})"""
    return FakeRemote


@pytest.fixture
def transient_error():
    return TransientError("Server error (503)", context={"status_code": 503})


@pytest.fixture
def mock_http_client():
    """Factory for an httpx.AsyncClient answering from ``handler``"""
    def _make(handler):
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url=JIRA_TEST_URL
        )

    return _make
