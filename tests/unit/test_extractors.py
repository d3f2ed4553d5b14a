"""
Unit tests for the Jira client and the page fetcher
"""

import httpx
import pytest
from ingestion.extractors.jira_client import JiraClient, SEARCH_FIELDS
from ingestion.extractors.paginator import PaginatedFetcher
from ingestion.transport import RateLimitedTransport
from schemas.harvest import SearchPage
from core.exceptions import PermanentError


@pytest.fixture
def make_client(mock_http_client, fake_clock):
    def _make(handler, **kwargs):
        return JiraClient(
            http_client=mock_http_client(handler),
            transport=RateLimitedTransport(clock=fake_clock, sleep=fake_clock.sleep),
            sleep=fake_clock.sleep,
            **kwargs
        )
    return _make


class TestJiraClient:
    """Jira REST v2 calls over httpx.MockTransport"""

    def test_collection_query_orders_by_creation(self):
        client = JiraClient(http_client=httpx.AsyncClient())
        assert client.collection_query("KAFKA") == "project = KAFKA ORDER BY created ASC"

    @pytest.mark.asyncio
    async def test_search_sends_paging_params(self, make_client, make_raw_issues):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"startAt": 50, "maxResults": 50, "total": 120,
                                             "issues": make_raw_issues("KAFKA", 50, start=51)})

        async with make_client(handler) as jira:
            page = await jira.search("project = KAFKA ORDER BY created ASC", 50, 50)

        assert isinstance(page, SearchPage)
        assert page.total == 120
        assert page.offset == 50
        assert len(page.items) == 50
        assert page.items[0]["key"] == "KAFKA-51"

        params = seen[0].url.params
        assert seen[0].url.path.endswith("/search")
        assert params["startAt"] == "50"
        assert params["maxResults"] == "50"
        assert params["jql"] == "project = KAFKA ORDER BY created ASC"
        assert params["fields"] == ",".join(SEARCH_FIELDS)

    @pytest.mark.asyncio
    async def test_missing_project_metadata_is_none(self, make_client):
        async with make_client(lambda request: httpx.Response(404, json={"errorMessages": ["No project"]})) as jira:
            assert await jira.get_collection_metadata("NOPE") is None
            assert jira.stats().request_count == 1

    @pytest.mark.asyncio
    async def test_project_metadata(self, make_client):
        def handler(request):
            assert request.url.path.endswith("/project/KAFKA")
            return httpx.Response(200, json={"key": "KAFKA", "name": "Kafka"})

        async with make_client(handler) as jira:
            assert (await jira.get_collection_metadata("KAFKA"))["name"] == "Kafka"

    @pytest.mark.asyncio
    async def test_issue_comments(self, make_client):
        def handler(request):
            return httpx.Response(200, json={"comments": [{"id": "1", "body": "+1"}], "total": 1})

        async with make_client(handler) as jira:
            comments = await jira.get_issue_comments("KAFKA-1")

        assert comments == [{"id": "1", "body": "+1"}]

    @pytest.mark.asyncio
    async def test_bad_query_is_permanent(self, make_client):
        def handler(request):
            return httpx.Response(400, json={"errorMessages": ["Error in the JQL Query"]})

        async with make_client(handler) as jira:
            with pytest.raises(PermanentError):
                await jira.search("project = ", 0, 50)
            assert jira.stats().request_count == 1


class FakeSearch:
    def __init__(self, page):
        self.page = page
        self.calls = []

    async def search(self, query, offset, page_size):
        self.calls.append((query, offset, page_size))
        return self.page


class TestPaginatedFetcher:
    """Single-page fetches with caller-owned offsets"""

    @pytest.mark.asyncio
    async def test_returns_page(self, make_raw_issues):
        remote = FakeSearch(SearchPage(items=make_raw_issues("KAFKA", 3), total=3, offset=0))
        page = await PaginatedFetcher(remote).fetch_page("q", 0, 50)

        assert len(page.items) == 3
        assert remote.calls == [("q", 0, 50)]

    @pytest.mark.asyncio
    async def test_empty_page_is_none(self):
        remote = FakeSearch(SearchPage(items=[], total=100, offset=100))
        assert await PaginatedFetcher(remote).fetch_page("q", 100, 50) is None

    @pytest.mark.asyncio
    async def test_missing_page_is_none(self):
        assert await PaginatedFetcher(FakeSearch(None)).fetch_page("q", 0, 50) is None

    @pytest.mark.asyncio
    async def test_rejects_invalid_arguments(self):
        fetcher = PaginatedFetcher(FakeSearch(None))
        with pytest.raises(ValueError):
            await fetcher.fetch_page("q", -1, 50)
        with pytest.raises(ValueError):
            await fetcher.fetch_page("q", 0, 0)
