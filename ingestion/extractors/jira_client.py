"""
Jira REST v2 client with rate limiting and classified retries.

All requests share one RateLimitedTransport (default 10 requests per second,
one in flight) and go through a RetryingRequester, which handles 429, 5xx,
timeouts and 404 as described in ingestion.retry.
"""

import httpx
from typing import List, Dict, Any, Optional
from ingestion.base import RemoteAPI
from ingestion.retry import RetryingRequester, RequesterStats
from ingestion.transport import RateLimitedTransport
from schemas.harvest import SearchPage
from core.config import settings
import logging

logger = logging.getLogger(__name__)

SEARCH_FIELDS = [
    "summary",
    "description",
    "issuetype",
    "status",
    "priority",
    "resolution",
    "reporter",
    "assignee",
    "labels",
    "components",
    "versions",
    "fixVersions",
    "created",
    "updated",
    "resolutiondate",
    "comment",
    "votes",
    "watches",
    "subtasks",
]


class JiraClient(RemoteAPI):
    """
    Read-only client for a public Jira instance.

    Usage:
        async with JiraClient() as jira:
            page = await jira.search(jira.collection_query("KAFKA"), 0, 50)

    An existing httpx.AsyncClient may be passed in (tests use one backed by
    httpx.MockTransport); the client is then not closed by this class.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[RateLimitedTransport] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_retry_delay: Optional[float] = None,
        rate_limit: Optional[int] = None,
        timeout: Optional[float] = None,
        sleep=None
    ):
        self.base_url = base_url or settings.JIRA_BASE_URL
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.REQUEST_TIMEOUT,
            follow_redirects=True,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json"
            }
        )
        self.transport = transport or RateLimitedTransport(
            max_requests=rate_limit or settings.RATE_LIMIT_PER_WINDOW,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
        )

        requester_kwargs = {}
        if sleep is not None:
            requester_kwargs["sleep"] = sleep
        self.requester = RetryingRequester(
            client=self.http_client,
            transport=self.transport,
            max_retries=settings.MAX_RETRIES if max_retries is None else max_retries,
            base_delay=settings.RETRY_BASE_DELAY if retry_delay is None else retry_delay,
            max_delay=settings.RETRY_MAX_DELAY if max_retry_delay is None else max_retry_delay,
            default_rate_limit_wait=settings.RATE_LIMIT_DEFAULT_WAIT,
            **requester_kwargs
        )

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self.http_client.aclose()

    def stats(self) -> RequesterStats:
        return self.requester.stats()

    def collection_query(self, project_key: str) -> str:
        return f"project = {project_key} ORDER BY created ASC"

    async def get_projects(self) -> List[Dict[str, Any]]:
        logger.info("Fetching all projects")
        data = await self.requester.request("/project")
        projects = data or []
        logger.info(f"Found {len(projects)} projects")
        return projects

    async def get_collection_metadata(self, project_key: str) -> Optional[Dict[str, Any]]:
        logger.info(f"Fetching project: {project_key}")
        return await self.requester.request(f"/project/{project_key}")

    async def search(self, query: str, offset: int, page_size: int) -> Optional[SearchPage]:
        logger.debug(f"Searching issues: {query} (startAt={offset}, maxResults={page_size})")

        params = {
            "jql": query,
            "startAt": offset,
            "maxResults": page_size,
            "fields": ",".join(SEARCH_FIELDS)
        }

        data = await self.requester.request("/search", params)
        if data is None:
            return None

        issues = data.get("issues") or []
        total = int(data.get("total") or 0)
        logger.debug(f"Found {len(issues)} issues ({offset} to {offset + len(issues)} of {total})")

        return SearchPage(items=issues, total=total, offset=offset)

    async def get_issue(self, issue_key: str) -> Optional[Dict[str, Any]]:
        logger.debug(f"Fetching issue: {issue_key}")
        return await self.requester.request(f"/issue/{issue_key}")

    async def get_issue_comments(self, issue_key: str) -> List[Dict[str, Any]]:
        logger.debug(f"Fetching comments for issue: {issue_key}")
        data = await self.requester.request(f"/issue/{issue_key}/comment")
        return (data or {}).get("comments") or []
