"""
Offset-based page fetching over the issue search endpoint
"""

from typing import Optional
from ingestion.base import RemoteAPI
from schemas.harvest import SearchPage
import logging

logger = logging.getLogger(__name__)


class PaginatedFetcher:
    """
    Fetches one page per call and keeps no pagination state.

    The caller owns the offset. A short page is only a hint that the end is
    near; callers stop on ``offset >= page.total``. Jira recomputes ``total``
    for every request, so issues created during a long harvest can shift it.
    That drift is accepted: the tail may be missed or re-read, and re-reads are
    harmless because issue upserts are idempotent.
    """

    def __init__(self, remote: RemoteAPI):
        self.remote = remote

    async def fetch_page(self, query: str, offset: int, page_size: int) -> Optional[SearchPage]:
        """
        Returns:
            The page, or None when the server reports no items at this offset
        """
        if offset < 0:
            raise ValueError("offset must not be negative")
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        page = await self.remote.search(query, offset, page_size)

        if page is None or not page.items:
            logger.debug(f"No items at offset {offset} for query: {query}")
            return None

        if len(page.items) < page_size:
            logger.debug(
                f"Short page at offset {offset}: {len(page.items)} < {page_size} "
                f"(server total {page.total})"
            )

        return page
