"""
Harvest pipeline for Jira issue trackers.

Modules:
    base: RemoteAPI and Store interfaces
    transport: Rolling-window rate limiter with one request in flight
    retry: Failure classification and retry with backoff
    runner: Checkpointed, resumable ingestor
    scheduler: APScheduler job that resumes the harvest periodically

Subpackages:
    extractors: Jira REST client and page fetcher
    transformers: Issue mapping and rich-text extraction
    loaders: PostgreSQL store with idempotent upserts
    exporters: JSONL export of stored issues

Pipeline per page:

    1. Fetch - one search page at the checkpoint offset, rate limited and retried
    2. Map - raw issue payloads to validated entities
    3. Persist - upsert issues and their comments
    4. Checkpoint - advance offset and count only after the page is stored

Usage:
    async with async_session_maker() as session, JiraClient() as jira:
        ingestor = CheckpointedIngestor(jira, PostgresStore(session))
        results = await ingestor.ingest(["KAFKA", "SPARK"])
"""

__all__ = [
    "RemoteAPI",
    "Store",
    "RateLimitedTransport",
    "RetryingRequester",
    "JiraClient",
    "PaginatedFetcher",
    "IssueMapper",
    "PostgresStore",
    "CheckpointedIngestor",
    "HarvestScheduler",
    "JSONLExporter",
]
