"""
Core utilities and configuration for the Jira harvester.

Modules:
    config: Application settings from environment variables and .env
    database: Async SQLAlchemy engine and session factory
    exceptions: Exception hierarchy for fetch, store and checkpoint failures
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import FetchError, StoreUnavailableError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "get_session",
    "setup_logging",
    # Exceptions
    "HarvestException",
    "FetchError",
    "RateLimitError",
    "TransientError",
    "PermanentError",
    "RetriesExhaustedError",
    "CollectionNotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "EntityPersistError",
    "CheckpointError",
    "TransformationError",
    "ExportError",
]
