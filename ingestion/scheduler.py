import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.database import async_session_maker
from ingestion.extractors.jira_client import JiraClient
from ingestion.loaders.postgres_store import PostgresStore
from ingestion.runner import CheckpointedIngestor

logger = logging.getLogger(__name__)


class HarvestScheduler:
    def __init__(self, session_factory=None, client_factory=None, project_keys=None):
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory or async_session_maker
        self.client_factory = client_factory or JiraClient
        self.project_keys = project_keys or settings.DEFAULT_PROJECTS

    async def run_harvest_job(self):
        """Job to resume the harvest for every configured project"""
        logger.info(f"Scheduler: Starting harvest for {', '.join(self.project_keys)}")
        try:
            async with self.session_factory() as session, self.client_factory() as jira:
                ingestor = CheckpointedIngestor(jira, PostgresStore(session))
                results = await ingestor.ingest(
                    self.project_keys,
                    resume=True,
                    max_entities=settings.MAX_ISSUES
                )
                for result in results:
                    logger.info(
                        f"Scheduler: {result.project_key} -> {result.final_status.value} "
                        f"({result.count_ingested} issues)"
                    )
        except Exception as e:
            logger.error(f"Scheduler: harvest job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_harvest_job,
            trigger=IntervalTrigger(minutes=settings.HARVEST_INTERVAL_MINUTES),
            id="harvest_job",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.start()
        logger.info(f"Harvest scheduler started (every {settings.HARVEST_INTERVAL_MINUTES} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Harvest scheduler stopped")
