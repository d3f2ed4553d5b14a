"""
Command line entry point for the Jira harvester.

    python -m scripts.harvest scrape [KAFKA SPARK ...] [--max-issues N] [--batch-size N] [--no-resume]
    python -m scripts.harvest export [KAFKA ...] [--output-dir PATH]
    python -m scripts.harvest status KAFKA [SPARK ...]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from core.config import settings
from core.database import async_session_maker
from core.exceptions import HarvestException
from core.logging import setup_logging
from ingestion.exporters.jsonl_exporter import JSONLExporter
from ingestion.extractors.jira_client import JiraClient
from ingestion.loaders.postgres_store import PostgresStore
from ingestion.runner import CheckpointedIngestor
from models.base import CheckpointStatus

logger = logging.getLogger(__name__)

RULE = "=" * 60


def _banner(title: str):
    print("\n" + RULE)
    print(title)
    print(RULE)


def _project_keys(values):
    return [value.upper() for value in values]


async def handle_scrape(args) -> int:
    projects = _project_keys(args.projects) or settings.DEFAULT_PROJECTS
    logger.info(f"Starting scrape for projects: {', '.join(projects)}")

    async with async_session_maker() as session, JiraClient() as jira:
        ingestor = CheckpointedIngestor(jira, PostgresStore(session), page_size=args.batch_size)
        results = await ingestor.ingest(projects, resume=not args.no_resume, max_entities=args.max_issues)
        stats = jira.stats()

    _banner("SCRAPING SUMMARY")
    for result in results:
        if result.final_status == CheckpointStatus.COMPLETED:
            print(f"✓ {result.project_key}: {result.count_ingested} issues scraped")
        else:
            print(f"✗ {result.project_key}: {result.error or 'Unknown error'}")

    print(f"\nAPI Requests: {stats.request_count}")
    print(f"API Errors: {stats.error_count}")

    return 0 if all(r.final_status == CheckpointStatus.COMPLETED for r in results) else 1


async def handle_export(args) -> int:
    projects = _project_keys(args.projects)

    async with async_session_maker() as session:
        exporter = JSONLExporter(PostgresStore(session))

        if projects:
            logger.info(f"Exporting projects: {', '.join(projects)}")
            results = await exporter.export_projects_separately(projects, args.output_dir)

            _banner("EXPORT SUMMARY")
            for result in results:
                if "error" in result:
                    print(f"✗ {result['project_key']}: {result['error']}")
                else:
                    print(
                        f"✓ {result['project_key']}: {result['total_records']} records "
                        f"from {result['total_issues']} issues"
                    )
                    print(f"  Output: {result['output_path']}")
            return 1 if any("error" in r for r in results) else 0

        logger.info("Exporting all projects")
        output_path = Path(args.output_dir) / "all_projects_training.jsonl"
        stats = await exporter.export_to_jsonl(str(output_path))

    _banner("EXPORT SUMMARY")
    print(f"✓ Total Issues: {stats['total_issues']}")
    print(f"✓ Total Records: {stats['total_records']}")
    print(f"✓ Output: {stats['output_path']}")
    return 0


async def handle_status(args) -> int:
    projects = _project_keys(args.projects)

    async with async_session_maker() as session:
        store = PostgresStore(session)

        _banner("SCRAPER STATUS")
        for project_key in projects:
            checkpoint = await store.get_checkpoint(project_key)
            issue_count = await store.count_entities(project_key)

            print(f"\nProject: {project_key}")
            if checkpoint is None:
                print("Status: Not started")
            else:
                print(f"Status: {checkpoint.status.value}")
                print(f"Issues Scraped: {checkpoint.total_issues_scraped}")
                print(f"Last Position: {checkpoint.last_offset}")
                if checkpoint.last_issue_key:
                    print(f"Last Issue: {checkpoint.last_issue_key}")
                if checkpoint.started_at:
                    print(f"Started: {checkpoint.started_at:%Y-%m-%d %H:%M:%S %Z}")
                if checkpoint.completed_at:
                    print(f"Completed: {checkpoint.completed_at:%Y-%m-%d %H:%M:%S %Z}")
                if checkpoint.error_message:
                    print(f"Error: {checkpoint.error_message}")
            print(f"Issues in Database: {issue_count}")

    print("")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.harvest",
        description="Apache Jira harvester - resumable issue scraping and JSONL export"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape issues from the given projects")
    scrape.add_argument("projects", nargs="*", help=f"Project keys (default: {' '.join(settings.DEFAULT_PROJECTS)})")
    scrape.add_argument("--max-issues", type=int, default=settings.MAX_ISSUES,
                        help="Limit number of issues to scrape per project")
    scrape.add_argument("--batch-size", type=int, default=settings.BATCH_SIZE,
                        help="Issues per API call (default: %(default)s)")
    scrape.add_argument("--no-resume", action="store_true",
                        help="Start from the beginning, ignoring saved state")
    scrape.set_defaults(handler=handle_scrape)

    export = subparsers.add_parser("export", help="Export stored issues to JSONL")
    export.add_argument("projects", nargs="*", help="Project keys (default: all projects in one file)")
    export.add_argument("--output-dir", default=settings.OUTPUT_DIR,
                        help="Output directory (default: %(default)s)")
    export.set_defaults(handler=handle_export)

    status = subparsers.add_parser("status", help="Show harvest status for projects")
    status.add_argument("projects", nargs="+", help="Project keys")
    status.set_defaults(handler=handle_status)

    return parser


def main(argv=None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    if getattr(args, "batch_size", 1) < 1:
        logger.error("--batch-size must be at least 1")
        return 2

    max_issues = getattr(args, "max_issues", None)
    if max_issues is not None and max_issues < 1:
        logger.error("--max-issues must be at least 1")
        return 2

    try:
        return asyncio.run(args.handler(args))
    except HarvestException as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
