"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, status
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
from ingestion.scheduler import HarvestScheduler
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Jira Harvester API",
    description="Harvest status for the resumable Jira issue scraper",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize Scheduler
scheduler = HarvestScheduler()


# Include routers
app.include_router(health.router)
app.include_router(status.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Jira Harvester API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info(f"Projects: {', '.join(settings.DEFAULT_PROJECTS)}")

    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Jira Harvester API")
    scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Jira Harvester API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "status": "/status/{project_key}"
        }
    }
