"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, stats
from core.config import settings
from core.logging import setup_logging
from crawler.scheduler import CrawlScheduler
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="FIPE Sync API",
    description="Status of the FIPE vehicle price crawl",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Initialize Scheduler
scheduler = CrawlScheduler()


# Include routers
app.include_router(health.router)
app.include_router(stats.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting FIPE Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down FIPE Sync API")
    scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "FIPE Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "health": "/health",
            "stats": "/stats"
        }
    }
