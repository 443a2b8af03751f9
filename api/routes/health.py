"""
Health check endpoint with database and last crawl status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from crawler.repository import SyncRepository
from schemas.api import HealthCheckResponse, CrawlRunSummary
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - The most recent crawl run, if any
    """
    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    last_run = None
    if db_connected:
        try:
            runs = await SyncRepository(db).get_recent_crawl_runs(limit=1)
            if runs:
                last_run = CrawlRunSummary.model_validate(runs[0])
        except Exception as e:
            logger.error(f"Failed to fetch crawl runs: {str(e)}")

    # Overall status is derived by the response model validator
    return HealthCheckResponse(database_connected=db_connected, last_run=last_run)
