"""
Crawl statistics endpoint
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from crawler.repository import SyncRepository
from schemas.api import StatsResponse, CrawlRunSummary
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """
    Get catalogue counts and recent crawl run history.
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    logger.info(f"[{request_id}] GET /stats")

    repository = SyncRepository(db)
    counts = await repository.get_stats()
    runs = await repository.get_recent_crawl_runs(limit=limit)

    return StatsResponse(
        **counts,
        recent_runs=[CrawlRunSummary.model_validate(run) for run in runs]
    )
