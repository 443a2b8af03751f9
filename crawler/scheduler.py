import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from crawler.orchestrator import CrawlOptions, run_crawl

logger = logging.getLogger(__name__)


def default_options() -> CrawlOptions:
    """Current-year crawl with the configured brand allow-list and completion policy"""
    return CrawlOptions(
        brand_codes=settings.brand_allowlist or None,
        require_complete=settings.REQUIRE_COMPLETE_PERIOD,
    )


class CrawlScheduler:
    def __init__(
        self,
        session_maker: Optional[async_sessionmaker] = None,
        interval_minutes: Optional[int] = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_maker = session_maker
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES

    async def run_crawl_job(self):
        """Job to run one crawl"""
        logger.info("Scheduler: Starting crawl job")
        try:
            summary = await run_crawl(default_options(), session_maker=self.session_maker)
            logger.info(
                f"Scheduler: Crawl job finished, {len(summary.periods)} period(s), "
                f"{summary.prices_fetched} prices"
            )
        except Exception as e:
            logger.error(f"Scheduler: Crawl job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_crawl_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="crawl_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Crawl scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Crawl scheduler stopped")
