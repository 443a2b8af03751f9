"""
Checkpointed FIPE crawl engine.

Modules:
    parsing: Currency, model-year and period label parsers
    repository: Idempotent storage operations (SyncRepository)
    orchestrator: Four-phase crawl per reference period (CrawlOrchestrator)
    scheduler: Periodic crawl job (CrawlScheduler)
    cli: fipe-sync command line entry point
"""

__all__ = [
    "CrawlOptions",
    "CrawlOrchestrator",
    "SyncRepository",
]
