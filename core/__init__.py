"""
Core utilities and configuration for the FIPE sync system.

Modules:
    config: Application configuration and environment variable management
    database: Engine, session factory and table creation
    exceptions: Exception hierarchy (upstream, classification, persistence)
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_session_maker
    from core.exceptions import TransportFailure, DomainError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_engine",
    "get_session_maker",
    "init_models",
    "setup_logging",
    # Exceptions
    "CrawlError",
    "UpstreamError",
    "TransportFailure",
    "RateLimited",
    "DomainError",
    "ValidationError",
    "PeriodLabelError",
    "ClassificationFailure",
    "PersistenceError",
]
