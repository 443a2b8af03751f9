from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (columns store UTC without tz)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class CrawlStatus(str, enum.Enum):
    """Crawl run status"""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SegmentSource(str, enum.Enum):
    """Who assigned a model's segment"""
    AI = "ai"
    MANUAL = "manual"


SEGMENTS = (
    "Buggy",
    "Caminhão Leve",
    "Conversível",
    "Coupé",
    "Hatch",
    "Perua",
    "Pick-up",
    "Sedã",
    "SUV",
    "Van/Utilitário",
)
