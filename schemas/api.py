"""
Pydantic schemas for status API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from models.base import CrawlStatus, utcnow


# ============================================================================
# Crawl Run Schemas
# ============================================================================

class CrawlRunSummary(BaseModel):
    """One crawl pass over a reference period"""
    run_id: str
    reference_code: int
    status: CrawlStatus
    forced: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    brands_linked: int = 0
    brands_crawled: int = 0
    brands_failed: int = 0
    models_crawled: int = 0
    models_failed: int = 0
    prices_fetched: int = 0
    prices_failed: int = 0
    pending_brands: int = 0
    pending_models: int = 0
    pending_model_years: int = 0
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    last_run: Optional[CrawlRunSummary] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Derive overall status from the database and the last crawl run"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.last_run is not None and self.last_run.status == CrawlStatus.FAILED.value:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-12-01T10:30:00Z",
                "database_connected": True,
                "last_run": {
                    "run_id": "550e8400-e29b-41d4-a716-446655440000",
                    "reference_code": 328,
                    "status": "success",
                    "started_at": "2025-12-01T10:00:00Z",
                    "prices_fetched": 412
                }
            }
        }


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Aggregate counts of the materialised dataset"""
    timestamp: datetime = Field(default_factory=utcnow)
    references: int
    brands: int
    models: int
    model_years: int
    prices: int
    recent_runs: List[CrawlRunSummary] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "timestamp": "2025-12-01T10:30:00Z",
                "references": 12,
                "brands": 89,
                "models": 5921,
                "model_years": 28144,
                "prices": 301277,
                "recent_runs": []
            }
        }
