"""
Pydantic schemas for data validation and serialization.

Schemas:
    fipe: Payloads returned by the FIPE API (validated on every call)
    api: Status API response models

Usage:
    from schemas.fipe import BrandPayload, PricePayload
    from schemas.api import StatsResponse, HealthCheckResponse
"""

__all__ = [
    "ReferenceTablePayload",
    "BrandPayload",
    "ModelPayload",
    "ModelsPayload",
    "ModelYearPayload",
    "PricePayload",
    "FipeErrorPayload",
    "CrawlRunSummary",
    "HealthCheckResponse",
    "StatsResponse",
]
