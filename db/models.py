"""Beanie ODM document models for MongoDB collections.

This module defines the document models using Beanie ODM, which provides:
- Automatic Pydantic validation
- Built-in async CRUD operations
- Proper ObjectId/datetime serialization
- Index definitions at the model level

Usage:
    from db.models import CoverageArea, Provider

    # Find every area of a provider
    areas = await CoverageArea.find(CoverageArea.provider_id == provider.id).to_list()

    # Insert a new document
    provider = Provider(name="Acme", slug="acme")
    await provider.insert()
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from core.constants import MAX_SCORE, MIN_SCORE


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Provider(Document):
    """Internet service provider (operadora)."""

    name: str
    slug: Indexed(str, unique=True)
    logo_url: str | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "providers"


class Plan(Document):
    """A broadband plan offered by a provider."""

    provider_id: PydanticObjectId
    name: str
    download_mbps: int
    upload_mbps: int
    price: float
    description: str | None = None
    benefits: list[str] | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "plans"
        indexes = [
            IndexModel(
                [("provider_id", ASCENDING), ("active", ASCENDING)],
                name="plans_provider_active_idx",
            ),
        ]


class CoverageArea(Document):
    """
    One named coverage region of a provider.

    ``geometry`` is a FeatureCollection of Polygon/MultiPolygon features in
    ``[lng, lat]`` order; ``bbox`` is ``[min_lng, min_lat, max_lng, max_lat]``
    and is only a pre-filter for containment queries.
    """

    provider_id: PydanticObjectId
    name: str
    geometry: dict[str, Any]
    bbox: list[float] = Field(default_factory=list)
    feature_count: int = 0
    source_document: str | None = None
    rank: int | None = Field(default=None, ge=1)
    score: float | None = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "coverage_areas"
        indexes = [
            IndexModel(
                [("provider_id", ASCENDING), ("created_at", DESCENDING)],
                name="coverage_areas_provider_created_idx",
            ),
            IndexModel(
                [("created_at", DESCENDING)],
                name="coverage_areas_created_idx",
            ),
        ]


ALL_DOCUMENT_MODELS = [
    Provider,
    Plan,
    CoverageArea,
]
