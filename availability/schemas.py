"""Request and response models for coverage ingestion and lookup."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, computed_field

from core.constants import MAX_SCORE, MIN_SCORE
from geocoding.models import GeoPoint


class QueryReason(str, Enum):
    """Outcome of a coverage lookup, stable for clients to branch on."""

    OK = "ok"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    UNRESOLVABLE_LOCATION = "unresolvable_location"
    NO_COVERAGE = "no_coverage"
    TRANSIENT_ERROR = "transient_error"


REASON_MESSAGES: dict[QueryReason, str] = {
    QueryReason.INVALID_INPUT: "CEP inválido. Informe 8 dígitos (ex: 30130-100).",
    QueryReason.NOT_FOUND: "CEP não encontrado. Verifique o número e tente novamente.",
    QueryReason.UNRESOLVABLE_LOCATION: (
        "Não foi possível obter a localização deste CEP. "
        "Verifique o número ou tente outro."
    ),
    QueryReason.NO_COVERAGE: "Não há cobertura cadastrada para esta região.",
    QueryReason.TRANSIENT_ERROR: "Erro ao consultar cobertura. Tente novamente mais tarde.",
}

OUT_OF_BOUNDS_MESSAGE = "Coordenadas fora dos limites do Brasil."

CACHEABLE_REASONS = frozenset({QueryReason.OK, QueryReason.NO_COVERAGE})


class PlanSummary(BaseModel):
    id: str
    name: str
    download_mbps: int
    upload_mbps: int
    price: float
    description: str | None = None
    benefits: list[str] | None = None


class ProviderCoverage(BaseModel):
    id: str
    name: str
    slug: str
    logo_url: str | None = None
    plans: list[PlanSummary] = Field(default_factory=list)
    area_ids: list[str] = Field(default_factory=list)
    rank: int | None = None
    score: float | None = None


class CoverageQueryResult(BaseModel):
    """Answer of the public lookup; ``providers`` is empty unless reason is ok."""

    providers: list[ProviderCoverage] = Field(default_factory=list)
    reason: QueryReason
    message: str | None = None
    point: GeoPoint | None = None
    postal_code: str | None = None
    city: str | None = None
    state: str | None = None

    @classmethod
    def empty(
        cls,
        reason: QueryReason,
        *,
        message: str | None = None,
        **fields,
    ) -> CoverageQueryResult:
        return cls(
            providers=[],
            reason=reason,
            message=message or REASON_MESSAGES.get(reason),
            **fields,
        )


class AreaSummary(BaseModel):
    id: str
    provider_id: str
    name: str
    feature_count: int
    bbox: list[float] = Field(default_factory=list)
    rank: int | None = None
    score: float | None = None


class ProviderSummary(BaseModel):
    id: str
    name: str
    slug: str


class IngestionResult(BaseModel):
    """Areas created by one upload, plus everything that went wrong on the way."""

    areas: list[AreaSummary] = Field(default_factory=list)
    created_providers: list[ProviderSummary] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    needs_review: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    dropped_features: int = 0

    @computed_field
    @property
    def success(self) -> bool:
        return bool(self.areas)


class RankUpdate(BaseModel):
    rank: int | None = Field(default=None, ge=1)
    score: float | None = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)


class FeatureContainment(BaseModel):
    index: int
    name: str | None = None
    geometry_type: str | None = None
    contains: bool


class AreaContainment(BaseModel):
    area_id: str
    provider_id: str
    name: str
    bbox: list[float] = Field(default_factory=list)
    in_bbox: bool
    contains: bool
    features: list[FeatureContainment] = Field(default_factory=list)


class ContainmentReport(BaseModel):
    point: GeoPoint
    total_areas: int
    matching_areas: int
    areas: list[AreaContainment] = Field(default_factory=list)
