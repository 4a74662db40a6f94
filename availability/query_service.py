"""
Coverage Query Service.

Single entry point of the public search: postal code or coordinates in,
:class:`CoverageQueryResult` out. Expected outcomes (bad input, unknown
CEP, no coverage, upstream trouble) are reported through
:class:`QueryReason` and never raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from availability.query_cache import coordinate_suffix, postal_code_suffix
from availability.schemas import (
    CACHEABLE_REASONS,
    OUT_OF_BOUNDS_MESSAGE,
    CoverageQueryResult,
    PlanSummary,
    ProviderCoverage,
    QueryReason,
)
from core.constants import UNRANKED_SENTINEL
from core.exceptions import (
    ExternalServiceError,
    InvalidPostalCodeError,
    OutOfBoundsError,
    PostalCodeNotFoundError,
)
from geocoding.models import GeoPoint, normalize_postal_code

if TYPE_CHECKING:
    from availability.query_cache import QueryCache
    from availability.resolver import PointInRegionResolver
    from catalog.repository import PlanRepository, ProviderRepository
    from db.models import CoverageArea
    from geocoding.service import Geocoder

logger = logging.getLogger(__name__)


def _provider_sort_key(provider: ProviderCoverage) -> tuple:
    rank = provider.rank if provider.rank is not None else UNRANKED_SENTINEL
    score = provider.score if provider.score is not None else float("-inf")
    return (rank, -score, provider.name.lower())


class CoverageQueryService:
    """Geocoder -> resolver -> provider/plan enrichment, with result caching."""

    def __init__(
        self,
        geocoder: Geocoder,
        resolver: PointInRegionResolver,
        providers: ProviderRepository,
        plans: PlanRepository,
        query_cache: QueryCache,
    ) -> None:
        self._geocoder = geocoder
        self._resolver = resolver
        self._providers = providers
        self._plans = plans
        self._query_cache = query_cache

    async def _cached(self, suffix: str) -> CoverageQueryResult | None:
        hit = await self._query_cache.get(suffix)
        if not hit:
            return None
        try:
            return CoverageQueryResult.model_validate(hit)
        except PydanticValidationError:
            logger.debug("Discarding malformed coverage cache entry %s", suffix)
            return None

    async def _store(self, suffix: str, result: CoverageQueryResult) -> None:
        if result.reason in CACHEABLE_REASONS:
            await self._query_cache.set(suffix, result.model_dump(mode="json"))

    async def by_postal_code(self, postal_code: str | None) -> CoverageQueryResult:
        try:
            cep = normalize_postal_code(postal_code)
        except InvalidPostalCodeError:
            logger.warning("Invalid CEP received: %r", postal_code)
            return CoverageQueryResult.empty(
                QueryReason.INVALID_INPUT, postal_code=postal_code
            )

        suffix = postal_code_suffix(cep)
        cached = await self._cached(suffix)
        if cached is not None:
            logger.debug("Coverage cache hit for CEP %s", cep)
            return cached

        try:
            geocoded = await self._geocoder.geocode(cep)
        except PostalCodeNotFoundError:
            return CoverageQueryResult.empty(QueryReason.NOT_FOUND, postal_code=cep)
        except ExternalServiceError as exc:
            logger.warning("Geocoding failed for CEP %s: %s", cep, exc.message)
            return CoverageQueryResult.empty(
                QueryReason.TRANSIENT_ERROR, postal_code=cep
            )
        except Exception:
            logger.exception("Unexpected geocoding failure for CEP %s", cep)
            return CoverageQueryResult.empty(
                QueryReason.TRANSIENT_ERROR, postal_code=cep
            )

        if geocoded.point is None:
            return CoverageQueryResult.empty(
                QueryReason.UNRESOLVABLE_LOCATION,
                postal_code=cep,
                city=geocoded.city,
                state=geocoded.state,
            )

        result = await self._lookup(geocoded.point)
        result = result.model_copy(
            update={
                "postal_code": cep,
                "city": geocoded.city,
                "state": geocoded.state,
            }
        )
        await self._store(suffix, result)
        return result

    async def by_coordinates(self, lat: float, lng: float) -> CoverageQueryResult:
        try:
            point = GeoPoint.checked(lat, lng)
        except OutOfBoundsError as exc:
            logger.warning("Rejected coordinates %s, %s: %s", lat, lng, exc.message)
            return CoverageQueryResult.empty(
                QueryReason.INVALID_INPUT, message=OUT_OF_BOUNDS_MESSAGE
            )

        suffix = coordinate_suffix(point.lat, point.lng)
        cached = await self._cached(suffix)
        if cached is not None:
            # The key is rounded; echo the caller's own point.
            return cached.model_copy(update={"point": point})

        result = await self._lookup(point)
        await self._store(suffix, result)
        return result

    async def _lookup(self, point: GeoPoint) -> CoverageQueryResult:
        try:
            areas = await self._resolver.resolve(point)
            providers = await self._enrich(areas)
        except Exception:
            logger.exception("Coverage lookup failed at %s, %s", point.lat, point.lng)
            return CoverageQueryResult.empty(QueryReason.TRANSIENT_ERROR, point=point)

        if not providers:
            return CoverageQueryResult.empty(QueryReason.NO_COVERAGE, point=point)
        return CoverageQueryResult(
            providers=providers, reason=QueryReason.OK, point=point
        )

    async def _enrich(self, areas: list[CoverageArea]) -> list[ProviderCoverage]:
        by_provider: dict[str, list[CoverageArea]] = {}
        for area in areas:
            by_provider.setdefault(str(area.provider_id), []).append(area)

        enriched: list[ProviderCoverage] = []
        for provider_id, provider_areas in by_provider.items():
            try:
                provider = await self._providers.get_by_id(provider_id)
                if provider is None or not provider.active:
                    logger.warning("Provider %s missing or inactive; skipped", provider_id)
                    continue
                plans = await self._plans.get_active_by_provider_id(provider_id)
            except Exception:
                logger.exception("Failed to load provider %s; skipped", provider_id)
                continue

            ranks = [area.rank for area in provider_areas if area.rank is not None]
            scores = [area.score for area in provider_areas if area.score is not None]
            enriched.append(
                ProviderCoverage(
                    id=provider_id,
                    name=provider.name,
                    slug=provider.slug,
                    logo_url=provider.logo_url,
                    plans=[
                        PlanSummary(
                            id=str(plan.id),
                            name=plan.name,
                            download_mbps=plan.download_mbps,
                            upload_mbps=plan.upload_mbps,
                            price=plan.price,
                            description=plan.description,
                            benefits=plan.benefits,
                        )
                        for plan in plans
                    ],
                    area_ids=[str(area.id) for area in provider_areas],
                    rank=min(ranks) if ranks else None,
                    score=max(scores) if scores else None,
                )
            )
        enriched.sort(key=_provider_sort_key)
        return enriched
