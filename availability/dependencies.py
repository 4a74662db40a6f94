"""
Construction and request-time lookup of the coverage components.

``build_coverage_services`` wires the object graph once at startup; routes
receive the pieces they need through ``Depends`` getters reading
``app.state``. Tests build their own graph with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from availability.ingestion import IngestionOrchestrator
from availability.query_cache import QueryCache
from availability.query_service import CoverageQueryService
from availability.repository import CoverageStore
from availability.resolver import PointInRegionResolver
from catalog.repository import PlanRepository, ProviderRepository
from core.cache import JsonCache
from core.http import NominatimClient, ViaCepClient
from geocoding.service import Geocoder


@dataclass
class CoverageServices:
    store: CoverageStore
    resolver: PointInRegionResolver
    query_cache: QueryCache
    query_service: CoverageQueryService
    ingestion: IngestionOrchestrator


def build_coverage_services(
    cache: JsonCache | None = None,
    *,
    geocoder: Geocoder | None = None,
    providers: ProviderRepository | None = None,
    plans: PlanRepository | None = None,
    store: CoverageStore | None = None,
) -> CoverageServices:
    providers = providers or ProviderRepository()
    plans = plans or PlanRepository()
    store = store or CoverageStore()
    geocoder = geocoder or Geocoder(ViaCepClient(), NominatimClient(), cache)
    query_cache = QueryCache(cache)
    resolver = PointInRegionResolver(store)
    return CoverageServices(
        store=store,
        resolver=resolver,
        query_cache=query_cache,
        query_service=CoverageQueryService(
            geocoder, resolver, providers, plans, query_cache
        ),
        ingestion=IngestionOrchestrator(store, providers, query_cache),
    )


def get_coverage_services(request: Request) -> CoverageServices:
    return request.app.state.coverage


def get_query_service(request: Request) -> CoverageQueryService:
    return get_coverage_services(request).query_service


def get_ingestion(request: Request) -> IngestionOrchestrator:
    return get_coverage_services(request).ingestion
