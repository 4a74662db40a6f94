"""Coverage HTTP endpoints: public lookup and admin area management."""

import logging
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)

from availability.dependencies import (
    CoverageServices,
    get_coverage_services,
    get_ingestion,
    get_query_service,
)
from availability.ingestion import IngestionOrchestrator, area_summary
from availability.query_service import CoverageQueryService
from availability.schemas import (
    AreaContainment,
    AreaSummary,
    ContainmentReport,
    CoverageQueryResult,
    FeatureContainment,
    IngestionResult,
    RankUpdate,
)
from config import MAX_UPLOAD_BYTES
from core.api import api_route
from geocoding.models import GeoPoint

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/coverage", tags=["coverage"])

Services = Annotated[CoverageServices, Depends(get_coverage_services)]


async def _read_upload(file: UploadFile) -> bytes:
    # One byte past the limit is enough to reject the file.
    return await file.read(MAX_UPLOAD_BYTES + 1)


@router.get("", response_model=CoverageQueryResult)
@api_route(logger)
async def lookup_coverage(
    query_service: Annotated[CoverageQueryService, Depends(get_query_service)],
    cep: Annotated[str | None, Query(description="CEP, with or without dash")] = None,
    lat: Annotated[float | None, Query(description="Latitude")] = None,
    lng: Annotated[float | None, Query(description="Longitude")] = None,
) -> CoverageQueryResult:
    """Providers and plans available at a CEP or a coordinate pair."""
    has_point = lat is not None or lng is not None
    if cep is not None and has_point:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Informe CEP ou coordenadas (lat, lng), não ambos",
        )
    if cep is not None:
        return await query_service.by_postal_code(cep)
    if lat is not None and lng is not None:
        return await query_service.by_coordinates(lat, lng)
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="CEP ou coordenadas (lat, lng) são obrigatórios",
    )


@router.post(
    "",
    response_model=IngestionResult,
    status_code=status.HTTP_201_CREATED,
)
@api_route(logger)
async def upload_coverage(
    ingestion: Annotated[IngestionOrchestrator, Depends(get_ingestion)],
    file: Annotated[UploadFile, File(description="KML or KMZ coverage map")],
    provider_id: Annotated[str | None, Form()] = None,
    area_name: Annotated[str | None, Form()] = None,
) -> IngestionResult:
    """Store an uploaded coverage map as one area per provider."""
    data = await _read_upload(file)
    return await ingestion.ingest(
        data,
        filename=file.filename,
        content_type=file.content_type,
        provider_id=(provider_id or "").strip() or None,
        area_name=area_name,
    )


@router.get("/areas", response_model=list[AreaSummary])
@api_route(logger)
async def list_areas(
    services: Services,
    provider_id: Annotated[str | None, Query(description="Filter by provider")] = None,
) -> list[AreaSummary]:
    areas = await services.store.list_by_provider(provider_id)
    return [area_summary(area) for area in areas]


@router.get("/areas/{area_id}")
@api_route(logger)
async def get_area(area_id: str, services: Services) -> dict[str, Any]:
    """One area including its stored geometry."""
    area = await services.store.get(area_id)
    return area.model_dump(mode="json", exclude={"source_document"})


@router.put("/areas/{area_id}/rank", response_model=AreaSummary)
@api_route(logger)
async def update_area_rank(
    area_id: str,
    update: RankUpdate,
    services: Services,
) -> AreaSummary:
    area = await services.store.update_rank(
        area_id, rank=update.rank, score=update.score
    )
    await services.query_cache.invalidate()
    return area_summary(area)


@router.put("/areas/{area_id}/geometry", response_model=AreaSummary)
@api_route(logger)
async def replace_area_geometry(
    area_id: str,
    services: Services,
    file: Annotated[UploadFile, File(description="KML or KMZ coverage map")],
) -> AreaSummary:
    data = await _read_upload(file)
    return await services.ingestion.replace_geometry(
        area_id,
        data,
        filename=file.filename,
        content_type=file.content_type,
    )


@router.delete("/areas/{area_id}")
@api_route(logger)
async def delete_area(area_id: str, services: Services) -> dict[str, str]:
    await services.store.delete(area_id)
    await services.query_cache.invalidate()
    return {"status": "success", "message": "Área de cobertura excluída"}


@router.get("/debug", response_model=ContainmentReport)
@api_route(logger)
async def debug_containment(
    services: Services,
    lat: Annotated[float, Query(description="Latitude")],
    lng: Annotated[float, Query(description="Longitude")],
) -> ContainmentReport:
    """Which areas and features cover a point, for checking uploaded maps."""
    point = GeoPoint.checked(lat, lng)
    diagnostics = await services.resolver.diagnose(point)
    return ContainmentReport(
        point=point,
        total_areas=len(diagnostics),
        matching_areas=sum(1 for item in diagnostics if item.contains),
        areas=[
            AreaContainment(
                area_id=item.area_id,
                provider_id=item.provider_id,
                name=item.name,
                bbox=item.bbox,
                in_bbox=item.in_bbox,
                contains=item.contains,
                features=[
                    FeatureContainment(
                        index=feature.index,
                        name=feature.name,
                        geometry_type=feature.geometry_type,
                        contains=feature.contains,
                    )
                    for feature in item.features
                ],
            )
            for item in diagnostics
        ],
    )
