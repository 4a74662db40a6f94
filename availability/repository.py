"""
Coverage Store: persistence of coverage areas.

Each method is a single-document operation; there is no cross-area
transaction. Database failures surface as :class:`StorageError`.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import DocumentTooLarge, PyMongoError

from catalog.repository import to_object_id
from core.exceptions import ResourceNotFoundError, StorageError
from db.models import CoverageArea
from kml.normalizer import bounding_box

logger = logging.getLogger(__name__)

# MongoDB caps a document at 16 MB; larger source files are not retained.
MAX_SOURCE_DOCUMENT_CHARS = 8 * 1024 * 1024


def _source_to_store(source_document: str | None) -> str | None:
    if source_document is None:
        return None
    if len(source_document) > MAX_SOURCE_DOCUMENT_CHARS:
        logger.warning(
            "Source document of %d chars exceeds %d; not retained",
            len(source_document),
            MAX_SOURCE_DOCUMENT_CHARS,
        )
        return None
    return source_document


class CoverageStore:
    """Repository for coverage-area database operations."""

    async def list_all(self) -> list[CoverageArea]:
        try:
            return await CoverageArea.find_all().to_list()
        except PyMongoError as exc:
            msg = "Falha ao carregar áreas de cobertura"
            raise StorageError(msg) from exc

    async def list_by_provider(
        self,
        provider_id: str | PydanticObjectId | None = None,
    ) -> list[CoverageArea]:
        """Areas newest first, optionally restricted to one provider."""
        if provider_id is None:
            query = CoverageArea.find_all()
        else:
            oid = to_object_id(provider_id)
            if oid is None:
                return []
            query = CoverageArea.find(CoverageArea.provider_id == oid)
        try:
            return await query.sort(-CoverageArea.created_at).to_list()
        except PyMongoError as exc:
            msg = "Falha ao listar áreas de cobertura"
            raise StorageError(msg) from exc

    async def get(self, area_id: str | PydanticObjectId) -> CoverageArea:
        oid = to_object_id(area_id)
        area = None
        if oid is not None:
            try:
                area = await CoverageArea.get(oid)
            except PyMongoError as exc:
                msg = "Falha ao buscar área de cobertura"
                raise StorageError(msg, {"area_id": str(area_id)}) from exc
        if area is None:
            msg = "Área de cobertura não encontrada"
            raise ResourceNotFoundError(msg, {"area_id": str(area_id)})
        return area

    async def create(
        self,
        *,
        provider_id: PydanticObjectId,
        name: str,
        geometry: dict[str, Any],
        source_document: str | None = None,
        rank: int | None = None,
        score: float | None = None,
    ) -> CoverageArea:
        now = datetime.now(UTC)
        area = CoverageArea(
            provider_id=provider_id,
            name=name,
            geometry=geometry,
            bbox=bounding_box(geometry) or [],
            feature_count=len(geometry.get("features") or []),
            source_document=_source_to_store(source_document),
            rank=rank,
            score=score,
            created_at=now,
            updated_at=now,
        )
        try:
            await area.insert()
        except (DocumentTooLarge, PyMongoError) as exc:
            msg = f"Falha ao salvar área de cobertura '{name}'"
            raise StorageError(msg, {"provider_id": str(provider_id)}) from exc
        logger.info(
            "Stored coverage area %s for provider %s (%d feature(s))",
            area.id,
            provider_id,
            area.feature_count,
        )
        return area

    async def update_rank(
        self,
        area_id: str | PydanticObjectId,
        *,
        rank: int | None,
        score: float | None,
    ) -> CoverageArea:
        area = await self.get(area_id)
        area.rank = rank
        area.score = score
        area.updated_at = datetime.now(UTC)
        try:
            await area.save()
        except PyMongoError as exc:
            msg = "Falha ao atualizar ranking da área"
            raise StorageError(msg, {"area_id": str(area_id)}) from exc
        return area

    async def replace_geometry(
        self,
        area_id: str | PydanticObjectId,
        *,
        geometry: dict[str, Any],
        source_document: str | None = None,
    ) -> CoverageArea:
        area = await self.get(area_id)
        area.geometry = geometry
        area.bbox = bounding_box(geometry) or []
        area.feature_count = len(geometry.get("features") or [])
        area.source_document = _source_to_store(source_document)
        area.updated_at = datetime.now(UTC)
        try:
            await area.save()
        except (DocumentTooLarge, PyMongoError) as exc:
            msg = "Falha ao substituir geometria da área"
            raise StorageError(msg, {"area_id": str(area_id)}) from exc
        logger.info("Replaced geometry of coverage area %s", area.id)
        return area

    async def delete(self, area_id: str | PydanticObjectId) -> None:
        area = await self.get(area_id)
        try:
            await area.delete()
        except PyMongoError as exc:
            msg = "Falha ao excluir área de cobertura"
            raise StorageError(msg, {"area_id": str(area_id)}) from exc
        logger.info("Deleted coverage area %s", area_id)
