"""
Ingestion Orchestrator.

Upload bytes -> parsed and normalized FeatureCollection -> one coverage
area per provider. When the uploader does not name a provider, features
are grouped by the provider detected from their labels and file name.
Each provider group is stored independently: one failing group does not
undo the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from availability.provider_labels import (
    candidate_provider_name,
    infer_from_filename,
    match_provider,
    normalize_text,
    slugify,
)
from availability.schemas import AreaSummary, IngestionResult, ProviderSummary
from config import MAX_UPLOAD_BYTES
from core.exceptions import (
    CoverageServiceError,
    InvalidUploadError,
    ResourceNotFoundError,
    StorageError,
    UnresolvedProviderError,
    ValidationError,
)
from kml.normalizer import normalize_feature_collection
from kml.parser import KmlParser

if TYPE_CHECKING:
    from availability.query_cache import QueryCache
    from availability.repository import CoverageStore
    from catalog.repository import ProviderRepository
    from db.models import CoverageArea, Provider

logger = logging.getLogger(__name__)

KML_CONTENT_TYPES = frozenset(
    {
        "application/vnd.google-earth.kml+xml",
        "application/xml",
        "text/xml",
    }
)
KMZ_CONTENT_TYPES = frozenset({"application/vnd.google-earth.kmz", "application/zip"})
VALID_EXTENSIONS = (".kml", ".kmz")


def validate_upload(
    filename: str | None,
    content_type: str | None,
    size: int,
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> None:
    """
    Reject uploads that are too large or not KML/KMZ.

    Raises:
        InvalidUploadError: listing every problem found.
    """
    errors: list[str] = []
    if size > max_bytes:
        errors.append(
            f"Arquivo muito grande. Máximo permitido: {max_bytes // (1024 * 1024)}MB"
        )
    name = (filename or "").lower()
    mime = (content_type or "").split(";")[0].strip().lower()
    if not (
        name.endswith(VALID_EXTENSIONS)
        or mime in KML_CONTENT_TYPES
        or mime in KMZ_CONTENT_TYPES
    ):
        errors.append("Arquivo deve ser KML (.kml) ou KMZ (.kmz)")
    if errors:
        raise InvalidUploadError(errors, {"filename": filename, "size": size})


def area_summary(area: CoverageArea) -> AreaSummary:
    return AreaSummary(
        id=str(area.id),
        provider_id=str(area.provider_id),
        name=area.name,
        feature_count=area.feature_count,
        bbox=list(area.bbox or []),
        rank=area.rank,
        score=area.score,
    )


@dataclass
class FeatureGroup:
    """Features attributed to one candidate provider name."""

    candidate: str | None
    features: list[dict[str, Any]] = field(default_factory=list)


def group_features(
    features: list[dict[str, Any]],
    filename: str | None,
) -> list[FeatureGroup]:
    """Group features by normalized candidate provider name, in input order."""
    groups: dict[str, FeatureGroup] = {}
    for feature in features:
        label = (feature.get("properties") or {}).get("name")
        candidate = candidate_provider_name(label, filename)
        key = normalize_text(candidate) if candidate else ""
        group = groups.setdefault(key, FeatureGroup(candidate=candidate or None))
        group.features.append(feature)
    return list(groups.values())


@dataclass
class _ProviderBucket:
    provider: Provider
    features: list[dict[str, Any]] = field(default_factory=list)


class IngestionOrchestrator:
    """Turn an uploaded coverage map into stored coverage areas."""

    def __init__(
        self,
        store: CoverageStore,
        providers: ProviderRepository,
        query_cache: QueryCache,
        *,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self._store = store
        self._providers = providers
        self._query_cache = query_cache
        self._max_upload_bytes = max_upload_bytes

    def _prepare(
        self,
        data: bytes,
        filename: str | None,
        content_type: str | None,
    ):
        validate_upload(
            filename, content_type, len(data), max_bytes=self._max_upload_bytes
        )
        parsed = KmlParser.parse(data)
        normalized = normalize_feature_collection(parsed.feature_collection)
        warnings = [*parsed.warnings, *normalized.report.describe()]
        return parsed, normalized, warnings

    async def ingest(
        self,
        data: bytes,
        *,
        filename: str | None,
        content_type: str | None = None,
        provider_id: str | None = None,
        area_name: str | None = None,
    ) -> IngestionResult:
        """
        Parse, normalize and store an upload.

        Raises:
            CoverageFileError: the file is unusable (see :mod:`kml.parser`).
            ResourceNotFoundError: ``provider_id`` does not exist.
            UnresolvedProviderError: no group could be assigned a provider.
            StorageError: every group failed to persist.
        """
        parsed, normalized, warnings = self._prepare(data, filename, content_type)
        hints = infer_from_filename(filename)
        area_name = (area_name or "").strip() or None
        result = IngestionResult(
            warnings=warnings,
            dropped_features=normalized.report.dropped,
        )

        if provider_id:
            provider = await self._providers.get_by_id(provider_id)
            if provider is None:
                msg = "Operadora não encontrada"
                raise ResourceNotFoundError(msg, {"provider_id": provider_id})
            name = area_name or hints.area_name
            if not name:
                msg = (
                    "Não foi possível identificar o nome da área automaticamente. "
                    "Informe manualmente."
                )
                raise ValidationError(msg)
            area = await self._store.create(
                provider_id=provider.id,
                name=name,
                geometry=normalized.feature_collection,
                source_document=parsed.source_text,
            )
            result.areas.append(area_summary(area))
        else:
            await self._ingest_grouped(
                normalized.feature_collection["features"],
                filename=filename,
                area_name=area_name or hints.area_name,
                source_document=parsed.source_text,
                result=result,
            )

        if result.areas:
            await self._query_cache.invalidate()
        logger.info(
            "Ingested %s: %d area(s), %d provider(s) created, %d error(s)",
            filename,
            len(result.areas),
            len(result.created_providers),
            len(result.errors),
        )
        return result

    async def _ingest_grouped(
        self,
        features: list[dict[str, Any]],
        *,
        filename: str | None,
        area_name: str | None,
        source_document: str,
        result: IngestionResult,
    ) -> None:
        known = await self._providers.get_all()
        buckets: dict[str, _ProviderBucket] = {}
        failures: list[CoverageServiceError] = []

        for group in group_features(features, filename):
            label = group.candidate or "(sem nome)"
            if group.candidate is None:
                message = (
                    f"{len(group.features)} feature(s) sem operadora identificável; "
                    "selecione a operadora manualmente"
                )
                result.needs_review.append(message)
                result.errors.append(message)
                continue

            match = match_provider(group.candidate, known)
            if match.needs_review:
                names = ", ".join(sorted(provider.name for provider in match.ambiguous))
                message = (
                    f"'{label}' corresponde a mais de uma operadora ({names}); "
                    "selecione a operadora manualmente"
                )
                result.needs_review.append(message)
                result.errors.append(message)
                continue

            provider = match.provider
            if provider is None:
                try:
                    provider = await self._create_provider(group.candidate)
                except CoverageServiceError as exc:
                    failures.append(exc)
                    result.errors.append(f"Operadora '{label}': {exc.message}")
                    continue
                known.append(provider)
                result.created_providers.append(
                    ProviderSummary(
                        id=str(provider.id), name=provider.name, slug=provider.slug
                    )
                )

            bucket = buckets.setdefault(str(provider.id), _ProviderBucket(provider))
            bucket.features.extend(group.features)

        for bucket in buckets.values():
            provider = bucket.provider
            try:
                area = await self._store.create(
                    provider_id=provider.id,
                    name=area_name or provider.name,
                    geometry={"type": "FeatureCollection", "features": bucket.features},
                    source_document=source_document,
                )
            except CoverageServiceError as exc:
                logger.warning(
                    "Coverage group for provider %s failed: %s", provider.name, exc.message
                )
                failures.append(exc)
                result.errors.append(f"Operadora '{provider.name}': {exc.message}")
                continue
            result.areas.append(area_summary(area))

        if result.areas:
            return
        if failures and all(isinstance(exc, StorageError) for exc in failures):
            msg = "Falha ao salvar áreas de cobertura"
            raise StorageError(msg, {"errors": result.errors})
        raise UnresolvedProviderError(result.errors or ["Nenhuma área criada"])

    async def _create_provider(self, name: str) -> Provider:
        slug = await self._unique_slug(name)
        return await self._providers.create(name=name, slug=slug)

    async def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        candidate = base
        suffix = 2
        while await self._providers.get_by_slug(candidate) is not None:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    async def replace_geometry(
        self,
        area_id: str,
        data: bytes,
        *,
        filename: str | None,
        content_type: str | None = None,
    ) -> AreaSummary:
        """Swap an area's geometry for the contents of a new upload."""
        parsed, normalized, _ = self._prepare(data, filename, content_type)
        area = await self._store.replace_geometry(
            area_id,
            geometry=normalized.feature_collection,
            source_document=parsed.source_text,
        )
        await self._query_cache.invalidate()
        return area_summary(area)
