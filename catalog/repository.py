"""Read/write access to providers and their plans."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from beanie import PydanticObjectId
from beanie.exceptions import DocumentNotFound
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.exceptions import DuplicateResourceError, StorageError
from db.models import Plan, Provider

logger = logging.getLogger(__name__)


def to_object_id(value: str | PydanticObjectId | None) -> PydanticObjectId | None:
    """Parse an identifier, returning None for anything that is not an ObjectId."""
    if value is None:
        return None
    if isinstance(value, PydanticObjectId):
        return value
    try:
        return PydanticObjectId(str(value))
    except (InvalidId, TypeError, ValueError):
        return None


class ProviderRepository:
    """Service class for provider lookups and creation."""

    @staticmethod
    async def get_by_id(provider_id: str | PydanticObjectId) -> Provider | None:
        oid = to_object_id(provider_id)
        if oid is None:
            return None
        try:
            return await Provider.get(oid)
        except PyMongoError as exc:
            msg = "Falha ao buscar operadora"
            raise StorageError(msg, {"provider_id": str(provider_id)}) from exc

    @staticmethod
    async def get_all() -> list[Provider]:
        """Every provider, inactive ones included, ordered by name."""
        try:
            return await Provider.find_all().sort(+Provider.name).to_list()
        except PyMongoError as exc:
            msg = "Falha ao listar operadoras"
            raise StorageError(msg) from exc

    @staticmethod
    async def get_by_slug(slug: str) -> Provider | None:
        try:
            return await Provider.find_one(Provider.slug == slug)
        except PyMongoError as exc:
            msg = "Falha ao buscar operadora"
            raise StorageError(msg, {"slug": slug}) from exc

    @staticmethod
    async def create(name: str, slug: str) -> Provider:
        """
        Insert a new active provider.

        Raises:
            DuplicateResourceError: the slug is already taken.
            StorageError: any other database failure.
        """
        now = datetime.now(UTC)
        provider = Provider(
            name=name,
            slug=slug,
            active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            await provider.insert()
        except DuplicateKeyError as exc:
            msg = f"Operadora com slug '{slug}' já existe"
            raise DuplicateResourceError(msg, {"slug": slug}) from exc
        except (DocumentNotFound, PyMongoError) as exc:
            msg = f"Falha ao criar operadora '{name}'"
            raise StorageError(msg, {"slug": slug}) from exc

        logger.info("Created provider %s (%s)", name, slug)
        return provider


class PlanRepository:
    """Service class for plan lookups."""

    @staticmethod
    async def get_active_by_provider_id(
        provider_id: str | PydanticObjectId,
    ) -> list[Plan]:
        """Active plans of a provider, cheapest first, then fastest download."""
        oid = to_object_id(provider_id)
        if oid is None:
            return []
        try:
            return await (
                Plan.find(Plan.provider_id == oid, Plan.active == True)  # noqa: E712
                .sort(+Plan.price, -Plan.download_mbps)
                .to_list()
            )
        except PyMongoError as exc:
            msg = "Falha ao buscar planos"
            raise StorageError(msg, {"provider_id": str(provider_id)}) from exc
