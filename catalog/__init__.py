"""Provider and plan lookups used by coverage queries and ingestion."""

from catalog.repository import PlanRepository, ProviderRepository

__all__ = ["PlanRepository", "ProviderRepository"]
