"""Database package for MongoDB operations using Beanie ODM.

Modules:
    manager: DatabaseManager for connection handling and Beanie setup
    models: Beanie Document models for all collections
"""

from db.manager import DatabaseManager
from db.models import ALL_DOCUMENT_MODELS, CoverageArea, Plan, Provider

__all__ = [
    "ALL_DOCUMENT_MODELS",
    "CoverageArea",
    "DatabaseManager",
    "Plan",
    "Provider",
]
