import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient
from network_blocker import install_network_blocker

from core.http.circuit_breaker import nominatim_breaker, viacep_breaker
from db.models import ALL_DOCUMENT_MODELS


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIACEP_BASE_URL", "http://viacep.test/ws")
    monkeypatch.setenv("NOMINATIM_BASE_URL", "http://nominatim.test")
    monkeypatch.delenv("HTTP_FORBIDDEN_HOSTS", raising=False)
    install_network_blocker(monkeypatch)
    viacep_breaker.reset()
    nominatim_breaker.reset()


@pytest.fixture
async def beanie_db():
    client = AsyncMongoMockClient()
    database = client["test_db"]
    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
    return database
