import pytest
from cache_fakes import InMemoryRedis, factory_for

from availability.ingestion import IngestionOrchestrator, validate_upload
from availability.query_cache import GENERATION_KEY, QueryCache
from availability.repository import CoverageStore
from catalog.repository import ProviderRepository
from core.cache import JsonCache
from core.exceptions import (
    InvalidUploadError,
    NoValidRegionsError,
    ResourceNotFoundError,
    StorageError,
    UnresolvedProviderError,
)
from db.models import CoverageArea, Provider

SQUARE = "-46,-23 -46,-22 -45,-22 -45,-23 -46,-23"
OTHER_SQUARE = "-44,-23 -44,-22 -43,-22 -43,-23 -44,-23"


def _polygon(name: str, coords: str = SQUARE) -> str:
    return (
        f"<Placemark><name>{name}</name><Polygon><outerBoundaryIs><LinearRing>"
        f"<coordinates>{coords}</coordinates></LinearRing></outerBoundaryIs>"
        "</Polygon></Placemark>"
    )


def _kml(*placemarks: str) -> bytes:
    return (
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>'
        + "".join(placemarks)
        + "</Document></kml>"
    ).encode()


class FailingStore(CoverageStore):
    """Fails the first ``failures`` creates with a storage error."""

    def __init__(self, failures: int) -> None:
        self.failures = failures

    async def create(self, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            msg = "disk full"
            raise StorageError(msg)
        return await super().create(**kwargs)


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def query_cache(redis_client):
    return QueryCache(JsonCache(factory_for(redis_client)))


@pytest.fixture
async def orchestrator(beanie_db, query_cache):
    return IngestionOrchestrator(CoverageStore(), ProviderRepository(), query_cache)


async def test_same_provider_labels_merge_into_one_area(orchestrator) -> None:
    data = _kml(_polygon("Acme - North"), _polygon("Acme - South", OTHER_SQUARE))

    result = await orchestrator.ingest(data, filename="upload.kml")

    providers = await Provider.find_all().to_list()
    areas = await CoverageArea.find_all().to_list()
    assert [provider.name for provider in providers] == ["Acme"]
    assert providers[0].slug == "acme"
    assert len(areas) == 1
    assert areas[0].provider_id == providers[0].id
    assert areas[0].feature_count == 2
    assert areas[0].bbox == [-46.0, -23.0, -43.0, -22.0]
    assert result.success
    assert [item.name for item in result.created_providers] == ["Acme"]
    assert result.errors == []


async def test_existing_provider_is_reused(orchestrator) -> None:
    existing = Provider(name="ACME", slug="acme")
    await existing.insert()

    result = await orchestrator.ingest(_kml(_polygon("Acme - Centro")), filename="x.kml")

    assert result.created_providers == []
    assert result.areas[0].provider_id == str(existing.id)
    assert await Provider.find_all().count() == 1


async def test_inactive_provider_is_matched_instead_of_duplicated(orchestrator) -> None:
    dormant = Provider(name="Acme", slug="acme", active=False)
    await dormant.insert()

    result = await orchestrator.ingest(_kml(_polygon("Acme - Centro")), filename="x.kml")

    assert result.created_providers == []
    assert result.areas[0].provider_id == str(dormant.id)
    assert [p.name for p in await ProviderRepository.get_all()] == ["Acme"]


async def test_each_provider_gets_its_own_area(orchestrator) -> None:
    data = _kml(_polygon("Acme - North"), _polygon("Beta Net - North", OTHER_SQUARE))

    result = await orchestrator.ingest(data, filename="mixed.kml", area_name="Norte")

    assert sorted(item.name for item in result.created_providers) == ["Acme", "Beta Net"]
    assert [area.name for area in result.areas] == ["Norte", "Norte"]
    assert {area.feature_count for area in result.areas} == {1}


async def test_new_provider_gets_unique_slug(orchestrator) -> None:
    await Provider(name="Outra", slug="acme").insert()

    result = await orchestrator.ingest(_kml(_polygon("Acme - Sul")), filename="x.kml")

    assert result.created_providers[0].slug == "acme-2"


async def test_unlabelled_features_use_filename(orchestrator) -> None:
    result = await orchestrator.ingest(
        _kml(_polygon("Zona 1"), _polygon("Zona 2", OTHER_SQUARE)),
        filename="Gamma Telecom - Litoral.kmz",
    )

    assert [item.name for item in result.created_providers] == ["Gamma Telecom"]
    assert result.areas[0].name == "Litoral"
    assert result.areas[0].feature_count == 2


async def test_unidentifiable_provider_needs_review(orchestrator) -> None:
    with pytest.raises(UnresolvedProviderError) as raised:
        await orchestrator.ingest(_kml(_polygon("Zona 1")), filename="cobertura.kml")

    assert raised.value.errors
    assert await CoverageArea.find_all().count() == 0
    assert await Provider.find_all().count() == 0


async def test_ambiguous_match_is_reported_not_guessed(orchestrator) -> None:
    await Provider(name="Net", slug="net").insert()
    await Provider(name="Net Plus Fibra", slug="net-plus-fibra").insert()
    data = _kml(_polygon("Net Plus - Centro"), _polygon("Acme - Sul", OTHER_SQUARE))

    result = await orchestrator.ingest(data, filename="x.kml")

    assert len(result.areas) == 1
    assert len(result.needs_review) == 1
    assert "Net Plus" in result.needs_review[0]


async def test_only_open_lines_and_points_creates_nothing(orchestrator) -> None:
    data = _kml(
        "<Placemark><name>Acme - Road</name><LineString><coordinates>"
        "-46,-23 -45,-22 -44,-21</coordinates></LineString></Placemark>",
        "<Placemark><name>Acme - Tower</name><Point><coordinates>"
        "-46,-23</coordinates></Point></Placemark>",
    )

    with pytest.raises(NoValidRegionsError) as raised:
        await orchestrator.ingest(data, filename="acme.kml")

    assert raised.value.errors
    assert await CoverageArea.find_all().count() == 0


async def test_partial_failure_keeps_successful_groups(beanie_db, query_cache) -> None:
    orchestrator = IngestionOrchestrator(
        FailingStore(failures=1), ProviderRepository(), query_cache
    )
    data = _kml(_polygon("Acme - North"), _polygon("Beta - North", OTHER_SQUARE))

    result = await orchestrator.ingest(data, filename="x.kml")

    assert len(result.areas) == 1
    assert len(result.errors) == 1
    assert "disk full" in result.errors[0]
    assert await CoverageArea.find_all().count() == 1


async def test_all_groups_failing_storage_raises_storage_error(
    beanie_db, query_cache
) -> None:
    orchestrator = IngestionOrchestrator(
        FailingStore(failures=5), ProviderRepository(), query_cache
    )

    with pytest.raises(StorageError):
        await orchestrator.ingest(_kml(_polygon("Acme - North")), filename="x.kml")


async def test_explicit_provider_stores_everything_as_one_area(orchestrator) -> None:
    provider = Provider(name="Delta", slug="delta")
    await provider.insert()
    data = _kml(_polygon("Acme - North"), _polygon("Beta - North", OTHER_SQUARE))

    result = await orchestrator.ingest(
        data, filename="mapa.kml", provider_id=str(provider.id), area_name="Capital"
    )

    assert len(result.areas) == 1
    assert result.areas[0].name == "Capital"
    assert result.areas[0].feature_count == 2
    assert await Provider.find_all().count() == 1
    stored = await CoverageArea.find_one(CoverageArea.provider_id == provider.id)
    assert stored.source_document.startswith("<kml")


async def test_unknown_provider_id_is_not_found(orchestrator) -> None:
    with pytest.raises(ResourceNotFoundError):
        await orchestrator.ingest(
            _kml(_polygon("A")),
            filename="a.kml",
            provider_id="64b7f0c2a1b2c3d4e5f60718",
        )


async def test_successful_ingestion_invalidates_query_cache(
    orchestrator, redis_client
) -> None:
    await orchestrator.ingest(_kml(_polygon("Acme - North")), filename="x.kml")

    assert redis_client.values[GENERATION_KEY] == "1"


async def test_replace_geometry_swaps_features(orchestrator, redis_client) -> None:
    result = await orchestrator.ingest(_kml(_polygon("Acme - North")), filename="x.kml")
    area_id = result.areas[0].id

    summary = await orchestrator.replace_geometry(
        area_id,
        _kml(_polygon("Acme - North", OTHER_SQUARE), _polygon("Acme - East")),
        filename="new.kml",
    )

    assert summary.feature_count == 2
    assert summary.bbox == [-46.0, -23.0, -43.0, -22.0]
    assert redis_client.values[GENERATION_KEY] == "2"


def test_validate_upload_reports_every_problem() -> None:
    with pytest.raises(InvalidUploadError) as raised:
        validate_upload("coverage.pdf", "application/pdf", 30 * 1024 * 1024)

    assert len(raised.value.errors) == 2


def test_validate_upload_accepts_kml_content_type_without_extension() -> None:
    validate_upload("download", "application/vnd.google-earth.kml+xml", 10)
