import pytest
from http_fakes import FakeResponse, FakeSession

from core.exceptions import ExternalServiceError
from core.http.blocklist import is_forbidden_host
from core.http.request import get_json


def test_is_forbidden_host_matches_configured_hosts(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("HTTP_FORBIDDEN_HOSTS", "viacep.com.br, openstreetmap.org")

    assert is_forbidden_host("https://viacep.com.br/ws/01310100/json/")
    assert is_forbidden_host("https://nominatim.openstreetmap.org/search")
    assert not is_forbidden_host("http://nominatim.test/search")


def test_is_forbidden_host_empty_by_default() -> None:
    assert not is_forbidden_host("https://viacep.com.br/ws/01310100/json/")


async def test_get_json_refuses_forbidden_host(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("HTTP_FORBIDDEN_HOSTS", "viacep.com.br")
    session = FakeSession(FakeResponse(json_data={}))

    with pytest.raises(ValueError):
        await get_json(
            session, "https://viacep.com.br/ws/01310100/json/", service="ViaCEP"
        )
    assert session.requests == []


async def test_get_json_returns_none_on_missing_status() -> None:
    session = FakeSession(FakeResponse(status=404))

    data = await get_json(
        session, "http://viacep.test/ws/0/json/", service="ViaCEP", missing_on=(404,)
    )

    assert data is None


async def test_get_json_truncates_error_body() -> None:
    session = FakeSession(FakeResponse(status=502, text_data="x" * 2000))

    with pytest.raises(ExternalServiceError) as raised:
        await get_json(session, "http://nominatim.test/search", service="Nominatim")

    assert raised.value.details["status"] == 502
    assert len(raised.value.details["body"]) == 500


async def test_get_json_defaults_unparseable_retry_after() -> None:
    response = FakeResponse(
        status=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
    )

    with pytest.raises(ExternalServiceError) as raised:
        await get_json(FakeSession(response), "http://nominatim.test/search", service="N")

    assert raised.value.details["retry_after"] == 5
