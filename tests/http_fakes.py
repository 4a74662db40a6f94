from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from types import TracebackType


@dataclass
class FakeResponse:
    """Just enough of ``aiohttp.ClientResponse`` for ``get_json``."""

    status: int = 200
    json_data: Any = None
    text_data: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    url: str = "http://upstream.test"
    invalid_json: bool = False

    async def json(self, content_type: str | None = "application/json") -> Any:
        if self.invalid_json:
            msg = "Expecting value: line 1 column 1 (char 0)"
            raise ValueError(msg)
        return self.json_data

    async def text(self) -> str:
        return self.text_data

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for GET calls."""

    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[tuple[str, dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append((url, kwargs))
        if not self._responses:
            msg = f"Unexpected GET {url}"
            raise AssertionError(msg)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
