"""
JSON GET helper shared by the geocoding clients.

Maps upstream answers onto service exceptions: 429 becomes
``RateLimitError`` and any other unexpected status, or a body that is not
JSON, becomes ``ExternalServiceError``. Statuses listed in ``missing_on``
mean "no such record" and return ``None``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.exceptions import ExternalServiceError, RateLimitError
from core.http.blocklist import is_forbidden_host

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 5
MAX_ERROR_BODY_CHARS = 500


def _retry_after(headers: Mapping[str, str]) -> int:
    try:
        return int(headers.get("Retry-After", DEFAULT_RETRY_AFTER_SECONDS))
    except (TypeError, ValueError):
        # HTTP-date form
        return DEFAULT_RETRY_AFTER_SECONDS


async def get_json(
    session: Any,
    url: str,
    *,
    service: str,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    missing_on: Collection[int] = (),
    timeout: Any | None = None,
) -> Any | None:
    """
    GET ``url`` and decode the JSON body.

    Raises:
        ValueError: ``url`` points at a host listed in HTTP_FORBIDDEN_HOSTS.
        RateLimitError: the upstream answered 429.
        ExternalServiceError: any other non-2xx status or an invalid body.
    """
    if is_forbidden_host(url):
        msg = f"{service}: host bloqueado ({url})"
        raise ValueError(msg)

    options: dict[str, Any] = {"params": params, "headers": headers}
    if timeout is not None:
        options["timeout"] = timeout

    async with session.get(url, **options) as response:
        status = response.status
        where = str(getattr(response, "url", url))
        if status in missing_on:
            logger.debug("%s answered %s for %s", service, status, where)
            return None
        if status == 429:
            msg = f"{service}: limite de requisições excedido"
            raise RateLimitError(
                msg,
                {"status": status, "retry_after": _retry_after(response.headers), "url": where},
            )
        if not 200 <= status < 300:
            body = await response.text()
            msg = f"{service}: resposta HTTP {status}"
            raise ExternalServiceError(
                msg,
                {"status": status, "body": body[:MAX_ERROR_BODY_CHARS], "url": where},
            )
        try:
            return await response.json(content_type=None)
        except ValueError as exc:
            msg = f"{service}: resposta não é JSON válido"
            raise ExternalServiceError(msg, {"url": where}) from exc
