"""JSON-over-HTTP POST used for heartbeats and alert upserts."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .models import TransportResult

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def post_json(self, url: str, payload: dict[str, Any]) -> TransportResult:
        ...


def parse_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, falling back to ``{"raw": text}``."""
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    if isinstance(data, dict):
        return data
    return {"raw": response.text}


class HttpTransport:
    """POST JSON documents with a bounded timeout; failures become results, not exceptions."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def post_json(self, url: str, payload: dict[str, Any]) -> TransportResult:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("POST %s failed: %s", url, exc)
            return TransportResult(error=str(exc) or type(exc).__name__)

        return TransportResult(code=response.status_code, body=parse_body(response))
