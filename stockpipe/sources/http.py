"""JSON-over-HTTP adapter variant.

The adapter owns transport concerns only: building the URL, the GET, and
mapping transport failures to ``FetchError``. Turning the payload into
records is the job of the ``parser`` supplied per source.

Usage:
    def parse_quotes(target, payload):
        return [QuoteRecord(security_code=row["code"], ...) for row in payload["data"]]

    adapter = HttpJsonSourceAdapter(
        name="twse_quotes",
        kind=EntityKind.DAILY_QUOTE,
        url_template="https://example.org/quotes?date={target}",
        parser=parse_quotes,
    )
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from typing import Any

import httpx
import pydantic

from stockpipe.core.config import settings
from stockpipe.core.exceptions import FetchError
from stockpipe.core.logging import get_logger
from stockpipe.domain.records import EntityKind, NormalizedRecord


logger = get_logger("sources.http")

Parser = Callable[[Hashable, Any], Sequence[NormalizedRecord]]


class HttpJsonSourceAdapter:
    """Fetch a JSON document per target and parse it into records."""

    def __init__(
        self,
        name: str,
        kind: EntityKind,
        url_template: str,
        parser: Parser,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.name = name
        self.kind = kind
        self.url_template = url_template
        self.parser = parser
        self.params = params or {}
        self.headers = headers or {}
        self.timeout = timeout or settings.fetch_timeout
        self._client = client

    def build_url(self, target: Hashable) -> str:
        return self.url_template.format(target=target)

    async def _get_json(self, url: str) -> Any:
        if self._client is not None:
            response = await self._client.get(url, params=self.params, headers=self.headers)
            response.raise_for_status()
            return response.json()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, params=self.params, headers=self.headers)
            response.raise_for_status()
            return response.json()

    async def fetch(self, target: Hashable) -> list[NormalizedRecord]:
        url = self.build_url(target)
        details = {"source": self.name, "target": str(target)}
        try:
            payload = await self._get_json(url)
        except httpx.HTTPStatusError as exc:
            logger.warning(f"{self.name} returned {exc.response.status_code} for {target}")
            raise FetchError(
                message=f"{self.name} returned HTTP {exc.response.status_code}",
                details={**details, "status_code": exc.response.status_code},
            ) from exc
        except httpx.RequestError as exc:
            logger.warning(f"{self.name} request failed for {target}: {exc}")
            raise FetchError(message=f"{self.name} unavailable: {exc}", details=details) from exc
        except ValueError as exc:
            raise FetchError(message=f"{self.name} sent invalid JSON", details=details) from exc

        try:
            return list(self.parser(target, payload))
        except (KeyError, TypeError, ValueError, pydantic.ValidationError) as exc:
            raise FetchError(message=f"{self.name} payload could not be parsed: {exc}", details=details) from exc
