"""Tests for the JSON-over-HTTP source adapter."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import httpx
import pytest

from stockpipe.core.exceptions import FetchError
from stockpipe.domain.records import EntityKind, QuoteRecord
from stockpipe.sources.base import SourceAdapter
from stockpipe.sources.http import HttpJsonSourceAdapter


DAY = date(2024, 3, 29)


def parse_quotes(target, payload) -> list[QuoteRecord]:
    return [
        QuoteRecord(security_code=row["code"], date=DAY, close=Decimal(row["close"]))
        for row in payload["data"]
    ]


def _adapter(handler) -> HttpJsonSourceAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpJsonSourceAdapter(
        name="quotes",
        kind=EntityKind.DAILY_QUOTE,
        url_template="https://quotes.test/daily/{target}",
        parser=parse_quotes,
        params={"format": "json"},
        client=client,
    )


class TestHttpJsonSourceAdapter:
    """Tests for HttpJsonSourceAdapter.fetch."""

    def test_satisfies_protocol(self):
        assert isinstance(_adapter(lambda request: httpx.Response(200)), SourceAdapter)

    async def test_parses_payload(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": [{"code": "2330", "close": "780.5"}]})

        records = await _adapter(handler).fetch("20240329")

        assert records == [QuoteRecord(security_code="2330", date=DAY, close=Decimal("780.5"))]
        assert requests[0].url.path == "/daily/20240329"
        assert requests[0].url.params["format"] == "json"

    @pytest.mark.parametrize("status_code", [404, 503])
    async def test_error_status(self, status_code):
        adapter = _adapter(lambda request: httpx.Response(status_code))

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch("20240329")

        assert exc_info.value.details["status_code"] == status_code
        assert exc_info.value.details["target"] == "20240329"

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            await _adapter(handler).fetch("20240329")

        assert "unavailable" in exc_info.value.message

    async def test_invalid_json(self):
        adapter = _adapter(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch("20240329")

        assert "invalid JSON" in exc_info.value.message

    async def test_unexpected_payload_shape(self):
        adapter = _adapter(lambda request: httpx.Response(200, json={"rows": []}))

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch("20240329")

        assert "could not be parsed" in exc_info.value.message
