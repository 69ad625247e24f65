"""Finnhub client tests."""

from __future__ import annotations

import httpx
import pytest

from portfolio_tracker.providers.finnhub import FinnhubClient, FinnhubError


class StubResponse:
    def __init__(self, payload: object, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> object:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class StubClient:
    def __init__(self, payload: object = None, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code
        self.calls: list[tuple[str, dict[str, object]]] = []

    async def get(self, url: str, params: dict[str, object], timeout: float) -> StubResponse:
        self.calls.append((url, params))
        return StubResponse(self.payload, self.status_code)

    async def aclose(self) -> None:  # pragma: no cover - included for interface completeness
        return None


QUOTE_PAYLOAD = {"c": 189.5, "d": 1.2, "dp": 0.64, "h": 190.1, "l": 187.0, "o": 188.0, "pc": 188.3, "t": 1717000000}


@pytest.mark.asyncio
async def test_injects_token_and_builds_url():
    stub = StubClient(QUOTE_PAYLOAD)
    client = FinnhubClient(api_key="test", base_url="https://finnhub.example/api/v1/", client=stub)
    payload = await client.quote("AAPL")
    assert payload["c"] == 189.5
    url, params = stub.calls[0]
    assert url == "https://finnhub.example/api/v1/quote"
    assert params == {"symbol": "AAPL", "token": "test"}


@pytest.mark.asyncio
async def test_unconfigured_client_never_calls_out():
    stub = StubClient(QUOTE_PAYLOAD)
    client = FinnhubClient(api_key="", client=stub)
    assert not client.configured
    with pytest.raises(FinnhubError):
        await client.quote("AAPL")
    assert stub.calls == []


@pytest.mark.asyncio
async def test_zero_price_quote_is_treated_as_missing():
    client = FinnhubClient(api_key="test", client=StubClient({"c": 0, "d": None, "dp": None}))
    with pytest.raises(FinnhubError):
        await client.quote("NOPE")


@pytest.mark.asyncio
async def test_http_status_and_invalid_json_raise():
    failing = FinnhubClient(api_key="test", client=StubClient(QUOTE_PAYLOAD, status_code=429))
    with pytest.raises(FinnhubError):
        await failing.quote("AAPL")

    garbled = FinnhubClient(api_key="test", client=StubClient(ValueError("not json")))
    with pytest.raises(FinnhubError):
        await garbled.quote("AAPL")


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped():
    class BrokenClient(StubClient):
        async def get(self, url: str, params: dict[str, object], timeout: float) -> StubResponse:
            raise httpx.ConnectError("connection refused")

    client = FinnhubClient(api_key="test", client=BrokenClient())
    with pytest.raises(FinnhubError):
        await client.search("apple")


@pytest.mark.asyncio
async def test_search_requires_result_list():
    client = FinnhubClient(
        api_key="test",
        client=StubClient({"count": 1, "result": [{"symbol": "AAPL", "type": "Common Stock"}, "junk"]}),
    )
    results = await client.search("apple")
    assert results == [{"symbol": "AAPL", "type": "Common Stock"}]

    malformed = FinnhubClient(api_key="test", client=StubClient({"count": 0}))
    with pytest.raises(FinnhubError):
        await malformed.search("apple")


@pytest.mark.asyncio
async def test_candles_validate_status_and_lengths():
    no_data = FinnhubClient(api_key="test", client=StubClient({"s": "no_data"}))
    with pytest.raises(FinnhubError):
        await no_data.candles("AAPL", "D", 1, 2)

    ragged = {"s": "ok", "c": [1, 2], "h": [1, 2], "l": [1, 2], "o": [1, 2], "t": [1, 2], "v": [1]}
    mismatched = FinnhubClient(api_key="test", client=StubClient(ragged))
    with pytest.raises(FinnhubError):
        await mismatched.candles("AAPL", "D", 1, 2)


@pytest.mark.asyncio
async def test_profile_requires_name():
    client = FinnhubClient(api_key="test", client=StubClient({}))
    with pytest.raises(FinnhubError):
        await client.profile("AAPL")
