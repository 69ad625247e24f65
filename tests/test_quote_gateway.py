"""Quote gateway caching, throttling, ranking and fallback tests."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from portfolio_tracker.config import AppSettings
from portfolio_tracker.providers.finnhub import FinnhubClient, FinnhubError
from portfolio_tracker.services.cache import TTLCache
from portfolio_tracker.services.quotes import (
    DataSource,
    QuoteGateway,
    SymbolMatch,
    rank_matches,
    symbol_hash,
)
from portfolio_tracker.services.request_queue import RequestQueue

NOW = datetime(2024, 6, 3, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFinnhub:
    """Stands in for FinnhubClient; records calls and optionally fails."""

    def __init__(self, *, fail: bool = False, search_results: list[dict[str, object]] | None = None) -> None:
        self.fail = fail
        self.search_results = search_results or []
        self.calls: list[tuple[str, str]] = []

    @property
    def configured(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    def _record(self, method: str, argument: str) -> None:
        self.calls.append((method, argument))
        if self.fail:
            raise FinnhubError("provider unavailable")

    async def quote(self, symbol: str) -> dict[str, object]:
        self._record("quote", symbol)
        return {"c": 100.0, "d": 2.0, "dp": 2.04, "h": 101.0, "l": 97.5, "o": 98.0, "pc": 98.0, "t": 1717428600}

    async def search(self, query: str) -> list[dict[str, object]]:
        self._record("search", query)
        return self.search_results

    async def candles(self, symbol: str, resolution: str, start: int, end: int) -> dict[str, object]:
        self._record("candles", symbol)
        return {"s": "ok", "c": [10, 11], "h": [12, 12], "l": [9, 10], "o": [9.5, 10.5], "t": [start, end], "v": [100, 200]}

    async def profile(self, symbol: str) -> dict[str, object]:
        self._record("profile", symbol)
        return {"name": "Apple Inc", "finnhubIndustry": "Technology", "logo": "https://logo.example/aapl.png"}


def build_gateway(
    client=None,
    *,
    clock: FakeClock | None = None,
    queue: RequestQueue | None = None,
    now=None,
) -> QuoteGateway:
    clock = clock or FakeClock()
    return QuoteGateway(
        client,
        settings=AppSettings(quote_cache_ttl_seconds=60, quote_batch_size=3, search_result_limit=10),
        queue=queue or RequestQueue(0, clock=clock),
        rng=random.Random(42),
        clock=clock,
        now=now or (lambda: NOW),
    )


def test_ttl_cache_expires_entries():
    clock = FakeClock()
    cache: TTLCache[str] = TTLCache(60, clock)
    cache.set("AAPL", "quote")
    clock.advance(59.9)
    assert cache.get("AAPL") == "quote"
    clock.advance(0.1)
    assert cache.get("AAPL") is None
    assert "AAPL" not in cache


@pytest.mark.asyncio
async def test_quote_is_cached_until_ttl_expires():
    clock = FakeClock()
    finnhub = FakeFinnhub()
    gateway = build_gateway(finnhub, clock=clock)

    first = await gateway.get_quote("aapl")
    second = await gateway.get_quote("AAPL")
    assert first is second
    assert first.current_price == Decimal("100.0")
    assert first.source is DataSource.REAL
    assert len(finnhub.calls) == 1

    clock.advance(60)
    await gateway.get_quote("AAPL")
    assert len(finnhub.calls) == 2


@pytest.mark.asyncio
async def test_failed_quote_falls_back_to_tagged_synthetic_quote():
    gateway = build_gateway(FakeFinnhub(fail=True))
    quote = await gateway.get_quote("AAPL")
    assert quote.is_synthetic
    assert quote.current_price == Decimal(50 + symbol_hash("AAPL") % 200)
    assert abs(quote.change) <= 5
    assert quote.timestamp == NOW


@pytest.mark.asyncio
async def test_unconfigured_gateway_never_raises():
    gateway = build_gateway(None)
    quote = await gateway.get_quote("MSFT")
    assert quote.source is DataSource.SYNTHETIC
    assert quote.current_price > 0
    assert gateway.queue.dispatched == 0


@pytest.mark.asyncio
async def test_batch_deduplicates_and_uses_cache():
    finnhub = FakeFinnhub()
    gateway = build_gateway(finnhub)
    await gateway.get_quote("AAPL")

    quotes = await gateway.get_quotes_batch(["aapl", "MSFT", "AAPL", "", "GOOGL", "NVDA", "msft"])
    assert set(quotes) == {"AAPL", "MSFT", "GOOGL", "NVDA"}
    quoted = [argument for method, argument in finnhub.calls if method == "quote"]
    assert quoted.count("AAPL") == 1
    assert sorted(quoted) == ["AAPL", "GOOGL", "MSFT", "NVDA"]


@pytest.mark.asyncio
async def test_requests_are_spaced_by_the_queue_interval():
    clock = FakeClock()
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)
        clock.advance(seconds)

    queue = RequestQueue(0.5, clock=clock, sleep=fake_sleep)
    gateway = build_gateway(FakeFinnhub(), clock=clock, queue=queue)
    await gateway.get_quotes_batch(["AAPL", "MSFT", "GOOGL"])

    assert queue.dispatched == 3
    assert waits == [pytest.approx(0.5), pytest.approx(0.5)]


def test_rank_matches_puts_exact_ticker_first():
    matches = [
        SymbolMatch("SNAAP", "SNAAP", "Snap AAPL Tracker", "Common Stock"),
        SymbolMatch("AAPL.MX", "AAPL.MX", "Apple Inc", "Common Stock"),
        SymbolMatch("AAPL", "AAPL", "Apple Inc", "Common Stock"),
        SymbolMatch("AAPLW", "AAPLW", "Apple Warrant", "Warrant"),
        SymbolMatch("MSFT", "MSFT", "Microsoft Corp", "Common Stock"),
    ]
    ranked = rank_matches(matches, "aapl", 10)
    assert [match.symbol for match in ranked] == ["AAPL", "AAPL.MX", "SNAAP"]


@pytest.mark.asyncio
async def test_search_limits_and_caches_results():
    results = [
        {"symbol": f"AAPL{index}", "displaySymbol": f"AAPL{index}", "description": "Apple", "type": "Common Stock"}
        for index in range(15)
    ]
    finnhub = FakeFinnhub(search_results=results)
    gateway = build_gateway(finnhub)

    ranked = await gateway.search_symbols("AAPL")
    assert len(ranked) == 10
    assert await gateway.search_symbols("aapl") == ranked
    assert len(finnhub.calls) == 1
    assert await gateway.search_symbols("   ") == []
    assert len(finnhub.calls) == 1


@pytest.mark.asyncio
async def test_search_falls_back_to_offline_list():
    gateway = build_gateway(FakeFinnhub(fail=True))
    ranked = await gateway.search_symbols("micro")
    assert [match.symbol for match in ranked] == ["MSFT"]
    assert ranked[0].source is DataSource.SYNTHETIC


@pytest.mark.asyncio
async def test_historical_bars_empty_range_and_fallback():
    finnhub = FakeFinnhub()
    gateway = build_gateway(finnhub)
    assert await gateway.get_historical_bars("AAPL", "D", 200, 100) is None
    assert await gateway.get_historical_bars("AAPL", "D", 100, 100) is None

    bars = await gateway.get_historical_bars("AAPL", "D", 100, 200)
    assert bars.source is DataSource.REAL
    assert bars.closes == [10.0, 11.0]

    fallback = await build_gateway(FakeFinnhub(fail=True)).get_historical_bars("AAPL", "D", 100, 100 + 86400 * 40)
    assert fallback.source is DataSource.SYNTHETIC
    assert len(fallback.timestamps) == 30
    assert min(fallback.closes) >= 50


@pytest.mark.asyncio
async def test_profile_lookup():
    profile = await build_gateway(FakeFinnhub()).get_profile("aapl")
    assert profile.name == "Apple Inc"
    assert profile.sector == "Technology"

    assert await build_gateway(FakeFinnhub(fail=True)).get_profile("AAPL") is None

    synthetic = await build_gateway(None).get_profile("AAPL")
    assert synthetic.name == "AAPL"
    assert synthetic.sector == "Unknown"
    assert synthetic.source is DataSource.SYNTHETIC


@pytest.mark.asyncio
async def test_prefix_match_outranks_substring_match():
    results = [
        {"symbol": "SNAAP", "displaySymbol": "SNAAP", "description": "Snaap Holdings", "type": "Common Stock"},
        {"symbol": "AAPL", "displaySymbol": "AAPL", "description": "Apple Inc", "type": "Common Stock"},
    ]
    ranked = await build_gateway(FakeFinnhub(search_results=results)).search_symbols("AAP")
    symbols = [match.symbol for match in ranked]
    assert symbols.index("AAPL") < symbols.index("SNAAP")
    assert len(symbols) <= 10


class UnknownSymbolHttp:
    """HTTP stand-in answering every quote the way Finnhub answers an unknown ticker."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get(self, url: str, params: dict[str, object], timeout: float):
        self.calls.append(str(params.get("symbol")))
        return httpx.Response(200, json={"c": 0, "d": None, "dp": None, "h": 0, "l": 0, "o": 0, "pc": 0, "t": 0})

    async def aclose(self) -> None:
        return None


def assert_well_formed(quote, symbol: str) -> None:
    assert quote.symbol == symbol
    assert quote.source is DataSource.SYNTHETIC
    assert quote.current_price == Decimal(50 + symbol_hash(symbol) % 200)
    for value in (quote.change, quote.percent_change, quote.high, quote.low, quote.open, quote.previous_close):
        assert isinstance(value, Decimal)
    assert quote.timestamp == NOW


@pytest.mark.asyncio
async def test_configured_gateway_resolves_blank_and_unknown_symbols():
    http = UnknownSymbolHttp()
    gateway = build_gateway(FinnhubClient(api_key="test", base_url="https://finnhub.example", client=http))
    assert gateway.configured

    assert_well_formed(await gateway.get_quote(""), "")
    assert_well_formed(await gateway.get_quote("   "), "")
    assert http.calls == []

    assert_well_formed(await gateway.get_quote("zzzz9"), "ZZZZ9")
    assert http.calls == ["ZZZZ9"]


def test_ttl_cache_purges_expired_entries_on_write():
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache(60, clock)
    for index in range(200):
        cache.set(f"query-{index}", index)
    assert len(cache) == 200

    clock.advance(61)
    cache.set("fresh", 1)
    assert len(cache) == 1
    assert cache.get("fresh") == 1


def test_ttl_cache_evicts_oldest_entries_past_the_cap():
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache(60, clock, max_entries=3)
    for index in range(3):
        cache.set(index, index)
        clock.advance(1)
    cache.set(0, 10)
    cache.set(3, 3)

    assert len(cache) == 3
    assert cache.get(1) is None
    assert [cache.get(key) for key in (0, 2, 3)] == [10, 2, 3]


@pytest.mark.asyncio
async def test_search_uses_bounded_cache():
    clock = FakeClock()
    gateway = build_gateway(FakeFinnhub(fail=True), clock=clock)
    for index in range(200):
        await gateway.search_symbols(f"term {index}")
    clock.advance(61)
    await gateway.search_symbols("apple")
    assert len(gateway._search) == 1


@pytest.mark.asyncio
async def test_open_ended_bars_requests_share_a_cache_window():
    clock = FakeClock()
    finnhub = FakeFinnhub()
    current = {"now": NOW}
    gateway = build_gateway(finnhub, clock=clock, now=lambda: current["now"])

    for _ in range(50):
        bars = await gateway.get_historical_bars("AAPL")
        assert bars.source is DataSource.REAL
        current["now"] += timedelta(seconds=1)
        clock.advance(1)

    candle_calls = [call for call in finnhub.calls if call[0] == "candles"]
    assert 1 <= len(candle_calls) <= 2


@pytest.mark.asyncio
async def test_cached_search_results_are_copies():
    results = [{"symbol": "AAPL", "displaySymbol": "AAPL", "description": "Apple Inc", "type": "Common Stock"}]
    gateway = build_gateway(FakeFinnhub(search_results=results))

    first = await gateway.search_symbols("AAPL")
    first.clear()
    second = await gateway.search_symbols("AAPL")
    assert [match.symbol for match in second] == ["AAPL"]
    second.append(SymbolMatch("MSFT", "MSFT", "Microsoft Corp", "Common Stock"))
    assert [match.symbol for match in await gateway.search_symbols("aapl")] == ["AAPL"]


@pytest.mark.asyncio
async def test_lookups_are_traced_with_symbol_and_source():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    clock = FakeClock()
    gateway = QuoteGateway(
        FakeFinnhub(fail=True),
        settings=AppSettings(quote_cache_ttl_seconds=60),
        queue=RequestQueue(0, clock=clock),
        rng=random.Random(7),
        clock=clock,
        now=lambda: NOW,
        tracer=provider.get_tracer("tests"),
    )

    await gateway.get_quote("msft")
    await gateway.get_quote("MSFT")
    await gateway.get_historical_bars("MSFT", "W", 100, 200)

    spans = exporter.get_finished_spans()
    assert [span.name for span in spans] == ["market_data.quote", "market_data.bars"]
    assert spans[0].attributes["market.symbol"] == "MSFT"
    assert spans[0].attributes["market.data_source"] == "synthetic"
    assert spans[1].attributes["market.resolution"] == "W"
