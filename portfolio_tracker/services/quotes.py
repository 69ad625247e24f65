"""Quote gateway: cached, rate-limited market data with synthetic fallback."""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional

from opentelemetry import trace

from portfolio_tracker.config import DEFAULT_SECTOR, AppSettings, get_settings
from portfolio_tracker.core.telemetry import market_data_span, record_market_data_fallback
from portfolio_tracker.providers.finnhub import FinnhubClient
from portfolio_tracker.services.cache import TTLCache
from portfolio_tracker.services.request_queue import RequestQueue

logger = logging.getLogger(__name__)

COMMON_STOCK = "Common Stock"
SYNTHETIC_BAR_DAYS = 30
_DAY_SECONDS = 24 * 60 * 60

# Offline search universe used when the provider cannot be reached
MOCK_SYMBOLS: tuple[tuple[str, str], ...] = (
    ("AAPL", "Apple Inc."),
    ("MSFT", "Microsoft Corporation"),
    ("GOOGL", "Alphabet Inc."),
    ("AMZN", "Amazon.com Inc."),
    ("META", "Meta Platforms Inc."),
    ("TSLA", "Tesla Inc."),
    ("NVDA", "NVIDIA Corporation"),
    ("JPM", "JPMorgan Chase & Co."),
    ("V", "Visa Inc."),
    ("WMT", "Walmart Inc."),
)


class DataSource(str, enum.Enum):
    REAL = "real"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class Quote:
    symbol: str
    current_price: Decimal
    change: Decimal
    percent_change: Decimal
    high: Optional[Decimal]
    low: Optional[Decimal]
    open: Optional[Decimal]
    previous_close: Optional[Decimal]
    timestamp: datetime
    source: DataSource = DataSource.REAL

    @property
    def is_synthetic(self) -> bool:
        return self.source is DataSource.SYNTHETIC


@dataclass(frozen=True)
class SymbolMatch:
    symbol: str
    display_symbol: str
    description: str
    type: str
    source: DataSource = DataSource.REAL


@dataclass(frozen=True)
class Bars:
    symbol: str
    resolution: str
    timestamps: list[int] = field(default_factory=list)
    opens: list[float] = field(default_factory=list)
    highs: list[float] = field(default_factory=list)
    lows: list[float] = field(default_factory=list)
    closes: list[float] = field(default_factory=list)
    volumes: list[float] = field(default_factory=list)
    source: DataSource = DataSource.REAL


@dataclass(frozen=True)
class StockProfile:
    symbol: str
    name: str
    sector: str = DEFAULT_SECTOR
    logo_url: Optional[str] = None
    exchange: Optional[str] = None
    currency: Optional[str] = None
    source: DataSource = DataSource.REAL


def normalize_symbol(symbol: Any) -> str:
    return str(symbol or "").strip().upper()


def _dec(value: Any, places: int = 4) -> Decimal:
    return Decimal(str(round(float(value), places)))


def _optional_dec(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return _dec(value)


def symbol_hash(symbol: str) -> int:
    """Sum of character codes; stable across processes, unlike ``hash``."""

    return sum(ord(char) for char in symbol)


def synthetic_quote(symbol: str, rng: random.Random, now: datetime) -> Quote:
    """Deterministic baseline per symbol with a bounded random daily change."""

    base = 50 + symbol_hash(symbol) % 200
    change = rng.uniform(-5, 5)
    return Quote(
        symbol=symbol,
        current_price=Decimal(base),
        change=_dec(change),
        percent_change=_dec(change / base * 100),
        high=_dec(base + abs(change) + 2),
        low=_dec(base - abs(change) - 2),
        open=_dec(base - change / 2),
        previous_close=_dec(base - change),
        timestamp=now,
        source=DataSource.SYNTHETIC,
    )


def synthetic_bars(symbol: str, resolution: str, end: int, rng: random.Random, days: int = SYNTHETIC_BAR_DAYS) -> Bars:
    timestamps = [end - (days - index) * _DAY_SECONDS for index in range(days)]
    price = 150.0
    opens: list[float] = []
    highs: list[float] = []
    lows: list[float] = []
    closes: list[float] = []
    volumes: list[float] = []
    for _ in range(days):
        change = rng.uniform(-5, 5)
        price = max(price + change, 50.0)
        opens.append(round(price - change / 2, 4))
        closes.append(round(price, 4))
        highs.append(round(price + rng.random() * 5, 4))
        lows.append(round(price - rng.random() * 5, 4))
        volumes.append(float(rng.randint(1_000_000, 11_000_000)))
    return Bars(
        symbol=symbol,
        resolution=resolution,
        timestamps=timestamps,
        opens=opens,
        highs=highs,
        lows=lows,
        closes=closes,
        volumes=volumes,
        source=DataSource.SYNTHETIC,
    )


def _quote_from_payload(symbol: str, payload: dict[str, Any], now: datetime) -> Quote:
    raw_ts = payload.get("t")
    timestamp = datetime.fromtimestamp(raw_ts, tz=timezone.utc) if raw_ts else now
    return Quote(
        symbol=symbol,
        current_price=_dec(payload["c"]),
        change=_dec(payload.get("d") or 0),
        percent_change=_dec(payload.get("dp") or 0),
        high=_optional_dec(payload.get("h")),
        low=_optional_dec(payload.get("l")),
        open=_optional_dec(payload.get("o")),
        previous_close=_optional_dec(payload.get("pc")),
        timestamp=timestamp,
    )


def _bars_from_payload(symbol: str, resolution: str, payload: dict[str, Any]) -> Bars:
    return Bars(
        symbol=symbol,
        resolution=resolution,
        timestamps=[int(value) for value in payload["t"]],
        opens=[float(value) for value in payload["o"]],
        highs=[float(value) for value in payload["h"]],
        lows=[float(value) for value in payload["l"]],
        closes=[float(value) for value in payload["c"]],
        volumes=[float(value) for value in payload["v"]],
    )


def _mock_matches(term: str) -> list[SymbolMatch]:
    lowered = term.lower()
    return [
        SymbolMatch(
            symbol=symbol,
            display_symbol=symbol,
            description=name,
            type=COMMON_STOCK,
            source=DataSource.SYNTHETIC,
        )
        for symbol, name in MOCK_SYMBOLS
        if lowered in symbol.lower() or lowered in name.lower()
    ]


def rank_matches(matches: Iterable[SymbolMatch], term: str, limit: int) -> list[SymbolMatch]:
    """Keep common stocks matching ``term`` and put symbol-prefix hits first.

    Prefix hits are ordered by symbol length so the exact ticker leads;
    the remaining matches keep the provider's order.
    """

    lowered = term.lower()
    eligible = [
        match
        for match in matches
        if match.type == COMMON_STOCK
        and (lowered in match.symbol.lower() or lowered in match.description.lower())
    ]

    def _rank(match: SymbolMatch) -> tuple[int, int]:
        if match.symbol.lower().startswith(lowered):
            return (0, len(match.symbol))
        return (1, 0)

    return sorted(eligible, key=_rank)[:limit]


class QuoteGateway:
    """Process-wide market-data access point.

    Owns the quote/profile/search/bar caches and the single request queue that
    every outbound call goes through. Quote lookups never raise: failures and
    an unconfigured provider both yield synthetic data tagged as such.
    """

    def __init__(
        self,
        client: FinnhubClient | None = None,
        *,
        settings: AppSettings | None = None,
        queue: RequestQueue | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
        now: Callable[[], datetime] | None = None,
        tracer: trace.Tracer | None = None,
    ) -> None:
        settings = settings or get_settings()
        ttl = settings.quote_cache_ttl_seconds
        limit = settings.quote_cache_max_entries
        self._client = client
        self._ttl = ttl
        self._quotes: TTLCache[Quote] = TTLCache(ttl, clock, limit)
        self._profiles: TTLCache[StockProfile] = TTLCache(ttl, clock, limit)
        self._bars: TTLCache[Bars] = TTLCache(ttl, clock, limit)
        self._search: TTLCache[list[SymbolMatch]] = TTLCache(ttl, clock, limit)
        self._queue = queue or RequestQueue(settings.request_interval_seconds, clock=clock)
        self._batch_size = settings.quote_batch_size
        self._search_limit = settings.search_result_limit
        self._rng = rng or random.Random()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._tracer = tracer

    @property
    def configured(self) -> bool:
        return self._client is not None and self._client.configured

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def get_quote(self, symbol: str) -> Quote:
        key = normalize_symbol(symbol)
        cached = self._quotes.get(key)
        if cached is not None:
            return cached

        with market_data_span("quote", key, self._tracer) as span:
            quote: Quote | None = None
            if self.configured and key:
                try:
                    payload = await self._queue.submit(lambda: self._client.quote(key))
                    quote = _quote_from_payload(key, payload, self._now())
                except Exception as exc:  # noqa: BLE001 - quotes must always resolve
                    logger.warning("Quote fetch failed for %s, using synthetic quote: %s", key, exc)
                    record_market_data_fallback("quote", "provider_error")
            else:
                logger.info("Using synthetic quote for %s (provider not configured)", key or "<empty>")
                record_market_data_fallback("quote", "not_configured" if key else "blank_symbol")

            if quote is None:
                quote = synthetic_quote(key, self._rng, self._now())
            span.set_attribute("market.data_source", quote.source.value)
        self._quotes.set(key, quote)
        return quote

    async def get_quotes_batch(self, symbols: Iterable[str]) -> dict[str, Quote]:
        """Serve cached quotes first, then fetch the misses in small groups."""

        results: dict[str, Quote] = {}
        misses: list[str] = []
        for symbol in symbols:
            key = normalize_symbol(symbol)
            if not key or key in results or key in misses:
                continue
            cached = self._quotes.get(key)
            if cached is not None:
                results[key] = cached
            else:
                misses.append(key)

        for start in range(0, len(misses), self._batch_size):
            chunk = misses[start:start + self._batch_size]
            quotes = await asyncio.gather(*(self.get_quote(symbol) for symbol in chunk))
            results.update(zip(chunk, quotes))
        return results

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        term = (query or "").strip()
        if not term:
            return []
        cache_key = term.lower()
        cached = self._search.get(cache_key)
        if cached is not None:
            return list(cached)

        matches: list[SymbolMatch] | None = None
        if self.configured:
            try:
                raw = await self._queue.submit(lambda: self._client.search(term))
                matches = [
                    SymbolMatch(
                        symbol=str(item.get("symbol") or ""),
                        display_symbol=str(item.get("displaySymbol") or item.get("symbol") or ""),
                        description=str(item.get("description") or ""),
                        type=str(item.get("type") or ""),
                    )
                    for item in raw
                    if item.get("symbol")
                ]
            except Exception as exc:  # noqa: BLE001 - search falls back to the offline list
                logger.warning("Symbol search failed for %r, using offline list: %s", term, exc)
        if matches is None:
            matches = _mock_matches(term)

        ranked = rank_matches(matches, term, self._search_limit)
        self._search.set(cache_key, ranked)
        return list(ranked)

    async def get_historical_bars(
        self,
        symbol: str,
        resolution: str = "D",
        start: int | None = None,
        end: int | None = None,
    ) -> Bars | None:
        """Return OHLCV bars for ``[start, end]`` (epoch seconds), or ``None`` for an empty range."""

        key = normalize_symbol(symbol)
        now_ts = int(self._now().timestamp())
        if end is None:
            # Open-ended requests share one cache key per TTL window
            window = max(int(self._ttl), 1)
            end = now_ts - now_ts % window
        start = start if start is not None else end - SYNTHETIC_BAR_DAYS * _DAY_SECONDS
        if not key or start >= end:
            return None

        cache_key = (key, resolution, start, end)
        cached = self._bars.get(cache_key)
        if cached is not None:
            return cached

        with market_data_span("bars", key, self._tracer) as span:
            span.set_attribute("market.resolution", resolution)
            bars: Bars | None = None
            if self.configured:
                try:
                    payload = await self._queue.submit(lambda: self._client.candles(key, resolution, start, end))
                    bars = _bars_from_payload(key, resolution, payload)
                except Exception as exc:  # noqa: BLE001 - charts fall back to synthetic bars
                    logger.warning("Historical bars unavailable for %s, using synthetic bars: %s", key, exc)
            if bars is None:
                record_market_data_fallback("bars", "provider_error" if self.configured else "not_configured")
                bars = synthetic_bars(key, resolution, end, self._rng)
            span.set_attribute("market.data_source", bars.source.value)
        self._bars.set(cache_key, bars)
        return bars

    async def get_profile(self, symbol: str) -> StockProfile | None:
        """Company profile, or ``None`` when the provider has nothing usable."""

        key = normalize_symbol(symbol)
        if not key:
            return None
        cached = self._profiles.get(key)
        if cached is not None:
            return cached

        if not self.configured:
            profile = StockProfile(symbol=key, name=key, source=DataSource.SYNTHETIC)
            self._profiles.set(key, profile)
            return profile

        try:
            payload = await self._queue.submit(lambda: self._client.profile(key))
        except Exception as exc:  # noqa: BLE001 - caller decides how to treat a missing profile
            logger.warning("Profile lookup failed for %s: %s", key, exc)
            return None

        profile = StockProfile(
            symbol=key,
            name=str(payload["name"]),
            sector=str(payload.get("finnhubIndustry") or DEFAULT_SECTOR),
            logo_url=payload.get("logo") or None,
            exchange=payload.get("exchange") or None,
            currency=payload.get("currency") or None,
        )
        self._profiles.set(key, profile)
        return profile


@lru_cache(maxsize=1)
def get_quote_gateway() -> QuoteGateway:
    """Return the process-wide gateway, built once from settings."""

    settings = get_settings()
    client = FinnhubClient(settings.finnhub_api_key) if settings.finnhub_api_key else None
    if client is None:
        logger.info("FINNHUB_API_KEY not set; quotes will be synthesized")
    return QuoteGateway(client, settings=settings)


async def close_quote_gateway() -> None:
    """Close the shared gateway's HTTP client if one was ever built."""

    if get_quote_gateway.cache_info().currsize == 0:
        return
    gateway = get_quote_gateway()
    get_quote_gateway.cache_clear()
    await gateway.aclose()


__all__ = [
    "Bars",
    "COMMON_STOCK",
    "DataSource",
    "MOCK_SYMBOLS",
    "Quote",
    "QuoteGateway",
    "StockProfile",
    "SymbolMatch",
    "close_quote_gateway",
    "get_quote_gateway",
    "normalize_symbol",
    "rank_matches",
    "synthetic_quote",
]
