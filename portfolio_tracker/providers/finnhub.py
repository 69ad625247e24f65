"""Finnhub REST client used by the quote gateway."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from portfolio_tracker.config import get_settings

logger = logging.getLogger(__name__)

_CANDLE_FIELDS = ("c", "h", "l", "o", "t", "v")


class FinnhubError(RuntimeError):
    """Raised when Finnhub cannot be reached or returns an unusable payload."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FinnhubClient:
    """Thin async wrapper over the Finnhub endpoints the service consumes.

    Every method either returns a validated payload or raises ``FinnhubError``;
    caching, throttling and fallbacks live in the quote gateway.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.finnhub_api_key
        self._base_url = (base_url or settings.finnhub_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.finnhub_timeout_seconds
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        if not self.configured:
            raise FinnhubError("Finnhub API key is not configured")

        query = dict(params)
        query["token"] = self._api_key
        url = f"{self._base_url}{path}"
        logger.debug("Finnhub GET %s %s", path, params)
        try:
            response = await self._client.get(url, params=query, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise FinnhubError(f"Finnhub request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise FinnhubError(f"Finnhub returned {response.status_code} for {path}")
        try:
            return response.json()
        except ValueError as exc:
            raise FinnhubError(f"Finnhub returned invalid JSON for {path}") from exc

    async def quote(self, symbol: str) -> dict[str, Any]:
        payload = await self._get("/quote", {"symbol": symbol})
        if not isinstance(payload, dict) or not _is_number(payload.get("c")):
            raise FinnhubError(f"Malformed quote payload for {symbol}")
        # Unknown symbols come back as all zeros with null change fields
        if payload["c"] <= 0:
            raise FinnhubError(f"No quote data for {symbol}")
        return payload

    async def search(self, query: str) -> list[dict[str, Any]]:
        payload = await self._get("/search", {"q": query})
        results = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise FinnhubError(f"Malformed search payload for {query!r}")
        return [item for item in results if isinstance(item, dict)]

    async def candles(self, symbol: str, resolution: str, start: int, end: int) -> dict[str, Any]:
        payload = await self._get(
            "/stock/candle",
            {"symbol": symbol, "resolution": resolution, "from": start, "to": end},
        )
        if not isinstance(payload, dict):
            raise FinnhubError(f"Malformed candle payload for {symbol}")
        status = payload.get("s")
        if status != "ok":
            raise FinnhubError(f"Candle status {status!r} for {symbol}")
        lengths = {len(payload.get(field) or []) for field in _CANDLE_FIELDS}
        if len(lengths) != 1:
            raise FinnhubError(f"Candle arrays for {symbol} have mismatched lengths")
        return payload

    async def profile(self, symbol: str) -> dict[str, Any]:
        payload = await self._get("/stock/profile2", {"symbol": symbol})
        if not isinstance(payload, dict) or not payload.get("name"):
            raise FinnhubError(f"No profile data for {symbol}")
        return payload


__all__ = ["FinnhubClient", "FinnhubError"]
