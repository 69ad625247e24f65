"""Per-user watchlist with quote enrichment and price alerts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.models import WatchlistItem
from portfolio_tracker.services.ledger import LedgerError, LedgerStore, StockNotFoundError
from portfolio_tracker.services.quotes import Quote, QuoteGateway, normalize_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchlistEntry:
    id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    category: Optional[str]
    price_alert_high: Optional[Decimal]
    price_alert_low: Optional[Decimal]
    current_price: Optional[Decimal] = None
    change: Optional[Decimal] = None
    percent_change: Optional[Decimal] = None
    quote_source: Optional[str] = None
    alert_high_triggered: bool = False
    alert_low_triggered: bool = False


def _entry(item: WatchlistItem, quote: Quote | None) -> WatchlistEntry:
    high = Decimal(item.price_alert_high) if item.price_alert_high is not None else None
    low = Decimal(item.price_alert_low) if item.price_alert_low is not None else None
    price = quote.current_price if quote is not None else None
    return WatchlistEntry(
        id=item.id,
        stock_id=item.stock_id,
        symbol=item.stock.symbol,
        name=item.stock.name,
        sector=item.stock.sector,
        category=item.category,
        price_alert_high=high,
        price_alert_low=low,
        current_price=price,
        change=quote.change if quote is not None else None,
        percent_change=quote.percent_change if quote is not None else None,
        quote_source=quote.source.value if quote is not None else None,
        alert_high_triggered=price is not None and high is not None and price >= high,
        alert_low_triggered=price is not None and low is not None and price <= low,
    )


class WatchlistService:
    def __init__(self, session: AsyncSession, gateway: QuoteGateway, user_id: str) -> None:
        self._session = session
        self._gateway = gateway
        self._ledger = LedgerStore(session, user_id)
        self.user_id = user_id

    async def _rows(self) -> list[WatchlistItem]:
        result = await self._session.execute(
            select(WatchlistItem)
            .where(WatchlistItem.user_id == self.user_id)
            .order_by(WatchlistItem.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_entries(self) -> list[WatchlistEntry]:
        rows = await self._rows()
        quotes = await self._gateway.get_quotes_batch(row.stock.symbol for row in rows)
        return [_entry(row, quotes.get(normalize_symbol(row.stock.symbol))) for row in rows]

    async def add(
        self,
        symbol: str,
        *,
        category: str | None = None,
        price_alert_high: Decimal | None = None,
        price_alert_low: Decimal | None = None,
    ) -> WatchlistEntry:
        key = normalize_symbol(symbol)
        if not key:
            raise LedgerError("Symbol must not be empty")
        stock = await self._ledger.find_stock(key)
        if stock is None:
            profile = await self._gateway.get_profile(key)
            if profile is None:
                raise StockNotFoundError(f"No stock reference or profile for {key}")
            stock = await self._ledger.create_stock(
                key, profile.name, sector=profile.sector, logo_url=profile.logo_url
            )

        result = await self._session.execute(
            select(WatchlistItem).where(
                WatchlistItem.user_id == self.user_id,
                WatchlistItem.stock_id == stock.id,
            )
        )
        item = result.scalars().first()
        if item is None:
            item = WatchlistItem(user_id=self.user_id, stock_id=stock.id)
            self._session.add(item)
        item.category = category
        item.price_alert_high = price_alert_high
        item.price_alert_low = price_alert_low
        await self._session.commit()

        reloaded = await self._session.execute(
            select(WatchlistItem)
            .where(WatchlistItem.id == item.id)
            .execution_options(populate_existing=True)
        )
        row = reloaded.scalars().one()
        quote = await self._gateway.get_quote(key)
        logger.info("User %s is watching %s", self.user_id, key)
        return _entry(row, quote)

    async def remove(self, item_id: str) -> bool:
        result = await self._session.execute(
            delete(WatchlistItem).where(WatchlistItem.id == item_id, WatchlistItem.user_id == self.user_id)
        )
        await self._session.commit()
        return bool(result.rowcount)


__all__ = ["WatchlistEntry", "WatchlistService"]
