"""External market-data providers."""

from .finnhub import FinnhubClient, FinnhubError

__all__ = ["FinnhubClient", "FinnhubError"]
