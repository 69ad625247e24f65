"""Domain services: market data, ledger, valuation and analytics."""
