"""Portfolio tracking service: quotes, valuation, profit/loss and history."""

__version__ = "0.1.0"
