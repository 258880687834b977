"""Portfolio valuation history for a single-asset Sui wallet."""

__version__ = "0.1.0"
