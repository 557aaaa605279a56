"""Tick aggregation, candlestick pattern detection and entry-signal scoring."""

__version__ = "0.1.0"

__all__ = ["__version__"]
