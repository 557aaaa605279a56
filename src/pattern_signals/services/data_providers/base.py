"""Base interface for market data providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from pattern_signals.services.candles import Candle


class MarketDataProvider(ABC):
    """Abstract source of historical candles and live prices.

    Implementations never raise for an unknown symbol or a transient upstream
    failure: they log it, count it and return an empty list / ``None`` so one
    bad symbol cannot abort a multi-symbol scan.
    """

    @abstractmethod
    def get_candles(
        self,
        symbol: str,
        interval_minutes: int,
        *,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Candle]:
        """Return candles with ``start <= ts <= end`` sorted ascending."""

    @abstractmethod
    def get_realtime_price(self, symbol: str) -> Optional[float]:
        """Return the latest traded price or ``None`` when unavailable."""


__all__ = ["MarketDataProvider"]
