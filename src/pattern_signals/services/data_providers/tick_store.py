"""Provider aggregating raw ticks and volume records held in memory.

The upstream tick store pushes trades and per-interval volumes per symbol;
candles are rebuilt on demand with :func:`build_candles` so every interval is
served from the same raw data. Used in development (``PLAYWRIGHT`` mode) and
as the deterministic provider of the integration tests.
"""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from loguru import logger

from pattern_signals.services.candles import Candle, Tick, VolumeRecord, build_candles
from pattern_signals.services.data_providers.base import MarketDataProvider
from pattern_signals.services.metrics import metrics
from pattern_signals.utils.errors import ApiError


class TickStoreProvider(MarketDataProvider):
    """Serve candles built from ticks recorded per symbol."""

    def __init__(
        self,
        ticks: Mapping[str, Sequence[Tick]] | None = None,
        volumes: Mapping[str, Sequence[VolumeRecord]] | None = None,
        prices: Mapping[str, float] | None = None,
        *,
        tick_zone: str | None = None,
        volume_zone: str | None = None,
    ) -> None:
        self.tick_zone = tick_zone
        self.volume_zone = volume_zone
        self._ticks: Dict[str, List[Tick]] = defaultdict(list)
        self._volumes: Dict[str, List[VolumeRecord]] = defaultdict(list)
        self._prices: Dict[str, float] = {}
        self._lock = Lock()
        for symbol, symbol_ticks in (ticks or {}).items():
            self.add_ticks(symbol, symbol_ticks)
        for symbol, records in (volumes or {}).items():
            self.add_volumes(symbol, records)
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    @staticmethod
    def _key(symbol: str) -> str:
        return symbol.strip().upper()

    def add_ticks(self, symbol: str, ticks: Iterable[Tick]) -> None:
        with self._lock:
            self._ticks[self._key(symbol)].extend(ticks)

    def add_volumes(self, symbol: str, records: Iterable[VolumeRecord]) -> None:
        with self._lock:
            self._volumes[self._key(symbol)].extend(records)

    def set_price(self, symbol: str, price: float) -> None:
        with self._lock:
            self._prices[self._key(symbol)] = float(price)

    @property
    def symbols(self) -> List[str]:
        with self._lock:
            return sorted(key for key, ticks in self._ticks.items() if ticks)

    def get_candles(
        self,
        symbol: str,
        interval_minutes: int,
        *,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Candle]:
        key = self._key(symbol)
        with self._lock:
            ticks = list(self._ticks.get(key, ()))
            volumes = list(self._volumes.get(key, ()))
        if not ticks:
            logger.bind(symbol=key).info("provider.unknown_symbol")
            return []
        try:
            candles = build_candles(
                ticks,
                volumes,
                interval_minutes,
                tick_zone=self.tick_zone,
                volume_zone=self.volume_zone,
            )
        except ApiError as exc:
            metrics.record_provider_error("tick_store", key, exc.code)
            logger.bind(symbol=key, error=exc.message).warning("provider.candles_unavailable")
            return []
        return [
            candle
            for candle in candles
            if (start is None or candle.ts >= start) and (end is None or candle.ts <= end)
        ]

    def get_realtime_price(self, symbol: str) -> Optional[float]:
        with self._lock:
            return self._prices.get(self._key(symbol))


__all__ = ["TickStoreProvider"]
