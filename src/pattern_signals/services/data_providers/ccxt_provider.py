"""CCXT-backed implementation of the market data provider."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Tuple

import ccxt  # type: ignore[import-untyped]
import pandas as pd
from loguru import logger

from pattern_signals.config import settings
from pattern_signals.services.candles import Candle, frame_to_candles
from pattern_signals.services.data_providers.base import MarketDataProvider
from pattern_signals.services.metrics import metrics
from pattern_signals.utils.errors import ApiError, BadRequest, UpstreamError
from pattern_signals.utils.intervals import ccxt_timeframe, interval_seconds

if TYPE_CHECKING:

    class _ExchangeLike(Protocol):
        """Structural type describing the ccxt client used at runtime."""

        id: str

        def fetch_ohlcv(
            self,
            symbol: str,
            timeframe: str,
            since: Optional[int] = None,
            limit: Optional[int] = None,
            params: Optional[Dict[str, Any]] = None,
        ) -> list[list[float | int]]: ...

        def fetch_ticker(self, symbol: str) -> Dict[str, Any]: ...


KNOWN_QUOTES: tuple[str, ...] = ("USDT", "USD", "USDC", "BTC", "ETH", "EUR", "GBP")
"""Accepted quote assets used to detect compact symbol inputs."""

MAX_FETCH_LIMIT = 1000
MAX_RATE_LIMIT_RETRIES = 3

CacheKey = Tuple[str, str, int, Optional[int], Optional[int]]
"""Type alias describing how OHLC cache entries are indexed."""


@dataclass
class _CacheEntry:
    """In-memory representation of a cached OHLC response."""

    expires_at: float
    frame: pd.DataFrame


def normalize_symbol(symbol: str) -> str:
    """Return a CCXT-friendly pair formatted as ``BASE/QUOTE`` when possible.

    ``BTCUSDT`` becomes ``BTC/USDT``; symbols without a recognised quote suffix
    (equity tickers such as ``AAPL``) are returned upper-cased and unchanged.
    """
    cleaned = symbol.strip().upper()
    if not cleaned:
        raise BadRequest("Symbol cannot be empty")
    if "/" in cleaned:
        return cleaned
    for quote in KNOWN_QUOTES:
        if cleaned.endswith(quote) and len(cleaned) > len(quote):
            base = cleaned[: -len(quote)]
            return f"{base}/{quote}"
    return cleaned


class CcxtDataProvider(MarketDataProvider):
    """Fetch candles and tickers from exchanges using CCXT."""

    def __init__(self, exchange_id: Optional[str] = None) -> None:
        exchange_name = exchange_id or settings.exchange
        try:
            exchange_class = getattr(ccxt, exchange_name)
        except AttributeError as exc:
            raise UpstreamError(f"Unknown exchange '{exchange_name}'") from exc
        self.client: "_ExchangeLike" = exchange_class({"enableRateLimit": True})
        # Scans hit the same windows repeatedly; a small LRU keeps the exchange
        # out of the hot path for the single-process deployment.
        self._cache: "OrderedDict[CacheKey, _CacheEntry]" = OrderedDict()
        self._cache_lock = Lock()

    def _get_cached_frame(self, key: CacheKey) -> pd.DataFrame | None:
        """Return a cached DataFrame when the entry is still fresh."""
        ttl = settings.ohlc_cache_ttl_seconds
        if ttl <= 0:
            return None
        now = time.monotonic()
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.expires_at < now:
                del self._cache[key]
                return None
            self._cache.move_to_end(key, last=True)
            return entry.frame.copy(deep=True)

    def _store_in_cache(self, key: CacheKey, frame: pd.DataFrame) -> None:
        ttl = settings.ohlc_cache_ttl_seconds
        if ttl <= 0:
            return
        entry = _CacheEntry(expires_at=time.monotonic() + ttl, frame=frame.copy(deep=True))
        with self._cache_lock:
            self._cache[key] = entry
            self._cache.move_to_end(key, last=True)
            while len(self._cache) > settings.ohlc_cache_max_entries:
                # Evict the least recently used entry.
                self._cache.popitem(last=False)

    def get_ohlcv(
        self,
        symbol: str,
        interval_minutes: int,
        *,
        limit: int,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> pd.DataFrame:
        """Return OHLCV rows as a DataFrame with ``ts`` in UTC epoch seconds.

        Raises
        ------
        UpstreamError
            When the exchange keeps rate limiting, fails or returns nothing.
        """
        since_ms = start * 1000 if start else None
        timeframe_value = ccxt_timeframe(interval_minutes)
        normalized_symbol = normalize_symbol(symbol)
        cache_key: CacheKey = (normalized_symbol, timeframe_value, limit, since_ms, end)
        cached_frame = self._get_cached_frame(cache_key)
        if cached_frame is not None:
            return cached_frame
        attempts = 0
        while True:
            try:
                raw = self.client.fetch_ohlcv(
                    normalized_symbol,
                    timeframe_value,
                    since=since_ms,
                    limit=limit,
                    params={},
                )
                break
            except ccxt.RateLimitExceeded as exc:
                attempts += 1
                if attempts > MAX_RATE_LIMIT_RETRIES:
                    metrics.record_provider_error("ccxt", self.client.id, "rate_limit")
                    raise UpstreamError("Rate limit exceeded repeatedly") from exc
                time.sleep(1 * attempts)
            except ccxt.BaseError as exc:
                metrics.record_provider_error("ccxt", self.client.id, exc.__class__.__name__)
                raise UpstreamError(str(exc)) from exc
        if not raw:
            metrics.record_provider_error("ccxt", self.client.id, "empty_response")
            raise UpstreamError("Empty OHLCV response from exchange")
        frame = pd.DataFrame(raw, columns=["ts", "o", "h", "l", "c", "v"])
        frame["ts"] = frame["ts"].astype(int) // 1000
        if end:
            frame = frame[frame["ts"] <= end]
        frame = frame.sort_values("ts").reset_index(drop=True)
        self._store_in_cache(cache_key, frame)
        return frame

    def get_candles(
        self,
        symbol: str,
        interval_minutes: int,
        *,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Candle]:
        """Return candles for the window, or ``[]`` when the exchange fails."""
        step = interval_seconds(interval_minutes)
        if start is not None and end is not None and end >= start:
            limit = min(MAX_FETCH_LIMIT, (end - start) // step + 1)
        else:
            limit = min(MAX_FETCH_LIMIT, settings.lookback_hours * 3600 // step)
        try:
            frame = self.get_ohlcv(symbol, interval_minutes, limit=limit, start=start, end=end)
        except ApiError as exc:
            logger.bind(symbol=symbol, interval=interval_minutes, error=exc.message).warning(
                "provider.candles_unavailable"
            )
            return []
        candles = frame_to_candles(frame, interval_minutes)
        if start is not None:
            candles = [candle for candle in candles if candle.ts >= start]
        return candles

    def get_realtime_price(self, symbol: str) -> Optional[float]:
        """Return the last traded price from the exchange ticker."""
        try:
            ticker = self.client.fetch_ticker(normalize_symbol(symbol))
        except ccxt.BaseError as exc:
            metrics.record_provider_error("ccxt", self.client.id, exc.__class__.__name__)
            logger.bind(symbol=symbol, error=str(exc)).warning("provider.price_unavailable")
            return None
        last = ticker.get("last") if ticker else None
        if last is None:
            return None
        price = float(last)
        return price if price > 0 else None


__all__ = ["CcxtDataProvider", "normalize_symbol", "KNOWN_QUOTES"]
