"""Test fixtures for pattern_signals."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Tuple
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

os.environ.setdefault("API_TOKEN", "testingtoken")
os.environ.setdefault("PLAYWRIGHT", "true")
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")

from pattern_signals.app import create_app  # noqa: E402
from pattern_signals.services.candles import Candle, Tick, VolumeRecord  # noqa: E402
from pattern_signals.services.data_providers.base import MarketDataProvider  # noqa: E402
from pattern_signals.services.metrics import metrics  # noqa: E402
from pattern_signals.services.pipeline import AnalysisPipeline  # noqa: E402
from pattern_signals.services.scanner import SignalScanner  # noqa: E402

#: 2024-01-10 00:00 in Asia/Jerusalem (UTC+2, no DST transition nearby).
SCENARIO_START = int(datetime(2024, 1, 9, 22, 0, tzinfo=timezone.utc).timestamp())
SCENARIO_CANDLES = 3 * 24 * 12
PATTERN_START = 700
DOUBLE_BOTTOM_ANCHOR = PATTERN_START + 11

# (open, high, low, close) offsets from the baseline price at PATTERN_START.
_DOUBLE_BOTTOM_SHAPE: Tuple[Tuple[float, float, float, float], ...] = (
    (0.0, 0.02, -0.62, -0.6),
    (-0.6, -0.58, -1.22, -1.2),
    (-1.2, -1.18, -1.82, -1.8),
    (-1.8, -1.78, -2.42, -2.4),
    (-2.4, -2.38, -3.02, -3.0),
    (-3.0, -2.98, -3.62, -3.6),
    (-3.6, -3.58, -4.0, -3.9),  # first low
    (-3.9, -2.48, -3.92, -2.5),
    (-2.5, -1.0, -2.52, -1.2),  # neckline
    (-1.2, -1.18, -2.32, -2.3),
    (-2.3, -2.28, -3.42, -3.4),
    (-3.7, -3.28, -3.95, -3.3),  # second low, bullish
    (-3.3, -2.48, -3.32, -2.5),
    (-2.5, -1.68, -2.52, -1.7),
    (-1.7, -0.88, -1.72, -0.9),
    (-0.9, -0.08, -0.92, -0.1),
)


def _baseline_candle(ts: int, price: float, volume: float = 100.0) -> Candle:
    return Candle(
        ts=ts,
        open=price,
        high=price + 0.04,
        low=price - 0.02,
        close=price + 0.02,
        volume=volume,
        interval_minutes=5,
    )


def build_double_bottom_series() -> List[Candle]:
    """Three days of 5 minute candles with a single double bottom.

    Outside the pattern the lows rise strictly, so no other candle can print a
    fresh trailing low; the second low (``DOUBLE_BOTTOM_ANCHOR``) closes bullish
    within 0.05 of the first low, five candles later, under a neckline about
    2.9 % higher.
    """
    step = 300
    pivot = 100 + 0.01 * PATTERN_START
    resume = PATTERN_START + len(_DOUBLE_BOTTOM_SHAPE)
    candles: List[Candle] = []
    for k in range(SCENARIO_CANDLES):
        ts = SCENARIO_START + k * step
        if k < PATTERN_START:
            candles.append(_baseline_candle(ts, 100 + 0.01 * k))
        elif k < resume:
            o, h, lo, c = _DOUBLE_BOTTOM_SHAPE[k - PATTERN_START]
            volume = 200.0 if k == DOUBLE_BOTTOM_ANCHOR else 100.0
            candles.append(
                Candle(
                    ts=ts,
                    open=pivot + o,
                    high=pivot + h,
                    low=pivot + lo,
                    close=pivot + c,
                    volume=volume,
                    interval_minutes=5,
                )
            )
        else:
            candles.append(_baseline_candle(ts, pivot + 0.01 * (k - resume)))
    return candles


def candles_to_ticks(
    candles: Iterable[Candle],
    tick_zone: str = "Asia/Jerusalem",
    volume_zone: str = "America/New_York",
) -> Tuple[List[Tick], List[VolumeRecord]]:
    """Render candles as one-minute ticks and zone-encoded volume records."""
    ticks: List[Tick] = []
    volumes: List[VolumeRecord] = []
    tick_tz = ZoneInfo(tick_zone)
    volume_tz = ZoneInfo(volume_zone)
    for candle in candles:
        prices = (candle.open, candle.high, candle.low, (candle.open + candle.close) / 2, candle.close)
        for minute, price in enumerate(prices):
            local = datetime.fromtimestamp(candle.ts + minute * 60, tz=tick_tz)
            ticks.append(Tick(timestamp_local=local.strftime("%Y-%m-%d %H:%M:%S"), price=price))
        wall = datetime.fromtimestamp(candle.ts, tz=volume_tz).replace(tzinfo=timezone.utc)
        volumes.append(VolumeRecord(interval_start_epoch=int(wall.timestamp()), volume=candle.volume))
    return ticks, volumes


class FakeProvider(MarketDataProvider):
    """Deterministic provider serving canned candles per symbol."""

    def __init__(
        self,
        candles: Dict[str, List[Candle]] | None = None,
        prices: Dict[str, float] | None = None,
    ) -> None:
        self.candles = candles or {}
        self.prices = prices or {}
        self.calls: List[Tuple[str, int, int | None, int | None]] = []

    def get_candles(
        self,
        symbol: str,
        interval_minutes: int,
        *,
        start: int | None = None,
        end: int | None = None,
    ) -> List[Candle]:
        self.calls.append((symbol, interval_minutes, start, end))
        return [
            candle
            for candle in self.candles.get(symbol, [])
            if (start is None or candle.ts >= start) and (end is None or candle.ts <= end)
        ]

    def get_realtime_price(self, symbol: str) -> float | None:
        return self.prices.get(symbol)


@pytest.fixture(scope="session")
def double_bottom_candles() -> List[Candle]:
    return build_double_bottom_series()


@pytest.fixture()
def fake_provider(double_bottom_candles: List[Candle]) -> FakeProvider:
    return FakeProvider(
        candles={"AAPL": double_bottom_candles},
        prices={"AAPL": 108.5},
    )


@pytest.fixture()
def test_app(fake_provider: FakeProvider):
    metrics.reset()
    app = create_app()
    pipeline = AnalysisPipeline()
    app.state.provider = fake_provider
    app.state.pipeline = pipeline
    app.state.scanner = SignalScanner(fake_provider, pipeline, timeout_seconds=10.0)
    return app


@pytest.fixture()
def client(test_app):
    with TestClient(test_app) as client:
        client.headers.update({"Authorization": "Bearer testingtoken"})
        yield client


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"
