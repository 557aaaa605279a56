"""Single-symbol analysis: candles to ranked signals.

``AnalysisPipeline.analyze`` chains the pure stages (detect, cluster, score,
filter) over candles already sliced to the request time. Each stage runs
inside :func:`log_stage` and its latency is recorded in the
``pipeline_stage_duration_seconds`` histogram.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Sequence

from loguru import logger

from pattern_signals.services.candles import Candle
from pattern_signals.services.confluence import cluster
from pattern_signals.services.metrics import metrics
from pattern_signals.services.patterns import PatternEngine
from pattern_signals.services.signals import (
    ScoringConfig,
    Signal,
    SignalScorer,
    age_in_minutes,
    filter_signals,
)
from pattern_signals.types import JSONDict
from pattern_signals.utils.logging import log_stage
from pattern_signals.utils.timezones import to_utc_datetime

DEFAULT_MIN_CANDLES = 10
DEFAULT_SIGNAL_LIMIT = 50
#: Fallback prices older than this many minutes carry a warning.
STALE_PRICE_MINUTES = 5


@dataclass(frozen=True)
class PriceContext:
    """Best known current price for a symbol.

    Attributes
    ----------
    current_price:
        Live quote when available, otherwise the close of the latest candle.
    price_is_realtime:
        ``True`` when ``current_price`` comes from a live quote.
    price_age_minutes:
        ``0`` for live quotes, otherwise whole minutes since the latest candle.
    price_warning:
        Human readable warning, only set when the fallback price is stale.
    """

    current_price: float | None
    price_is_realtime: bool
    price_age_minutes: int
    price_warning: str | None = None
    latest_candle_price: float | None = None
    latest_candle_time: int | None = None

    def to_payload(self) -> JSONDict:
        payload: JSONDict = {
            "currentPrice": self.current_price,
            "priceIsRealTime": self.price_is_realtime,
            "priceAgeMinutes": self.price_age_minutes,
            "latestCandlePrice": self.latest_candle_price,
            "latestCandleTime": (
                to_utc_datetime(self.latest_candle_time).isoformat().replace("+00:00", "Z")
                if self.latest_candle_time is not None
                else None
            ),
        }
        if self.price_warning:
            payload["priceWarning"] = self.price_warning
        return payload


@dataclass(frozen=True)
class SymbolAnalysis:
    """Outcome of analysing one symbol."""

    symbol: str
    interval_minutes: int
    signals: List[Signal] = field(default_factory=list)
    patterns_detected: int = 0
    candles_analyzed: int = 0
    message: str | None = None
    price: PriceContext | None = None

    @property
    def total_patterns(self) -> int:
        return len(self.signals)

    @property
    def top_quality(self) -> float:
        return max((signal.signal_quality for signal in self.signals), default=0.0)

    @property
    def has_confluence(self) -> bool:
        return any(signal.group.is_confluence for signal in self.signals)

    def to_payload(self) -> JSONDict:
        payload: JSONDict = {
            "symbol": self.symbol,
            "interval": self.interval_minutes,
            "totalPatterns": self.total_patterns,
            "topQuality": round(self.top_quality, 2),
            "hasConfluence": self.has_confluence,
            "patternsDetected": self.patterns_detected,
            "candlesAnalyzed": self.candles_analyzed,
            "signals": [signal.to_payload() for signal in self.signals],
        }
        if self.message:
            payload["message"] = self.message
        if self.price is not None:
            payload.update(self.price.to_payload())
        return payload


@contextmanager
def _timed_stage(stage: str) -> Iterator[None]:
    started = time.perf_counter()
    with log_stage(stage):
        yield
    metrics.observe_stage_duration(stage, time.perf_counter() - started)


class AnalysisPipeline:
    """Run detection, clustering, scoring and filtering for one symbol."""

    def __init__(
        self,
        engine: PatternEngine | None = None,
        scorer: SignalScorer | None = None,
        *,
        min_candles: int = DEFAULT_MIN_CANDLES,
    ) -> None:
        self.engine = engine or PatternEngine()
        self.scorer = scorer or SignalScorer()
        self.min_candles = min_candles

    def analyze(
        self,
        symbol: str,
        candles: Sequence[Candle],
        config: ScoringConfig,
        limit: int = DEFAULT_SIGNAL_LIMIT,
    ) -> SymbolAnalysis:
        """Return the ranked signals for ``symbol`` as of ``config.as_of``.

        Candles starting after ``as_of`` are ignored. Fewer than
        ``min_candles`` remaining candles produce an empty analysis carrying
        an explanatory message instead of an error.
        """
        cutoff = config.as_of.timestamp()
        window = [candle for candle in candles if candle.ts <= cutoff]
        if len(window) < self.min_candles:
            logger.bind(symbol=symbol, candles=len(window), required=self.min_candles).info(
                "analysis.insufficient_data"
            )
            return SymbolAnalysis(
                symbol=symbol,
                interval_minutes=config.interval_minutes,
                candles_analyzed=len(window),
                message=(
                    f"Insufficient data: {len(window)} candles available, "
                    f"at least {self.min_candles} required"
                ),
            )

        with _timed_stage("patterns"):
            matches = self.engine.scan(window, symbol)
        with _timed_stage("confluence"):
            groups = cluster(matches)
        with _timed_stage("scoring"):
            positions = {candle.ts: index for index, candle in enumerate(window)}
            scored: List[Signal] = []
            for group in groups:
                signal = self.scorer.score(group, window[: positions[group.ts] + 1], config)
                if signal is not None:
                    scored.append(signal)
        with _timed_stage("filtering"):
            kept = filter_signals(scored, config)
            kept.sort(key=lambda signal: (signal.ts, signal.signal_quality), reverse=True)
            kept = kept[: max(0, limit)]

        for signal in kept:
            metrics.increment_signal(signal.direction.value)
        logger.bind(
            symbol=symbol,
            candles=len(window),
            matches=len(matches),
            groups=len(groups),
            scored=len(scored),
            emitted=len(kept),
        ).info("analysis.completed")
        return SymbolAnalysis(
            symbol=symbol,
            interval_minutes=config.interval_minutes,
            signals=kept,
            patterns_detected=len(matches),
            candles_analyzed=len(window),
        )

    @staticmethod
    def build_price_context(
        symbol: str,
        latest_candle: Candle | None,
        as_of: datetime,
        realtime_price: float | None,
    ) -> PriceContext:
        """Prefer the live quote and fall back to the latest candle close."""
        latest_price = latest_candle.close if latest_candle is not None else None
        latest_time = latest_candle.ts if latest_candle is not None else None
        if realtime_price is not None and realtime_price > 0:
            return PriceContext(
                current_price=realtime_price,
                price_is_realtime=True,
                price_age_minutes=0,
                latest_candle_price=latest_price,
                latest_candle_time=latest_time,
            )
        if latest_candle is None:
            return PriceContext(
                current_price=None,
                price_is_realtime=False,
                price_age_minutes=0,
                price_warning=f"No price available for {symbol}",
            )
        age = age_in_minutes(latest_candle.ts, as_of)
        warning = None
        if age > STALE_PRICE_MINUTES:
            warning = f"Price is {age} minutes old (latest candle close); live quote unavailable"
            logger.bind(symbol=symbol, age_minutes=age).warning("price.stale")
        return PriceContext(
            current_price=latest_price,
            price_is_realtime=False,
            price_age_minutes=age,
            price_warning=warning,
            latest_candle_price=latest_price,
            latest_candle_time=latest_time,
        )


__all__ = [
    "DEFAULT_MIN_CANDLES",
    "STALE_PRICE_MINUTES",
    "PriceContext",
    "SymbolAnalysis",
    "AnalysisPipeline",
]
