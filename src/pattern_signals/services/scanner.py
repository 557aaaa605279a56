"""Concurrent multi-symbol scanning.

Each symbol is analysed on a bounded :class:`ThreadPoolExecutor`; the event
loop awaits all of them against a single deadline. Symbols still running when
the deadline expires are abandoned (their threads finish in the background
and the results are discarded) and reported under ``timed_out``. A symbol
whose analysis raises is logged, counted and reported under ``failed``; the
remaining symbols are unaffected.
"""

from __future__ import annotations

import asyncio
import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Sequence

from loguru import logger

from pattern_signals.services.data_providers.base import MarketDataProvider
from pattern_signals.services.metrics import metrics
from pattern_signals.services.pipeline import DEFAULT_SIGNAL_LIMIT, AnalysisPipeline, SymbolAnalysis
from pattern_signals.services.signals import ScoringConfig
from pattern_signals.types import JSONDict
from pattern_signals.utils.logging import start_request_context

DEFAULT_MAX_WORKERS = 5
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_LOOKBACK_HOURS = 72


@dataclass(frozen=True)
class ScanResult:
    """Aggregated outcome of a multi-symbol scan.

    Attributes
    ----------
    results:
        Analyses of the symbols that completed, in request order.
    timed_out:
        Symbols abandoned at the deadline.
    failed:
        Symbols whose analysis raised.
    processing_time_ms:
        Wall-clock duration of the whole scan.
    """

    results: List[SymbolAnalysis] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def scanned_symbols(self) -> int:
        return len(self.results)

    @property
    def patterns_found(self) -> int:
        return sum(analysis.total_patterns for analysis in self.results)

    def to_payload(self) -> JSONDict:
        return {
            "scannedSymbols": self.scanned_symbols,
            "patternsFound": self.patterns_found,
            "processingTimeMs": round(self.processing_time_ms, 2),
            "timedOut": list(self.timed_out),
            "failed": list(self.failed),
            "results": [analysis.to_payload() for analysis in self.results],
        }


class SignalScanner:
    """Fetch market data and run the analysis pipeline for many symbols."""

    def __init__(
        self,
        provider: MarketDataProvider,
        pipeline: AnalysisPipeline | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
    ) -> None:
        self.provider = provider
        self.pipeline = pipeline or AnalysisPipeline()
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds
        self.lookback_hours = lookback_hours

    def analyze_symbol(
        self, symbol: str, config: ScoringConfig, limit: int = DEFAULT_SIGNAL_LIMIT
    ) -> SymbolAnalysis:
        """Analyse one symbol with candles up to ``config.as_of``."""
        end = int(config.as_of.timestamp())
        start = end - self.lookback_hours * 3600
        candles = self.provider.get_candles(symbol, config.interval_minutes, start=start, end=end)
        analysis = self.pipeline.analyze(symbol, candles, config, limit)
        realtime_price = self.provider.get_realtime_price(symbol)
        price = self.pipeline.build_price_context(
            symbol, candles[-1] if candles else None, config.as_of, realtime_price
        )
        return replace(analysis, price=price)

    def _analyze_in_worker(self, symbol: str, config: ScoringConfig, limit: int) -> SymbolAnalysis:
        start_request_context(symbol=symbol, interval=config.interval_minutes)
        return self.analyze_symbol(symbol, config, limit)

    async def scan(
        self,
        symbols: Sequence[str],
        config: ScoringConfig,
        limit: int = DEFAULT_SIGNAL_LIMIT,
    ) -> ScanResult:
        """Analyse ``symbols`` concurrently within ``timeout_seconds``."""
        started = time.perf_counter()
        unique = list(dict.fromkeys(symbol.strip().upper() for symbol in symbols if symbol.strip()))
        if not unique:
            return ScanResult()

        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="signal-scan")
        tasks: Dict[str, asyncio.Future[SymbolAnalysis]] = {}
        try:
            for symbol in unique:
                context = contextvars.copy_context()
                tasks[symbol] = loop.run_in_executor(
                    executor, context.run, self._analyze_in_worker, symbol, config, limit
                )
            _, pending = await asyncio.wait(tasks.values(), timeout=self.timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        for future in pending:
            future.cancel()

        results: List[SymbolAnalysis] = []
        timed_out: List[str] = []
        failed: List[str] = []
        for symbol, future in tasks.items():
            if future in pending:
                timed_out.append(symbol)
                continue
            error = future.exception()
            if error is not None:
                failed.append(symbol)
                logger.bind(symbol=symbol, error=str(error)).opt(exception=error).warning(
                    "scan.symbol_failed"
                )
                continue
            results.append(future.result())

        metrics.increment_scan_outcome("completed", len(results))
        metrics.increment_scan_outcome("failed", len(failed))
        metrics.increment_scan_outcome("timed_out", len(timed_out))
        result = ScanResult(
            results=results,
            timed_out=timed_out,
            failed=failed,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )
        logger.bind(
            requested=len(unique),
            scanned=result.scanned_symbols,
            timed_out=len(timed_out),
            failed=len(failed),
            patterns=result.patterns_found,
            latency_ms=result.processing_time_ms,
        ).info("scan.completed")
        return result


__all__ = ["ScanResult", "SignalScanner"]
