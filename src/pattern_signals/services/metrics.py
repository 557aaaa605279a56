"""Prometheus collectors for the signal pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


@dataclass
class MetricsRegistry:
    """Container owning the Prometheus collectors exposed on ``/metrics``.

    * ``provider_errors_total`` counts market data failures per provider,
      source (exchange or store) and reason.
    * ``pipeline_stage_duration_seconds`` records the latency of each analysis
      stage (``candles``, ``patterns``, ``confluence``, ``scoring``...).
    * ``signals_emitted_total`` counts signals returned to callers by direction.
    * ``scan_symbols_total`` counts scanned symbols by outcome
      (``completed``, ``failed``, ``timed_out``).
    """

    registry: CollectorRegistry = field(init=False)
    provider_errors: Counter = field(init=False)
    stage_latency: Histogram = field(init=False)
    signals_emitted: Counter = field(init=False)
    scan_symbols: Counter = field(init=False)

    def __post_init__(self) -> None:
        self._initialise()

    def _initialise(self) -> None:
        """Instantiate collectors on a fresh private registry."""
        self.registry = CollectorRegistry()
        self.provider_errors = Counter(
            "provider_errors_total",
            "Number of market data provider errors grouped by provider, source and reason.",
            ("provider", "source", "reason"),
            registry=self.registry,
        )
        self.stage_latency = Histogram(
            "pipeline_stage_duration_seconds",
            "Observed duration of each analysis pipeline stage in seconds.",
            ("stage",),
            registry=self.registry,
            buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float("inf")),
        )
        self.signals_emitted = Counter(
            "signals_emitted_total",
            "Number of scored signals returned to callers grouped by direction.",
            ("direction",),
            registry=self.registry,
        )
        self.scan_symbols = Counter(
            "scan_symbols_total",
            "Number of symbols processed by the multi-symbol scanner grouped by outcome.",
            ("outcome",),
            registry=self.registry,
        )

    def reset(self) -> None:
        """Reset all collectors to an empty state (useful for deterministic tests)."""
        self._initialise()

    def record_provider_error(self, provider: str, source: str, reason: str) -> None:
        cleaned_reason = reason or "unknown"
        self.provider_errors.labels(provider=provider, source=source, reason=cleaned_reason).inc()

    def observe_stage_duration(self, stage: str, seconds: float) -> None:
        """Record how long a pipeline stage took in seconds (clamped to >= 0)."""
        self.stage_latency.labels(stage=stage).observe(max(0.0, float(seconds)))

    def increment_signal(self, direction: str) -> None:
        self.signals_emitted.labels(direction=direction).inc()

    def increment_scan_outcome(self, outcome: str, count: int = 1) -> None:
        if count > 0:
            self.scan_symbols.labels(outcome=outcome).inc(count)

    def render(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus exposition format."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Tests call ``metrics.reset()`` for a blank slate.
metrics: Final[MetricsRegistry] = MetricsRegistry()


__all__ = ["metrics", "MetricsRegistry"]
