from __future__ import annotations

import types

import pytest

from pattern_signals.services.data_providers import ccxt_provider
from pattern_signals.services.data_providers.ccxt_provider import CcxtDataProvider, normalize_symbol
from pattern_signals.services.metrics import metrics
from pattern_signals.utils.errors import BadRequest, UpstreamError


class _BaseError(Exception):
    pass


class _RateLimitExceeded(_BaseError):
    pass


class _Exchange:
    id = "stub"

    def __init__(self, config):
        self.config = config
        self.ohlcv_calls: list[tuple] = []
        self.rows = [
            [1_700_000_300_000, 10.0, 11.0, 9.5, 10.5, 5.0],
            [1_700_000_000_000, 9.0, 10.0, 8.5, 9.5, 4.0],
        ]
        self.failures: list[Exception] = []
        self.ticker = {"last": 10.25}

    def fetch_ohlcv(self, symbol, timeframe, since=None, limit=None, params=None):
        self.ohlcv_calls.append((symbol, timeframe, since, limit))
        if self.failures:
            raise self.failures.pop(0)
        return self.rows

    def fetch_ticker(self, symbol):
        if isinstance(self.ticker, Exception):
            raise self.ticker
        return self.ticker


@pytest.fixture()
def stub_ccxt(monkeypatch):
    stub = types.SimpleNamespace(
        binance=_Exchange,
        RateLimitExceeded=_RateLimitExceeded,
        BaseError=_BaseError,
    )
    monkeypatch.setattr(ccxt_provider, "ccxt", stub)
    monkeypatch.setattr(ccxt_provider.time, "sleep", lambda _: None)
    monkeypatch.setattr(ccxt_provider.settings, "exchange", "binance")
    monkeypatch.setattr(ccxt_provider.settings, "ohlc_cache_ttl_seconds", 120)
    monkeypatch.setattr(ccxt_provider.settings, "ohlc_cache_max_entries", 2)
    metrics.reset()
    return stub


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("btcusdt", "BTC/USDT"), ("ETH/BTC", "ETH/BTC"), ("AAPL", "AAPL"), ("USDT", "USDT")],
)
def test_normalize_symbol(raw, expected):
    assert normalize_symbol(raw) == expected


def test_normalize_symbol_rejects_blank():
    with pytest.raises(BadRequest):
        normalize_symbol("  ")


def test_unknown_exchange(stub_ccxt, monkeypatch):
    with pytest.raises(UpstreamError):
        CcxtDataProvider("nope")


def test_get_candles_sorts_and_converts(stub_ccxt):
    provider = CcxtDataProvider()
    candles = provider.get_candles("BTCUSDT", 5, start=1_700_000_000, end=1_700_000_300)

    assert [candle.ts for candle in candles] == [1_700_000_000, 1_700_000_300]
    assert candles[1].close == 10.5
    symbol, timeframe, since, limit = provider.client.ohlcv_calls[0]
    assert (symbol, timeframe, since, limit) == ("BTC/USDT", "5m", 1_700_000_000_000, 2)


def test_responses_are_cached(stub_ccxt):
    provider = CcxtDataProvider()
    provider.get_candles("BTCUSDT", 5, start=1_700_000_000, end=1_700_000_300)
    provider.get_candles("BTCUSDT", 5, start=1_700_000_000, end=1_700_000_300)
    assert len(provider.client.ohlcv_calls) == 1


def test_cache_evicts_least_recently_used(stub_ccxt):
    provider = CcxtDataProvider()
    for symbol in ("AAA", "BBB", "CCC", "AAA"):
        provider.get_ohlcv(symbol, 5, limit=10)
    assert [call[0] for call in provider.client.ohlcv_calls] == ["AAA", "BBB", "CCC", "AAA"]


def test_rate_limit_retries_then_succeeds(stub_ccxt):
    provider = CcxtDataProvider()
    provider.client.failures = [_RateLimitExceeded("slow down"), _RateLimitExceeded("slow down")]
    frame = provider.get_ohlcv("BTCUSDT", 1, limit=2)
    assert len(frame) == 2
    assert len(provider.client.ohlcv_calls) == 3


def test_rate_limit_gives_up(stub_ccxt):
    provider = CcxtDataProvider()
    provider.client.failures = [_RateLimitExceeded("slow down")] * 4
    with pytest.raises(UpstreamError):
        provider.get_ohlcv("BTCUSDT", 1, limit=2)
    assert 'reason="rate_limit"' in metrics.render().decode()


def test_exchange_failure_degrades_to_empty(stub_ccxt):
    provider = CcxtDataProvider()
    provider.client.failures = [_BaseError("exchange down")]
    assert provider.get_candles("BTCUSDT", 5) == []
    assert 'reason="_BaseError"' in metrics.render().decode()


def test_empty_response_degrades_to_empty(stub_ccxt):
    provider = CcxtDataProvider()
    provider.client.rows = []
    assert provider.get_candles("BTCUSDT", 5) == []


def test_realtime_price(stub_ccxt):
    provider = CcxtDataProvider()
    assert provider.get_realtime_price("BTCUSDT") == 10.25
    provider.client.ticker = {"last": None}
    assert provider.get_realtime_price("BTCUSDT") is None
    provider.client.ticker = _BaseError("ticker down")
    assert provider.get_realtime_price("BTCUSDT") is None
