from __future__ import annotations

import contextvars
import json

import pytest
from loguru import logger

from pattern_signals.utils.logging import (
    get_request_context,
    log_stage,
    set_request_metadata,
    start_request_context,
)


@pytest.fixture()
def captured():
    records: list[str] = []
    sink_id = logger.add(records.append, serialize=True)
    yield records
    logger.remove(sink_id)


def _messages(records):
    return [json.loads(record)["record"] for record in records]


def test_log_stage_emits_completion_with_context(captured):
    def run() -> None:
        start_request_context()
        set_request_metadata(symbol="AAPL", interval=5)
        with log_stage("patterns"):
            pass

    contextvars.copy_context().run(run)

    records = [r for r in _messages(captured) if r["message"] == "stage.completed"]
    assert records
    extra = records[-1]["extra"]
    assert extra["stage"] == "patterns"
    assert extra["symbol"] == "AAPL"
    assert extra["interval"] == 5
    assert extra["latency_ms"] >= 0


def test_log_stage_logs_failure_and_reraises(captured):
    def run() -> None:
        start_request_context(symbol="MSFT")
        with log_stage("scoring"):
            raise ValueError("broken")

    with pytest.raises(ValueError):
        contextvars.copy_context().run(run)

    records = [r for r in _messages(captured) if r["message"] == "stage.failed"]
    assert records
    assert records[-1]["extra"]["symbol"] == "MSFT"


def test_log_stage_restores_previous_stage():
    def run() -> tuple:
        context = start_request_context()
        with log_stage("outer"):
            with log_stage("inner"):
                inner = context.stage
            outer = context.stage
        return inner, outer, context.stage

    assert contextvars.copy_context().run(run) == ("inner", "outer", None)


def test_start_request_context_isolated_per_copied_context():
    def worker(symbol: str) -> str | None:
        start_request_context(symbol=symbol, interval=1)
        return get_request_context().symbol

    assert contextvars.copy_context().run(worker, "AAA") == "AAA"
    assert contextvars.copy_context().run(worker, "BBB") == "BBB"
