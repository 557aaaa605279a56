from __future__ import annotations


def test_health_reports_configuration(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["tick_timezone"] == "Asia/Jerusalem"
    assert body["volume_timezone"] == "America/New_York"
    assert body["uptime"] >= 0
    assert response.headers["X-Trace-Id"]


def test_trace_id_is_propagated(client):
    response = client.get("/health", headers={"X-Trace-Id": "trace-123"})
    assert response.headers["X-Trace-Id"] == "trace-123"


def test_metrics_expose_pipeline_activity(client, double_bottom_candles):
    client.get("/api/v1/signals", params={"symbol": "AAPL", "asOf": "2024-01-12T10:00:00Z"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert "pipeline_stage_duration_seconds_bucket" in text
    assert 'stage="scoring"' in text


def test_error_payload_carries_trace_id(client):
    response = client.get(
        "/api/v1/signals", params={"symbol": "AA PL"}, headers={"X-Trace-Id": "trace-err"}
    )
    assert response.status_code == 400
    assert response.json()["trace_id"] == "trace-err"
