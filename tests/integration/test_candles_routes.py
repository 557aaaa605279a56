from __future__ import annotations

from datetime import datetime, timezone


def _utc(*fields: int) -> int:
    return int(datetime(*fields, tzinfo=timezone.utc).timestamp())


def test_build_candles(client):
    payload = {
        "ticks": [
            {"timestamp": "2024-01-10 16:30:00", "price": 50.0},
            {"timestamp": "2024-01-10 16:31:00", "price": 52.0},
            {"timestamp": "2024-01-10 16:33:00", "price": 49.0},
            {"timestamp": "2024-01-10 16:36:00", "price": 51.0},
        ],
        "volumes": [{"intervalStartEpoch": _utc(2024, 1, 10, 9, 30), "volume": 1200}],
        "interval": "5m",
    }
    response = client.post("/api/v1/candles/build", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["interval"] == 5
    assert body["count"] == 2
    first, second = body["candles"]
    assert first["ts"] == _utc(2024, 1, 10, 14, 30)
    assert first["timestamp"] == "2024-01-10T14:30:00Z"
    assert (first["open"], first["high"], first["low"], first["close"]) == (50.0, 52.0, 49.0, 49.0)
    assert first["volume"] == 1200.0
    assert second["volume"] == 0.0


def test_build_candles_with_timezone_override(client):
    payload = {
        "ticks": [{"timestamp": "2024-01-10 10:00:00", "price": 10.0}],
        "interval": 60,
        "tickTimezone": "UTC",
    }
    body = client.post("/api/v1/candles/build", json=payload).json()
    assert body["candles"][0]["ts"] == _utc(2024, 1, 10, 10, 0)


def test_build_candles_empty_ticks(client):
    response = client.post("/api/v1/candles/build", json={"ticks": []})
    assert response.status_code == 200
    assert response.json() == {"interval": 5, "count": 0, "candles": []}


def test_build_candles_rejects_bad_input(client):
    bad_time = client.post(
        "/api/v1/candles/build",
        json={"ticks": [{"timestamp": "2024/01/10 10:00:00", "price": 1.0}]},
    )
    assert bad_time.status_code == 400
    assert bad_time.json()["details"] == {"expected_format": "%Y-%m-%d %H:%M:%S"}

    bad_zone = client.post(
        "/api/v1/candles/build",
        json={"ticks": [{"timestamp": "2024-01-10 10:00:00", "price": 1.0}], "tickTimezone": "Mars/Base"},
    )
    assert bad_zone.status_code == 400

    bad_price = client.post(
        "/api/v1/candles/build",
        json={"ticks": [{"timestamp": "2024-01-10 10:00:00", "price": -1.0}]},
    )
    assert bad_price.status_code == 422
    assert bad_price.json()["error"]["code"] == "validation_error"
