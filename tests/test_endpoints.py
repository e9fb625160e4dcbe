"""
Integration tests for the HTTP and WebSocket surface.
"""
import time

from conftest import ACCIDENT, HARSH_BRAKING, NORMAL, SPEEDING, make_payload
from fastapi.testclient import TestClient

from telesense.core.runtime import build_runtime
from telesense.main import app


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["seconds_since_last_processed"] >= 0

    def test_stale_pipeline_is_503(self, client):
        client.app.state.runtime.stats.last_processed_at = time.monotonic() - 10_000
        r = client.get("/health")
        assert r.status_code == 503
        assert r.json()["status"] == "stale"


class TestTelemetry:
    def test_normal_sample(self, client):
        r = client.post("/telemetry", json=make_payload(**NORMAL))
        assert r.status_code == 201
        body = r.json()
        assert body["vehicle_event"] is None
        ctx = body["behavior_context"]
        assert ctx["behaviors"][0]["type"] == "SMOOTH_DRIVING"
        assert ctx["risk_assessment"]["current_level"] == "LOW"
        assert ctx["coaching_trigger"]["trigger_type"] == "NONE"

    def test_harsh_braking_sample(self, client, durable_sink):
        r = client.post("/telemetry", json=make_payload(**HARSH_BRAKING))
        assert r.status_code == 201
        body = r.json()
        assert body["vehicle_event"]["event_type"] == "HARSH_BRAKING"
        assert body["vehicle_event"]["driver_id"] == "DRV-3001"
        assert len(durable_sink.records()) == 1

    def test_accident_sample(self, client):
        body = client.post("/telemetry", json=make_payload(**ACCIDENT)).json()
        assert body["vehicle_event"]["event_type"] == "POTENTIAL_ACCIDENT"
        assert body["vehicle_event"]["severity"] == "CRITICAL"
        assert body["behavior_context"]["risk_assessment"]["score"] > 0.5
        assert body["behavior_context"]["coaching_trigger"]["trigger_type"] == "IMMEDIATE"

    def test_empty_sample_is_valid(self, client):
        r = client.post("/telemetry", json={})
        assert r.status_code == 201
        assert r.json()["behavior_context"]["behaviors"][0]["type"] == "SMOOTH_DRIVING"

    def test_unknown_fields_ignored(self, client):
        r = client.post("/telemetry", json=make_payload(firmware="2.1.0", **SPEEDING))
        assert r.status_code == 201


class TestBatch:
    def test_all_succeed(self, client, coaching_sink):
        payload = {"items": [make_payload(**s) for s in (NORMAL, HARSH_BRAKING, SPEEDING, ACCIDENT)]}
        r = client.post("/telemetry/batch", json=payload)
        assert r.status_code == 207
        body = r.json()
        assert body["total"] == 4
        assert body["succeeded"] == 4
        assert body["failed"] == 0
        assert [i["index"] for i in body["items"]] == [0, 1, 2, 3]
        assert body["items"][3]["output"]["vehicle_event"]["event_type"] == "POTENTIAL_ACCIDENT"
        assert len(coaching_sink.records()) == 4

    def test_too_many_items(self, client):
        payload = {"items": [make_payload(**NORMAL)] * 11}
        r = client.post("/telemetry/batch", json=payload)
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "BATCH_TOO_LARGE"
        assert body["details"] == {"max_items": 10, "received": 11}

    def test_empty_batch(self, client):
        r = client.post("/telemetry/batch", json={"items": []})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestMetrics:
    def test_post_raises_counters(self, client):
        client.post("/telemetry", json=make_payload(**HARSH_BRAKING))
        r = client.get("/metrics")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/plain")
        assert "sense_events_received_total 1.0" in r.text
        assert "sense_vehicle_events_emitted_total 1.0" in r.text
        assert "sense_behavior_contexts_emitted_total 1.0" in r.text
        assert "sense_processing_duration_seconds_count 1.0" in r.text


class TestStats:
    def test_snapshot_reflects_processing(self, client):
        client.post("/telemetry", json=make_payload(**HARSH_BRAKING))
        client.post("/telemetry", json=make_payload(**SPEEDING))

        r = client.get("/api/stats")
        assert r.status_code == 200
        body = r.json()
        assert body["events_received"] == 2
        assert body["events_processed"] == 2
        assert body["harsh_braking_events"] == 1
        assert body["speeding_events"] == 1
        assert body["vehicle_events_emitted"] == 1
        assert body["recent_events"][0]["behavior_type"] == "HARSH_BRAKING"
        assert body["top_risk_drivers"][0]["driver_id"] == "DRV-3001"
        assert body["top_risk_drivers"][0]["event_count"] == 2

    def test_reset(self, client):
        client.post("/telemetry", json=make_payload(**ACCIDENT))
        r = client.post("/api/stats/reset")
        assert r.status_code == 200
        assert r.json() == {"status": "reset"}

        body = client.get("/api/stats").json()
        assert body["events_received"] == 0
        assert body["recent_events"] == []
        assert body["active_drivers"] == 0


class TestStatsStream:
    def test_snapshot_on_connect(self, client):
        client.post("/telemetry", json=make_payload(**ACCIDENT))
        with client.websocket_connect("/ws/stats") as ws:
            snapshot = ws.receive_json()
            assert snapshot["events_received"] == 1
            assert snapshot["potential_accidents"] == 1
            assert len(client.app.state.runtime.manager.connections) == 1

    def test_periodic_push(self, settings, durable_sink, coaching_sink):
        fast = settings.model_copy(update={"BROADCAST_INTERVAL_SECONDS": 0.05})
        app.state.runtime = build_runtime(fast, durable_sink=durable_sink, coaching_sink=coaching_sink)
        with TestClient(app) as c:
            with c.websocket_connect("/ws/stats") as ws:
                first = ws.receive_json()
                c.post("/telemetry", json=make_payload(**NORMAL))
                for _ in range(50):
                    pushed = ws.receive_json()
                    if pushed["events_received"] == 1:
                        break
        assert first["events_received"] == 0
        assert pushed["events_received"] == 1
