"""
Shared pytest fixtures.

The reasoning service is never contacted: the app-level runtime has intent
classification switched off, and classifier tests talk to an
httpx.MockTransport instead.
"""
import json
import os

os.environ.setdefault("INTENT_CLASSIFICATION_ENABLED", "false")
os.environ.setdefault("SINK_BACKEND", "memory")

import httpx
import pytest
from fastapi.testclient import TestClient

from telesense.core.config import Settings
from telesense.core.runtime import build_runtime
from telesense.main import app
from telesense.schemas.telemetry import TelemetryEvent
from telesense.services.sinks import MemorySink

# Reference samples for the four end-to-end scenarios.
NORMAL = dict(speed_mph=35.0, speed_limit_mph=35.0, g_force=0.2, accelerometer_y=0.0)
HARSH_BRAKING = dict(speed_mph=45.0, speed_limit_mph=45.0, g_force=0.6, accelerometer_x=-6.0)
SPEEDING = dict(speed_mph=75.0, speed_limit_mph=55.0, g_force=0.1)
ACCIDENT = dict(
    speed_mph=55.0,
    speed_limit_mph=55.0,
    g_force=8.5,
    accelerometer_x=-15.0,
    accelerometer_y=8.0,
    accelerometer_z=12.0,
    gyroscope_x=45.0,
    gyroscope_y=30.0,
    gyroscope_z=60.0,
)


def make_payload(**fields) -> dict:
    payload = {
        "policy_id": "POL-1001",
        "vehicle_id": "VEH-2001",
        "vin": "1HGCM82633A004352",
        "driver_id": "DRV-3001",
        "event_time": "2026-03-01T08:30:00Z",
        "current_street": "Main St",
        "gps_latitude": 40.7128,
        "gps_longitude": -74.0060,
    }
    payload.update(fields)
    return payload


@pytest.fixture()
def sample():
    """Factory: sample(**overrides) -> TelemetryEvent."""
    def _make(**fields) -> TelemetryEvent:
        return TelemetryEvent.model_validate(make_payload(**fields))
    return _make


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        INTENT_CLASSIFICATION_ENABLED=False,
        SINK_BACKEND="memory",
        PROCESSING_WORKERS=4,
        BATCH_MAX_ITEMS=10,
    )


@pytest.fixture()
def durable_sink():
    return MemorySink("vehicle_events")


@pytest.fixture()
def coaching_sink():
    return MemorySink("behavior_context")


@pytest.fixture()
def runtime(settings, durable_sink, coaching_sink):
    rt = build_runtime(settings, durable_sink=durable_sink, coaching_sink=coaching_sink)
    yield rt
    rt.close()


@pytest.fixture()
def processor(runtime):
    return runtime.processor


@pytest.fixture()
def client(settings, durable_sink, coaching_sink):
    app.state.runtime = build_runtime(
        settings, durable_sink=durable_sink, coaching_sink=coaching_sink
    )
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Fake reasoning service
# ---------------------------------------------------------------------------

def chat_completion(content) -> dict:
    if not isinstance(content, str):
        content = json.dumps(content)
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }


def reasoning_transport(content=None, status_code=200, handler=None) -> httpx.MockTransport:
    """MockTransport answering every chat-completion request with `content`."""
    if handler is None:
        def handler(request: httpx.Request) -> httpx.Response:
            if status_code != 200:
                return httpx.Response(status_code, json={"error": "boom"})
            return httpx.Response(200, json=chat_completion(content))
    return httpx.MockTransport(handler)
