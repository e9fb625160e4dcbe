"""
Process-wide service graph.

Built once in the app lifespan and stored on `app.state.runtime`; routers
reach it through the dependencies below. Tests build their own Runtime
with memory sinks and a fake reasoning transport.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request, WebSocket

from telesense.core.config import Settings
from telesense.services.broadcaster import ConnectionManager, StatsBroadcaster
from telesense.services.detector import DetectionThresholds
from telesense.services.intent_classifier import GateThresholds, IntentClassifier, ReasoningClient
from telesense.services.live_stats import LiveStats
from telesense.services.metrics import PipelineMetrics
from telesense.services.processor import TelemetryProcessor
from telesense.services.sinks import OutputRouter, OutputSink, make_sink

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    stats: LiveStats
    metrics: PipelineMetrics
    processor: TelemetryProcessor
    router: OutputRouter
    manager: ConnectionManager
    broadcaster: StatsBroadcaster

    def close(self) -> None:
        self.processor.close()


def build_runtime(
    settings: Settings,
    durable_sink: Optional[OutputSink] = None,
    coaching_sink: Optional[OutputSink] = None,
    reasoning_transport: Optional[httpx.BaseTransport] = None,
) -> Runtime:
    stats = LiveStats(recent_capacity=settings.RECENT_EVENTS_CAPACITY)
    metrics = PipelineMetrics()

    client = None
    if settings.INTENT_CLASSIFICATION_ENABLED:
        client = ReasoningClient(
            base_url=settings.REASONING_BASE_URL,
            model=settings.REASONING_MODEL,
            api_key=settings.REASONING_API_KEY,
            timeout=settings.REASONING_TIMEOUT_SECONDS,
            transport=reasoning_transport,
        )
    classifier = IntentClassifier(
        client,
        enabled=settings.INTENT_CLASSIFICATION_ENABLED,
        gate=GateThresholds.from_settings(settings),
        timeout=settings.REASONING_TIMEOUT_SECONDS,
        max_concurrency=settings.REASONING_MAX_CONCURRENCY,
    )

    router = OutputRouter(
        durable=durable_sink or make_sink(
            settings.SINK_BACKEND, "vehicle_events", settings.MEMORY_SINK_CAPACITY
        ),
        coaching=coaching_sink or make_sink(
            settings.SINK_BACKEND, "behavior_context", settings.MEMORY_SINK_CAPACITY
        ),
    )
    processor = TelemetryProcessor(
        classifier,
        stats,
        router,
        thresholds=DetectionThresholds.from_settings(settings),
        model_version=settings.MODEL_VERSION,
        workers=settings.PROCESSING_WORKERS,
        metrics=metrics,
    )

    manager = ConnectionManager(send_timeout=settings.BROADCAST_SEND_TIMEOUT_SECONDS)
    broadcaster = StatsBroadcaster(
        stats,
        manager,
        interval=settings.BROADCAST_INTERVAL_SECONDS,
        top_n=settings.TOP_RISK_DRIVERS,
    )
    logger.info(
        "Runtime ready: sinks=%s/%s workers=%d",
        router.durable.name, router.coaching.name, settings.PROCESSING_WORKERS,
    )
    return Runtime(settings, stats, metrics, processor, router, manager, broadcaster)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_processor(request: Request) -> TelemetryProcessor:
    return request.app.state.runtime.processor


def get_ws_runtime(websocket: WebSocket) -> Runtime:
    return websocket.app.state.runtime
