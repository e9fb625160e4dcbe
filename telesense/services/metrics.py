"""
Prometheus meters for the telemetry pipeline, exposed at GET /metrics.

Each PipelineMetrics owns its CollectorRegistry so several runtimes (one per
test) can coexist in a process without duplicate-registration errors.
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class PipelineMetrics:

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.events_received = Counter(
            "sense_events_received_total",
            "Telemetry samples received",
            registry=self.registry,
        )
        self.events_processed = Counter(
            "sense_events_processed_total",
            "Telemetry samples processed",
            registry=self.registry,
        )
        self.behaviors_detected = Counter(
            "sense_behaviors_detected_total",
            "Behaviors detected across all samples",
            registry=self.registry,
        )
        self.vehicle_events_emitted = Counter(
            "sense_vehicle_events_emitted_total",
            "Vehicle events emitted to the durable sink",
            registry=self.registry,
        )
        self.behavior_contexts_emitted = Counter(
            "sense_behavior_contexts_emitted_total",
            "Behavior contexts emitted to the coaching sink",
            registry=self.registry,
        )
        self.intents_classified = Counter(
            "sense_intents_classified_total",
            "Intents classified by the reasoning service",
            registry=self.registry,
        )
        self.processing_duration = Histogram(
            "sense_processing_duration_seconds",
            "Time to process one telemetry sample",
            registry=self.registry,
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

    def render(self) -> bytes:
        return generate_latest(self.registry)
