"""
Per-sample pipeline.

Flow for one sample
-------------------
1. detect()                     → behaviors (never empty)
2. classifier.classify()        → one intent result per non-SMOOTH behavior
3. assess_risk()                → score + level + factors
4. decide_coaching()            → trigger
5. build_behavior_context()     → BehaviorContext
6. select_vehicle_event()       → VehicleEvent | None
7. router.route()               → sinks
8. LiveStats and Prometheus meters updated along the way

Samples are independent: the only shared state is LiveStats and the sinks.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from telesense.schemas.outputs import BehaviorContext, ProcessorOutputResponse, VehicleEvent
from telesense.schemas.telemetry import TelemetryEvent, decode_telemetry
from telesense.services.coaching import decide_coaching
from telesense.services.context_builder import build_behavior_context, select_vehicle_event
from telesense.services.detector import DetectedBehavior, DetectionThresholds, detect
from telesense.services.domain import MicroBehavior
from telesense.services.intent_classifier import IntentClassificationResult, IntentClassifier
from telesense.services.live_stats import LiveStats, RecentEvent
from telesense.services.metrics import PipelineMetrics
from telesense.services.risk import assess_risk, index_intents
from telesense.services.sinks import OutputRouter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessorOutput:
    vehicle_event: Optional[VehicleEvent]
    behavior_context: BehaviorContext

    def to_response(self) -> ProcessorOutputResponse:
        return ProcessorOutputResponse(
            vehicle_event=self.vehicle_event,
            behavior_context=self.behavior_context,
        )


@dataclass(frozen=True)
class ItemOutcome:
    """Result of one sample in handle_many(): either output or error is set."""
    index: int
    output: Optional[ProcessorOutput] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TelemetryProcessor:

    def __init__(
        self,
        classifier: IntentClassifier,
        stats: LiveStats,
        router: OutputRouter,
        thresholds: DetectionThresholds = DetectionThresholds(),
        model_version: str = "1.0.0",
        workers: int = 8,
        metrics: Optional[PipelineMetrics] = None,
    ):
        self.classifier = classifier
        self.stats = stats
        self.router = router
        self.thresholds = thresholds
        self.model_version = model_version
        self.metrics = metrics if metrics is not None else PipelineMetrics()
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="telemetry")

    # ------------------------------------------------------------------
    # Single sample
    # ------------------------------------------------------------------

    def process(self, sample: TelemetryEvent) -> ProcessorOutput:
        started = time.monotonic()
        self.stats.increment_events_received()
        self.metrics.events_received.inc()

        behaviors = detect(sample, self.thresholds)
        intents = self._classify_all(sample, behaviors)
        risk = assess_risk(behaviors, intents)
        trigger = decide_coaching(behaviors, risk.level)

        context = build_behavior_context(
            sample,
            behaviors,
            index_intents(intents),
            risk,
            trigger,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            model_version=self.model_version,
        )
        vehicle_event = select_vehicle_event(sample, behaviors, risk.score)

        self._record(sample, behaviors, intents, risk.score, vehicle_event)
        self.metrics.processing_duration.observe(time.monotonic() - started)
        return ProcessorOutput(vehicle_event, context)

    def handle(self, sample: TelemetryEvent) -> ProcessorOutput:
        output = self.process(sample)
        self.router.route(output.vehicle_event, output.behavior_context)
        self.metrics.behavior_contexts_emitted.inc()
        if output.vehicle_event is not None:
            self.metrics.vehicle_events_emitted.inc()
        return output

    def handle_message(self, raw: Union[bytes, str, dict[str, Any]]) -> ProcessorOutput:
        """Decode one transport record and handle it. Raises TelemetryDecodeError."""
        return self.handle(decode_telemetry(raw))

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def handle_many(self, samples: Iterable[TelemetryEvent]) -> list[ItemOutcome]:
        """Handle samples on the worker pool. Outcomes come back in input order."""
        futures = [self._pool.submit(self.handle, s) for s in samples]
        outcomes: list[ItemOutcome] = []
        for index, future in enumerate(futures):
            try:
                outcomes.append(ItemOutcome(index, output=future.result()))
            except Exception as exc:
                logger.warning("Batch item %d failed: %s", index, exc)
                outcomes.append(ItemOutcome(index, error=str(exc) or type(exc).__name__))
        return outcomes

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self.classifier.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _classify_all(
        self, sample: TelemetryEvent, behaviors: list[DetectedBehavior]
    ) -> list[IntentClassificationResult]:
        return [
            self.classifier.classify(sample, b.type)
            for b in behaviors
            if b.type is not MicroBehavior.SMOOTH_DRIVING
        ]

    def _record(
        self,
        sample: TelemetryEvent,
        behaviors: list[DetectedBehavior],
        intents: list[IntentClassificationResult],
        risk_score: float,
        vehicle_event: Optional[VehicleEvent],
    ) -> None:
        self.stats.increment_events_processed()
        self.metrics.events_processed.inc()
        self.stats.record_behaviors([b.type for b in behaviors])
        self.metrics.behaviors_detected.inc(len(behaviors))
        for result in intents:
            self.stats.record_classification(result.ai_classified, result.error is not None)
            if result.ai_classified:
                self.metrics.intents_classified.inc()

        self.stats.update_driver(sample.driver_id, behaviors[0].type, risk_score)

        if vehicle_event is None:
            return
        self.stats.increment_vehicle_events_emitted()
        self.stats.add_recent_event(RecentEvent(
            timestamp=datetime.now(timezone.utc),
            driver_id=sample.driver_id,
            vehicle_id=sample.vehicle_id,
            behavior_type=vehicle_event.event_type,
            severity=vehicle_event.severity,
            risk_score=risk_score,
            intent=intents[0].intent.value if intents else None,
        ))
        logger.info(
            "Vehicle event %s for driver %s (risk %.2f)",
            vehicle_event.event_type.value, sample.driver_id, risk_score,
        )
