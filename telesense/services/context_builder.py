"""
Context builder: turns one sample's pipeline results into the two output
records.

select_vehicle_event()    → VehicleEvent | None
build_behavior_context()  → BehaviorContext (always)
"""
from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from telesense.schemas.outputs import (
    BehaviorContext,
    BehaviorOut,
    CoachingTriggerOut,
    ProcessingMetadata,
    RiskAssessmentOut,
    RiskFactorOut,
    TripContext,
    VehicleEvent,
)
from telesense.schemas.telemetry import TelemetryEvent
from telesense.services.coaching import CoachingTrigger
from telesense.services.detector import DetectedBehavior
from telesense.services.risk import IntentMap, RiskAssessment


def first_recordable(behaviors: list[DetectedBehavior]) -> Optional[DetectedBehavior]:
    """First behavior, in detection order, that belongs in the durable sink."""
    return next((b for b in behaviors if b.type.should_record_to_database), None)


def select_vehicle_event(
    sample: TelemetryEvent,
    behaviors: list[DetectedBehavior],
    risk_score: float,
) -> Optional[VehicleEvent]:
    winner = first_recordable(behaviors)
    if winner is None:
        return None
    return VehicleEvent(
        event_id=str(uuid.uuid4()),
        event_time=sample.event_time,
        policy_id=sample.policy_id,
        vehicle_id=sample.vehicle_id,
        vin=sample.vin,
        driver_id=sample.driver_id,
        event_type=winner.type,
        severity=winner.severity,
        confidence=winner.confidence,
        gps_latitude=sample.gps_latitude,
        gps_longitude=sample.gps_longitude,
        current_street=sample.current_street,
        speed_mph=sample.speed_mph,
        speed_limit_mph=sample.speed_limit_mph,
        g_force=sample.g_force,
        accelerometer_x=sample.accelerometer_x,
        accelerometer_y=sample.accelerometer_y,
        accelerometer_z=sample.accelerometer_z,
        gyroscope_x=sample.gyroscope_x,
        gyroscope_y=sample.gyroscope_y,
        gyroscope_z=sample.gyroscope_z,
        behavior_context=winner.type.description,
        risk_score=risk_score,
    )


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _behavior_to_out(b: DetectedBehavior, intents: IntentMap) -> BehaviorOut:
    result = intents.get(b.type)
    interpreted = result is not None and result.ai_classified
    return BehaviorOut(
        type=b.type,
        confidence=b.confidence,
        severity=b.severity,
        context=b.measurement.as_dict(),
        interpretation=result.intent.value if interpreted else None,
        interpretation_confidence=result.confidence if interpreted else 0.0,
    )


def _risk_to_out(risk: RiskAssessment) -> RiskAssessmentOut:
    return RiskAssessmentOut(
        current_level=risk.level,
        score=risk.score,
        trend=risk.trend,
        factors=[RiskFactorOut(factor=f.factor, weight=f.weight, score=f.score) for f in risk.factors],
    )


def _trigger_to_out(trigger: CoachingTrigger) -> CoachingTriggerOut:
    return CoachingTriggerOut(
        should_trigger=trigger.should_trigger,
        trigger_type=trigger.trigger_type,
        urgency=trigger.urgency,
        suggested_topic=trigger.suggested_topic,
        suggested_tone=trigger.suggested_tone,
    )


def build_behavior_context(
    sample: TelemetryEvent,
    behaviors: list[DetectedBehavior],
    intents: IntentMap,
    risk: RiskAssessment,
    trigger: CoachingTrigger,
    processing_time_ms: int,
    model_version: str,
) -> BehaviorContext:
    return BehaviorContext(
        context_id=str(uuid.uuid4()),
        timestamp=datetime.now(timezone.utc),
        driver_id=sample.driver_id,
        vehicle_id=sample.vehicle_id,
        policy_id=sample.policy_id,
        # No session tracking: every context gets a fresh id.
        session_id=str(uuid.uuid4()),
        behaviors=[_behavior_to_out(b, intents) for b in behaviors],
        trip_context=TripContext(behavior_counts=dict(Counter(b.type for b in behaviors))),
        risk_assessment=_risk_to_out(risk),
        coaching_trigger=_trigger_to_out(trigger),
        metadata=ProcessingMetadata(
            processing_time_ms=processing_time_ms,
            window_events=1,
            model_version=model_version,
        ),
    )
