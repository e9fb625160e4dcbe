"""
Output records fanned out by the pipeline.

VehicleEvent      → durable sink  (at most one per sample)
BehaviorContext   → coaching sink (exactly one per sample)

POST /telemetry returns both wrapped in ProcessorOutputResponse.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from telesense.services.domain import (
    MicroBehavior,
    RiskLevel,
    Severity,
    TriggerType,
    Urgency,
)


class VehicleEvent(BaseModel):
    """Denormalised snapshot of the sample plus the winning behavior."""
    model_config = ConfigDict(frozen=True)

    event_id: str
    event_time: Optional[datetime] = None
    policy_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    vin: Optional[str] = None
    driver_id: Optional[str] = None

    event_type: MicroBehavior
    severity: Severity
    confidence: float

    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    current_street: Optional[str] = None

    speed_mph: Optional[float] = None
    speed_limit_mph: Optional[float] = None
    g_force: Optional[float] = None

    accelerometer_x: Optional[float] = None
    accelerometer_y: Optional[float] = None
    accelerometer_z: Optional[float] = None
    gyroscope_x: Optional[float] = None
    gyroscope_y: Optional[float] = None
    gyroscope_z: Optional[float] = None

    behavior_context: str = Field(description="Human-readable behavior description.")
    risk_score: float


# ---------------------------------------------------------------------------
# BehaviorContext parts
# ---------------------------------------------------------------------------

class BehaviorOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: MicroBehavior
    confidence: float
    severity: Severity
    context: dict[str, Any] = Field(default_factory=dict)
    interpretation: Optional[str] = Field(
        default=None,
        description="Classified intent, present only when the reasoning service classified it.",
    )
    interpretation_confidence: float = 0.0


class TripContext(BaseModel):
    """Placeholder counts: session tracking is not implemented."""
    model_config = ConfigDict(frozen=True)

    trip_duration_minutes: int = 0
    distance_miles: float = 0.0
    behavior_counts: dict[MicroBehavior, int] = Field(default_factory=dict)


class RiskFactorOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor: str
    weight: float
    score: float


class RiskAssessmentOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_level: RiskLevel
    score: float
    trend: str = "STABLE"
    factors: list[RiskFactorOut] = Field(default_factory=list)


class CoachingTriggerOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    should_trigger: bool
    trigger_type: TriggerType
    urgency: Urgency
    suggested_topic: Optional[str] = None
    suggested_tone: Optional[str] = None


class ProcessingMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    processing_time_ms: int
    window_events: int = 1
    model_version: str


class BehaviorContext(BaseModel):
    """Full per-sample result for the coaching consumer."""
    model_config = ConfigDict(frozen=True)

    context_id: str
    timestamp: datetime
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    policy_id: Optional[str] = None
    session_id: str

    behaviors: list[BehaviorOut]
    trip_context: TripContext
    risk_assessment: RiskAssessmentOut
    coaching_trigger: CoachingTriggerOut
    metadata: ProcessingMetadata


class ProcessorOutputResponse(BaseModel):
    vehicle_event: Optional[VehicleEvent] = None
    behavior_context: BehaviorContext


class BatchItemResult(BaseModel):
    """Outcome for a single sample in a batch request."""
    index: int = Field(description="Zero-based position in the request items list.")
    ok: bool
    output: Optional[ProcessorOutputResponse] = Field(
        default=None,
        description="Populated when ok=True.",
    )
    error: Optional[str] = Field(default=None, description="Error message when ok=False.")


class BatchProcessResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    items: list[BatchItemResult]
