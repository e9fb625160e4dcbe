"""
Behavior detector: sample → ordered list of detected micro-behaviors.

Rules (DETECTION_RULES, evaluated in this order)
------------------------------------------------
  1. IMPACT
     g_force > accident threshold (5.0)      → POTENTIAL_ACCIDENT 0.95 CRITICAL
     else g_force > harsh-braking (0.4)      → HARSH_BRAKING      0.85 MODERATE
  2. SPEEDING
     speed > limit + tolerance (5 mph)       → SPEEDING           0.90
     severity HIGH if excess > 15, MODERATE if > 10, else LOW
  3. CORNERING
     |accelerometer_y| > cornering (0.3 g)   → AGGRESSIVE_CORNERING 0.80 MODERATE

Rule groups are independent of each other; only the two branches of the
impact rule exclude one another. When no rule fires the result is
[SMOOTH_DRIVING 0.75 LOW], so the list is never empty.

Pure: no I/O, no shared state, deterministic for a given sample.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from telesense.schemas.telemetry import TelemetryEvent
from telesense.services.domain import MicroBehavior, Severity


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DetectionThresholds:
    accident_g_force: float = 5.0
    harsh_braking_g_force: float = 0.4
    speeding_tolerance_mph: float = 5.0
    cornering_lateral_g: float = 0.3

    @classmethod
    def from_settings(cls, settings) -> "DetectionThresholds":
        return cls(
            accident_g_force=settings.ACCIDENT_G_FORCE_THRESHOLD,
            harsh_braking_g_force=settings.HARSH_BRAKING_G_FORCE_THRESHOLD,
            speeding_tolerance_mph=settings.SPEEDING_TOLERANCE_MPH,
            cornering_lateral_g=settings.CORNERING_LATERAL_G_THRESHOLD,
        )


# ---------------------------------------------------------------------------
# Measurements, one shape per rule
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImpactMeasurement:
    g_force: float
    threshold: float
    kind: str = field(default="impact", init=False)

    def as_dict(self) -> dict[str, Any]:
        return {"g_force": self.g_force, "threshold": self.threshold}


@dataclass(frozen=True)
class SpeedMeasurement:
    speed_mph: float
    limit_mph: float
    excess_mph: float
    kind: str = field(default="speed", init=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "speed_mph": self.speed_mph,
            "limit_mph": self.limit_mph,
            "excess_mph": self.excess_mph,
        }


@dataclass(frozen=True)
class LateralMeasurement:
    lateral_g: float
    kind: str = field(default="lateral", init=False)

    def as_dict(self) -> dict[str, Any]:
        return {"lateral_g": self.lateral_g}


@dataclass(frozen=True)
class NoMeasurement:
    kind: str = field(default="none", init=False)

    def as_dict(self) -> dict[str, Any]:
        return {}


Measurement = Union[ImpactMeasurement, SpeedMeasurement, LateralMeasurement, NoMeasurement]


@dataclass(frozen=True)
class DetectedBehavior:
    type: MicroBehavior
    confidence: float
    severity: Severity
    measurement: Measurement = field(default_factory=NoMeasurement)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _rule_impact(sample: TelemetryEvent, t: DetectionThresholds) -> Optional[DetectedBehavior]:
    if sample.is_potential_accident(t.accident_g_force):
        return DetectedBehavior(
            MicroBehavior.POTENTIAL_ACCIDENT, 0.95, Severity.CRITICAL,
            ImpactMeasurement(g_force=sample.g_force, threshold=t.accident_g_force),
        )
    if sample.g_force is not None and sample.g_force > t.harsh_braking_g_force:
        return DetectedBehavior(
            MicroBehavior.HARSH_BRAKING, 0.85, Severity.MODERATE,
            ImpactMeasurement(g_force=sample.g_force, threshold=t.harsh_braking_g_force),
        )
    return None


def _speeding_severity(excess: float) -> Severity:
    if excess > 15:
        return Severity.HIGH
    if excess > 10:
        return Severity.MODERATE
    return Severity.LOW


def _rule_speeding(sample: TelemetryEvent, t: DetectionThresholds) -> Optional[DetectedBehavior]:
    if not sample.is_speeding(t.speeding_tolerance_mph):
        return None
    excess = sample.speed_excess
    return DetectedBehavior(
        MicroBehavior.SPEEDING, 0.90, _speeding_severity(excess),
        SpeedMeasurement(
            speed_mph=sample.speed_mph,
            limit_mph=sample.speed_limit_mph,
            excess_mph=excess,
        ),
    )


def _rule_cornering(sample: TelemetryEvent, t: DetectionThresholds) -> Optional[DetectedBehavior]:
    lateral = sample.lateral_g
    if lateral is None or lateral <= t.cornering_lateral_g:
        return None
    return DetectedBehavior(
        MicroBehavior.AGGRESSIVE_CORNERING, 0.80, Severity.MODERATE,
        LateralMeasurement(lateral_g=lateral),
    )


Rule = Callable[[TelemetryEvent, DetectionThresholds], Optional[DetectedBehavior]]

# Evaluation order is part of the contract: the vehicle event is the first
# recordable behavior in this order.
DETECTION_RULES: tuple[tuple[str, Rule], ...] = (
    ("impact", _rule_impact),
    ("speeding", _rule_speeding),
    ("cornering", _rule_cornering),
)

_SMOOTH = DetectedBehavior(MicroBehavior.SMOOTH_DRIVING, 0.75, Severity.LOW)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def detect(
    sample: TelemetryEvent,
    thresholds: DetectionThresholds = DetectionThresholds(),
) -> list[DetectedBehavior]:
    """Run every rule in DETECTION_RULES order. Never returns an empty list."""
    behaviors = [
        behavior
        for _, rule in DETECTION_RULES
        if (behavior := rule(sample, thresholds)) is not None
    ]
    return behaviors or [_SMOOTH]
