"""
Closed vocabularies shared by every stage of the pipeline.

MicroBehavior   — label assigned by a detection rule
Severity        — per-behavior severity band
DrivingIntent   — purpose behind a behavior, as classified
RiskLevel       — banded aggregate risk score
TriggerType / Urgency — coaching trigger vocabulary
"""
from __future__ import annotations

import enum


class MicroBehavior(str, enum.Enum):
    HARSH_BRAKING = "HARSH_BRAKING"
    HARSH_ACCELERATION = "HARSH_ACCELERATION"
    AGGRESSIVE_CORNERING = "AGGRESSIVE_CORNERING"
    SPEEDING = "SPEEDING"
    DISTRACTED_DRIFTING = "DISTRACTED_DRIFTING"
    TAILGATING = "TAILGATING"
    SMOOTH_DRIVING = "SMOOTH_DRIVING"
    ERRATIC_PATTERN = "ERRATIC_PATTERN"
    COLLISION_AVOIDANCE = "COLLISION_AVOIDANCE"
    POTENTIAL_ACCIDENT = "POTENTIAL_ACCIDENT"

    @property
    def display_name(self) -> str:
        return _BEHAVIOR_TEXT[self][0]

    @property
    def description(self) -> str:
        return _BEHAVIOR_TEXT[self][1]

    @property
    def is_safety_concern(self) -> bool:
        return self is not MicroBehavior.SMOOTH_DRIVING

    @property
    def requires_immediate_coaching(self) -> bool:
        return self in _IMMEDIATE_COACHING

    @property
    def should_record_to_database(self) -> bool:
        return self in _RECORDED


_BEHAVIOR_TEXT: dict[MicroBehavior, tuple[str, str]] = {
    MicroBehavior.HARSH_BRAKING: ("Harsh Braking", "Sudden deceleration detected"),
    MicroBehavior.HARSH_ACCELERATION: ("Harsh Acceleration", "Aggressive acceleration detected"),
    MicroBehavior.AGGRESSIVE_CORNERING: ("Aggressive Cornering", "High-speed or sharp cornering detected"),
    MicroBehavior.SPEEDING: ("Speeding", "Vehicle exceeding speed limit"),
    MicroBehavior.DISTRACTED_DRIFTING: ("Distracted Drifting", "Erratic lane position suggesting distraction"),
    MicroBehavior.TAILGATING: ("Tailgating", "Insufficient following distance detected"),
    MicroBehavior.SMOOTH_DRIVING: ("Smooth Driving", "Consistent, safe driving pattern"),
    MicroBehavior.ERRATIC_PATTERN: ("Erratic Pattern", "Inconsistent driving behavior detected"),
    MicroBehavior.COLLISION_AVOIDANCE: ("Collision Avoidance", "Emergency evasive maneuver detected"),
    MicroBehavior.POTENTIAL_ACCIDENT: ("Potential Accident", "High g-force event suggesting collision"),
}

_IMMEDIATE_COACHING = frozenset({
    MicroBehavior.HARSH_BRAKING,
    MicroBehavior.AGGRESSIVE_CORNERING,
    MicroBehavior.SPEEDING,
    MicroBehavior.DISTRACTED_DRIFTING,
    MicroBehavior.TAILGATING,
    MicroBehavior.ERRATIC_PATTERN,
})

_RECORDED = frozenset({
    MicroBehavior.POTENTIAL_ACCIDENT,
    MicroBehavior.COLLISION_AVOIDANCE,
    MicroBehavior.HARSH_BRAKING,
    MicroBehavior.AGGRESSIVE_CORNERING,
})


class Severity(str, enum.Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DrivingIntent(str, enum.Enum):
    EVASIVE = "EVASIVE"
    AGGRESSIVE = "AGGRESSIVE"
    NORMAL = "NORMAL"
    DISTRACTED = "DISTRACTED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_defensive(self) -> bool:
        return self is DrivingIntent.EVASIVE

    @property
    def is_risky(self) -> bool:
        return self in (DrivingIntent.AGGRESSIVE, DrivingIntent.DISTRACTED)


class RiskLevel(str, enum.Enum):
    """Score bands: LOW [0, 0.2), MODERATE [0.2, 0.4), ELEVATED [0.4, 0.6),
    HIGH [0.6, 0.8), CRITICAL [0.8, 1.0]."""
    LOW = "LOW"
    MODERATE = "MODERATE"
    ELEVATED = "ELEVATED"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        if score < 0.2:
            return cls.LOW
        if score < 0.4:
            return cls.MODERATE
        if score < 0.6:
            return cls.ELEVATED
        if score < 0.8:
            return cls.HIGH
        return cls.CRITICAL

    @property
    def should_trigger_coaching(self) -> bool:
        return self is not RiskLevel.LOW

    @property
    def requires_immediate_attention(self) -> bool:
        return self in (RiskLevel.HIGH, RiskLevel.CRITICAL)


class TriggerType(str, enum.Enum):
    IMMEDIATE = "IMMEDIATE"
    END_OF_TRIP = "END_OF_TRIP"
    MILESTONE = "MILESTONE"
    NONE = "NONE"


class Urgency(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
