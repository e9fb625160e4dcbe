"""
Coaching trigger policy.

  1. IMMEDIATE    — first detected behavior that requires immediate coaching;
                    urgency from its severity, topic from its type.
  2. END_OF_TRIP  — otherwise, when the risk level is MODERATE or above;
                    urgency HIGH for HIGH/CRITICAL levels, else MEDIUM.
  3. NONE         — otherwise.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from telesense.services.detector import DetectedBehavior
from telesense.services.domain import MicroBehavior, RiskLevel, Severity, TriggerType, Urgency

SUPPORTIVE = "SUPPORTIVE"

_URGENCY_BY_SEVERITY: dict[Severity, Urgency] = {
    Severity.CRITICAL: Urgency.CRITICAL,
    Severity.HIGH: Urgency.HIGH,
    Severity.MODERATE: Urgency.MEDIUM,
}

_TOPICS: dict[MicroBehavior, str] = {
    MicroBehavior.HARSH_BRAKING: "DEFENSIVE_BRAKING",
    MicroBehavior.SPEEDING: "SPEED_AWARENESS",
    MicroBehavior.AGGRESSIVE_CORNERING: "SMOOTH_CORNERING",
    MicroBehavior.DISTRACTED_DRIFTING: "ATTENTION_FOCUS",
    MicroBehavior.TAILGATING: "SAFE_FOLLOWING",
}
_DEFAULT_TOPIC = "GENERAL_SAFETY"
_SUMMARY_TOPIC = "DRIVING_SUMMARY"


@dataclass(frozen=True)
class CoachingTrigger:
    should_trigger: bool
    trigger_type: TriggerType
    urgency: Urgency
    suggested_topic: Optional[str] = None
    suggested_tone: Optional[str] = None

    @classmethod
    def none(cls) -> "CoachingTrigger":
        return cls(False, TriggerType.NONE, Urgency.LOW)

    @classmethod
    def immediate(cls, topic: str, urgency: Urgency) -> "CoachingTrigger":
        return cls(True, TriggerType.IMMEDIATE, urgency, topic, SUPPORTIVE)


def coaching_topic(behavior: MicroBehavior) -> str:
    return _TOPICS.get(behavior, _DEFAULT_TOPIC)


def decide_coaching(behaviors: list[DetectedBehavior], level: RiskLevel) -> CoachingTrigger:
    for b in behaviors:
        if b.type.requires_immediate_coaching:
            return CoachingTrigger.immediate(
                coaching_topic(b.type),
                _URGENCY_BY_SEVERITY.get(b.severity, Urgency.LOW),
            )

    if level.should_trigger_coaching:
        return CoachingTrigger(
            should_trigger=True,
            trigger_type=TriggerType.END_OF_TRIP,
            urgency=Urgency.HIGH if level.requires_immediate_attention else Urgency.MEDIUM,
            suggested_topic=_SUMMARY_TOPIC,
            suggested_tone=SUPPORTIVE,
        )

    return CoachingTrigger.none()
