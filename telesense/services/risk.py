"""
Intent-adjusted risk scoring.

    score = Σ(weight · severity · confidence · multiplier) / Σ(weight)

clamped to [0, 1]. The multiplier comes from the intent result whose
originating behavior matches, and only when that result is high-confidence
(>= 0.7); otherwise it is 1.0. Rule fallbacks (confidence 0.5) therefore
never move the score.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from telesense.services.detector import DetectedBehavior
from telesense.services.domain import DrivingIntent, MicroBehavior, RiskLevel, Severity
from telesense.services.intent_classifier import IntentClassificationResult

_BEHAVIOR_WEIGHTS: dict[MicroBehavior, float] = {
    MicroBehavior.POTENTIAL_ACCIDENT: 1.0,
    MicroBehavior.HARSH_BRAKING: 0.7,
    MicroBehavior.AGGRESSIVE_CORNERING: 0.7,
    MicroBehavior.SPEEDING: 0.6,
    MicroBehavior.DISTRACTED_DRIFTING: 0.5,
    MicroBehavior.TAILGATING: 0.5,
    MicroBehavior.ERRATIC_PATTERN: 0.4,
    MicroBehavior.SMOOTH_DRIVING: 0.1,
}
_DEFAULT_WEIGHT = 0.3

_SEVERITY_SCORES: dict[Severity, float] = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.8,
    Severity.MODERATE: 0.5,
    Severity.LOW: 0.2,
}
_DEFAULT_SEVERITY_SCORE = 0.3

_INTENT_MULTIPLIERS: dict[DrivingIntent, float] = {
    DrivingIntent.EVASIVE: 0.5,
    DrivingIntent.AGGRESSIVE: 1.3,
    DrivingIntent.DISTRACTED: 1.2,
    DrivingIntent.NORMAL: 1.0,
    DrivingIntent.UNKNOWN: 1.0,
}

IntentMap = dict[MicroBehavior, IntentClassificationResult]


def behavior_weight(behavior: MicroBehavior) -> float:
    return _BEHAVIOR_WEIGHTS.get(behavior, _DEFAULT_WEIGHT)


def severity_score(severity: Severity | str | None) -> float:
    if not isinstance(severity, Severity):
        try:
            severity = Severity(str(severity).upper())
        except ValueError:
            return _DEFAULT_SEVERITY_SCORE
    return _SEVERITY_SCORES[severity]


def intent_multiplier(result: Optional[IntentClassificationResult]) -> float:
    if result is None or not result.is_high_confidence:
        return 1.0
    return _INTENT_MULTIPLIERS.get(result.intent, 1.0)


def index_intents(results: Iterable[IntentClassificationResult]) -> IntentMap:
    """Key results by originating behavior; a later result for the same type wins."""
    return {r.original_behavior: r for r in results}


def score_risk(
    behaviors: list[DetectedBehavior],
    intents: Iterable[IntentClassificationResult] = (),
) -> float:
    if not behaviors:
        return 0.0
    by_type = index_intents(intents)

    total_weight = 0.0
    weighted = 0.0
    for b in behaviors:
        weight = behavior_weight(b.type)
        total_weight += weight
        weighted += (
            weight
            * severity_score(b.severity)
            * b.confidence
            * intent_multiplier(by_type.get(b.type))
        )

    raw = weighted / total_weight if total_weight > 0 else 0.0
    return max(0.0, min(1.0, raw))


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskFactor:
    factor: str
    weight: float
    score: float


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    score: float
    trend: str = "STABLE"
    factors: list[RiskFactor] = field(default_factory=list)


def _factor(b: DetectedBehavior, result: Optional[IntentClassificationResult]) -> RiskFactor:
    name = b.type.value
    if result is not None and result.ai_classified:
        name = f"{name} ({result.intent.value})"
    return RiskFactor(
        factor=name,
        weight=behavior_weight(b.type),
        score=severity_score(b.severity) * intent_multiplier(result),
    )


def assess_risk(
    behaviors: list[DetectedBehavior],
    intents: Iterable[IntentClassificationResult] = (),
) -> RiskAssessment:
    intents = list(intents)
    score = score_risk(behaviors, intents)
    by_type = index_intents(intents)
    # Trend needs cross-sample history, which is out of scope: always STABLE.
    return RiskAssessment(
        level=RiskLevel.from_score(score),
        score=score,
        factors=[
            _factor(b, by_type.get(b.type))
            for b in behaviors
            if b.type is not MicroBehavior.SMOOTH_DRIVING
        ],
    )
