"""
Intent classifier: hybrid rule / external-reasoning classification of the
purpose behind a detected behavior.

Ambiguity gate (should_escalate)
--------------------------------
  POTENTIAL_ACCIDENT, COLLISION_AVOIDANCE   always
  HARSH_BRAKING                             g_force > 1.5
  AGGRESSIVE_CORNERING                      |lateral g| > 0.6
  SPEEDING                                  excess > 25 mph
  anything else                             never

Below the gate, or with the classifier disabled, the result comes from the
rule table in `_FALLBACK_INTENTS` at confidence 0.5 (ai_classified=False).

Failure policy
--------------
classify() never raises. Transport errors, HTTP errors, unparseable or
schema-violating replies and timeouts all become
IntentClassificationResult.from_error(): UNKNOWN, confidence 0.0,
ai_classified=False, error text kept for diagnostics.

Calls run on a fixed-size worker pool. The caller waits at most
`timeout` seconds; when every worker is busy the call is not queued, the
rule fallback is returned straight away.
"""
from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from telesense.core.errors import ReasoningError
from telesense.schemas.reasoning import ChatCompletion, IntentResponse
from telesense.schemas.telemetry import TelemetryEvent
from telesense.services.domain import DrivingIntent, MicroBehavior

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.7
RULE_FALLBACK_CONFIDENCE = 0.5


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IntentClassificationResult:
    intent: DrivingIntent
    confidence: float
    explanation: str
    original_behavior: MicroBehavior
    contributing_factors: dict[str, Any] = field(default_factory=dict)
    ai_classified: bool = False
    processing_time_ms: int = 0
    classified_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    @classmethod
    def from_rule_fallback(
        cls, behavior: MicroBehavior, explanation: str | None = None
    ) -> "IntentClassificationResult":
        return cls(
            intent=fallback_intent(behavior),
            confidence=RULE_FALLBACK_CONFIDENCE,
            explanation=explanation or "Classified by rule-based fallback (AI not invoked)",
            original_behavior=behavior,
        )

    @classmethod
    def from_error(cls, behavior: MicroBehavior, message: str) -> "IntentClassificationResult":
        return cls(
            intent=DrivingIntent.UNKNOWN,
            confidence=0.0,
            explanation=f"Classification failed: {message}",
            original_behavior=behavior,
            contributing_factors={"error": message},
            error=message,
        )

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE

    @property
    def should_reduce_risk(self) -> bool:
        return self.intent.is_defensive and self.is_high_confidence

    @property
    def should_increase_risk(self) -> bool:
        return self.intent.is_risky and self.is_high_confidence


# ---------------------------------------------------------------------------
# Rule fallback + gate
# ---------------------------------------------------------------------------

_FALLBACK_INTENTS: dict[MicroBehavior, DrivingIntent] = {
    MicroBehavior.COLLISION_AVOIDANCE: DrivingIntent.EVASIVE,
    MicroBehavior.POTENTIAL_ACCIDENT: DrivingIntent.UNKNOWN,
    MicroBehavior.HARSH_BRAKING: DrivingIntent.AGGRESSIVE,
    MicroBehavior.AGGRESSIVE_CORNERING: DrivingIntent.AGGRESSIVE,
    MicroBehavior.SPEEDING: DrivingIntent.AGGRESSIVE,
    MicroBehavior.TAILGATING: DrivingIntent.AGGRESSIVE,
    MicroBehavior.DISTRACTED_DRIFTING: DrivingIntent.DISTRACTED,
    MicroBehavior.ERRATIC_PATTERN: DrivingIntent.DISTRACTED,
    MicroBehavior.SMOOTH_DRIVING: DrivingIntent.NORMAL,
}


def fallback_intent(behavior: MicroBehavior) -> DrivingIntent:
    return _FALLBACK_INTENTS.get(behavior, DrivingIntent.UNKNOWN)


@dataclass(frozen=True)
class GateThresholds:
    g_force: float = 1.5
    lateral_g: float = 0.6
    speed_excess_mph: float = 25.0

    @classmethod
    def from_settings(cls, settings) -> "GateThresholds":
        return cls(
            g_force=settings.INTENT_G_FORCE_THRESHOLD,
            lateral_g=settings.INTENT_LATERAL_G_THRESHOLD,
            speed_excess_mph=settings.INTENT_SPEED_EXCESS_THRESHOLD,
        )


def should_escalate(sample: TelemetryEvent, behavior: MicroBehavior, gate: GateThresholds) -> bool:
    if behavior in (MicroBehavior.POTENTIAL_ACCIDENT, MicroBehavior.COLLISION_AVOIDANCE):
        return True
    if behavior is MicroBehavior.HARSH_BRAKING:
        return sample.g_force is not None and sample.g_force > gate.g_force
    if behavior is MicroBehavior.AGGRESSIVE_CORNERING:
        return sample.lateral_g is not None and sample.lateral_g > gate.lateral_g
    if behavior is MicroBehavior.SPEEDING:
        return sample.speed_excess > gate.speed_excess_mph
    return False


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_PROMPT = """\
You are a driving behavior analyst for an insurance telematics system.
Classify the INTENT behind the event described by this vehicle telemetry.

## Telemetry
- Event type: {behavior}
- G-force: {g_force:.2f} g
- Speed: {speed:.1f} mph (limit: {limit:.1f} mph)
- Lateral acceleration: {lateral:.2f} g
- Location: {location}
- Time: {timestamp}

## Observations
{observations}

## Intents
1. EVASIVE - defensive maneuver to avoid a collision or hazard
2. AGGRESSIVE - risky driving, poor judgment
3. NORMAL - standard driving, neither defensive nor aggressive
4. DISTRACTED - attention or focus issue
5. UNKNOWN - cannot be determined from the available data

Respond with ONLY a JSON object:
{{"intent": "EVASIVE|AGGRESSIVE|NORMAL|DISTRACTED|UNKNOWN", "confidence": 0.0-1.0, \
"explanation": "short reason", "factors": ["factor", "..."]}}
"""


def describe_observations(sample: TelemetryEvent) -> list[str]:
    notes: list[str] = []
    if sample.speed_mph is not None and sample.speed_limit_mph is not None:
        excess = sample.speed_mph - sample.speed_limit_mph
        if excess > 0:
            notes.append(f"Vehicle was {excess:.0f} mph over the speed limit")
        else:
            notes.append("Vehicle was at or below the speed limit")
    if sample.gyroscope_z is not None and abs(sample.gyroscope_z) > 10:
        notes.append(f"Significant yaw rotation detected: {sample.gyroscope_z:.1f} deg/s")
    if sample.device_screen_on:
        notes.append("Driver's phone screen was ON during the event")
    if sample.device_battery_level is not None and sample.device_battery_level < 0.1:
        notes.append("Device battery critically low (may affect data quality)")
    return notes


def build_prompt(sample: TelemetryEvent, behavior: MicroBehavior) -> str:
    observations = describe_observations(sample) or ["No additional observations"]
    return _PROMPT.format(
        behavior=behavior.display_name,
        g_force=sample.g_force or 0.0,
        speed=sample.speed_mph or 0.0,
        limit=sample.speed_limit_mph or 0.0,
        lateral=sample.accelerometer_y or 0.0,
        location=sample.current_street or "Unknown",
        timestamp=sample.event_time.isoformat() if sample.event_time else "Unknown",
        observations="\n".join(f"- {n}" for n in observations),
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def parse_intent_response(content: str) -> IntentResponse:
    """Validate the assistant message against IntentResponse. Raises ReasoningError."""
    cleaned = _FENCE.sub("", content)
    try:
        return IntentResponse.model_validate_json(cleaned)
    except ValidationError as exc:
        raise ReasoningError(
            f"Unparseable reasoning response: {exc.error_count()} validation error(s)",
            details={"errors": [e["msg"] for e in exc.errors()]},
        ) from exc


class ReasoningClient:
    """Thin httpx wrapper around an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.model = model
        self._http = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def complete(self, prompt: str) -> str:
        try:
            response = self._http.post(
                "/chat/completions",
                json={
                    "model": self.model,
                    "temperature": 0,
                    "response_format": {"type": "json_object"},
                    "messages": [{"role": "user", "content": prompt}],
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ReasoningError(
                f"Reasoning service returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ReasoningError(f"Reasoning service unreachable: {exc}") from exc

        try:
            completion = ChatCompletion.model_validate_json(response.content)
        except ValidationError as exc:
            raise ReasoningError("Malformed chat-completion envelope") from exc
        return completion.choices[0].message.content

    def close(self) -> None:
        self._http.close()


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class IntentClassifier:

    def __init__(
        self,
        client: Optional[ReasoningClient],
        enabled: bool = True,
        gate: GateThresholds = GateThresholds(),
        timeout: float = 5.0,
        max_concurrency: int = 8,
    ):
        self.client = client
        self.enabled = enabled and client is not None
        self.gate = gate
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(max_concurrency)
        self._pool = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="intent-classifier"
        )
        logger.info(
            "IntentClassifier initialised: enabled=%s gate=%s timeout=%.1fs concurrency=%d",
            self.enabled, gate, timeout, max_concurrency,
        )

    def classify(self, sample: TelemetryEvent, behavior: MicroBehavior) -> IntentClassificationResult:
        """Classify one behavior. Never raises."""
        try:
            return self._classify(sample, behavior)
        except Exception as exc:  # classify() must never raise
            logger.exception("Intent classification crashed for %s", behavior.value)
            return IntentClassificationResult.from_error(behavior, str(exc) or type(exc).__name__)

    def _classify(self, sample: TelemetryEvent, behavior: MicroBehavior) -> IntentClassificationResult:
        if not self.enabled:
            logger.debug("AI classification disabled, rule fallback for %s", behavior.value)
            return IntentClassificationResult.from_rule_fallback(behavior)

        if not should_escalate(sample, behavior, self.gate):
            logger.debug("Below ambiguity gate, rule fallback for %s", behavior.value)
            return IntentClassificationResult.from_rule_fallback(behavior)

        if not self._slots.acquire(blocking=False):
            logger.warning("Reasoning pool saturated, rule fallback for %s", behavior.value)
            return IntentClassificationResult.from_rule_fallback(
                behavior, "Reasoning pool saturated; classified by rule-based fallback"
            )

        started = time.monotonic()
        future = self._pool.submit(self._call, sample, behavior)
        future.add_done_callback(lambda _: self._slots.release())
        try:
            parsed = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning(
                "AI classification of %s timed out after %.1fs", behavior.value, self.timeout
            )
            return IntentClassificationResult.from_error(
                behavior, f"Reasoning call timed out after {self.timeout:.1f}s"
            )
        except ReasoningError as exc:
            logger.warning("AI classification of %s failed: %s", behavior.value, exc.message)
            return IntentClassificationResult.from_error(behavior, exc.message)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "AI classified %s as %s (confidence %.2f) in %dms",
            behavior.value, parsed.intent.value, parsed.confidence, elapsed_ms,
        )
        return IntentClassificationResult(
            intent=parsed.intent,
            confidence=parsed.confidence,
            explanation=parsed.explanation,
            original_behavior=behavior,
            contributing_factors={f"factor_{i}": f for i, f in enumerate(parsed.factors, 1)},
            ai_classified=True,
            processing_time_ms=elapsed_ms,
        )

    def _call(self, sample: TelemetryEvent, behavior: MicroBehavior) -> IntentResponse:
        content = self.client.complete(build_prompt(sample, behavior))
        return parse_intent_response(content)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        if self.client is not None:
            self.client.close()
