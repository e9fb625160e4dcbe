"""
Tests for the intent classifier.

Covers:
- ambiguity gate per behavior type
- rule fallback table and its fixed confidence
- structured response parsing (fenced JSON, bad intents, out-of-range confidence)
- transport failures, HTTP errors, timeouts and pool saturation
- classify() never raising
"""
from __future__ import annotations

import threading
import time

import httpx
import pytest

from conftest import chat_completion, reasoning_transport
from telesense.core.errors import ReasoningError
from telesense.services.domain import DrivingIntent, MicroBehavior
from telesense.services.intent_classifier import (
    GateThresholds,
    IntentClassificationResult,
    IntentClassifier,
    ReasoningClient,
    build_prompt,
    describe_observations,
    fallback_intent,
    parse_intent_response,
    should_escalate,
)

EVASIVE_REPLY = {
    "intent": "EVASIVE",
    "confidence": 0.9,
    "explanation": "Braked hard to avoid a stopped vehicle",
    "factors": ["sudden obstacle", "speed within limit"],
}


def _classifier(transport, **kwargs) -> IntentClassifier:
    client = ReasoningClient(
        base_url="http://reasoning.test/v1",
        model="test-model",
        transport=transport,
    )
    return IntentClassifier(client, **kwargs)


@pytest.fixture()
def make_classifier():
    created: list[IntentClassifier] = []

    def _make(transport, **kwargs) -> IntentClassifier:
        c = _classifier(transport, **kwargs)
        created.append(c)
        return c

    yield _make
    for c in created:
        c.close()


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class TestGate:
    gate = GateThresholds()

    @pytest.mark.parametrize(
        "behavior", [MicroBehavior.POTENTIAL_ACCIDENT, MicroBehavior.COLLISION_AVOIDANCE]
    )
    def test_always_escalated(self, sample, behavior):
        assert should_escalate(sample(), behavior, self.gate) is True

    def test_harsh_braking_needs_stricter_g_force(self, sample):
        assert should_escalate(sample(g_force=1.2), MicroBehavior.HARSH_BRAKING, self.gate) is False
        assert should_escalate(sample(g_force=1.6), MicroBehavior.HARSH_BRAKING, self.gate) is True

    def test_cornering_needs_stricter_lateral_g(self, sample):
        assert should_escalate(
            sample(accelerometer_y=0.5), MicroBehavior.AGGRESSIVE_CORNERING, self.gate
        ) is False
        assert should_escalate(
            sample(accelerometer_y=-0.7), MicroBehavior.AGGRESSIVE_CORNERING, self.gate
        ) is True

    def test_speeding_needs_large_excess(self, sample):
        assert should_escalate(
            sample(speed_mph=75.0, speed_limit_mph=55.0), MicroBehavior.SPEEDING, self.gate
        ) is False
        assert should_escalate(
            sample(speed_mph=85.0, speed_limit_mph=55.0), MicroBehavior.SPEEDING, self.gate
        ) is True

    @pytest.mark.parametrize(
        "behavior",
        [MicroBehavior.TAILGATING, MicroBehavior.SMOOTH_DRIVING, MicroBehavior.ERRATIC_PATTERN],
    )
    def test_other_behaviors_never_escalated(self, sample, behavior):
        assert should_escalate(sample(g_force=9.0), behavior, self.gate) is False


# ---------------------------------------------------------------------------
# Rule fallback
# ---------------------------------------------------------------------------

class TestFallback:
    @pytest.mark.parametrize(
        "behavior, intent",
        [
            (MicroBehavior.COLLISION_AVOIDANCE, DrivingIntent.EVASIVE),
            (MicroBehavior.POTENTIAL_ACCIDENT, DrivingIntent.UNKNOWN),
            (MicroBehavior.HARSH_BRAKING, DrivingIntent.AGGRESSIVE),
            (MicroBehavior.SPEEDING, DrivingIntent.AGGRESSIVE),
            (MicroBehavior.DISTRACTED_DRIFTING, DrivingIntent.DISTRACTED),
            (MicroBehavior.SMOOTH_DRIVING, DrivingIntent.NORMAL),
            (MicroBehavior.HARSH_ACCELERATION, DrivingIntent.UNKNOWN),
        ],
    )
    def test_table(self, behavior, intent):
        assert fallback_intent(behavior) is intent

    def test_fallback_is_never_high_confidence(self):
        result = IntentClassificationResult.from_rule_fallback(MicroBehavior.HARSH_BRAKING)
        assert result.confidence == 0.5
        assert result.ai_classified is False
        assert result.is_high_confidence is False
        assert result.should_increase_risk is False

    def test_disabled_classifier_uses_fallback(self, sample):
        classifier = IntentClassifier(None, enabled=True)
        try:
            result = classifier.classify(sample(g_force=9.0), MicroBehavior.POTENTIAL_ACCIDENT)
        finally:
            classifier.close()
        assert classifier.enabled is False
        assert result.ai_classified is False
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.confidence == 0.5

    def test_below_gate_never_calls_service(self, sample, make_classifier):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=chat_completion(EVASIVE_REPLY))

        classifier = make_classifier(reasoning_transport(handler=handler))
        result = classifier.classify(sample(g_force=0.6), MicroBehavior.HARSH_BRAKING)
        assert calls == []
        assert result.intent is DrivingIntent.AGGRESSIVE
        assert result.ai_classified is False


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParsing:
    def test_plain_json(self):
        parsed = parse_intent_response('{"intent": "aggressive", "confidence": 0.8}')
        assert parsed.intent is DrivingIntent.AGGRESSIVE
        assert parsed.confidence == 0.8
        assert parsed.factors == []

    def test_fenced_json(self):
        parsed = parse_intent_response('```json\n{"intent": "EVASIVE", "confidence": 0.95}\n```')
        assert parsed.intent is DrivingIntent.EVASIVE

    @pytest.mark.parametrize(
        "content",
        [
            "The driver was probably evasive.",
            '{"intent": "RECKLESS", "confidence": 0.9}',
            '{"intent": "EVASIVE", "confidence": 1.4}',
            '{"confidence": 0.9}',
            "[]",
        ],
    )
    def test_invalid_replies_raise(self, content):
        with pytest.raises(ReasoningError):
            parse_intent_response(content)


class TestPrompt:
    def test_observations(self, sample):
        notes = describe_observations(
            sample(
                speed_mph=80.0,
                speed_limit_mph=55.0,
                gyroscope_z=25.0,
                device_screen_on=True,
                device_battery_level=0.05,
            )
        )
        assert notes == [
            "Vehicle was 25 mph over the speed limit",
            "Significant yaw rotation detected: 25.0 deg/s",
            "Driver's phone screen was ON during the event",
            "Device battery critically low (may affect data quality)",
        ]

    def test_prompt_mentions_behavior_and_location(self, sample):
        prompt = build_prompt(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert "Potential Accident" in prompt
        assert "Main St" in prompt
        assert "8.50 g" in prompt
        assert "No additional observations" in prompt


# ---------------------------------------------------------------------------
# classify()
# ---------------------------------------------------------------------------

class TestClassify:
    def test_ai_classification(self, sample, make_classifier):
        requests: list[httpx.Request] = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=chat_completion(EVASIVE_REPLY))

        classifier = make_classifier(reasoning_transport(handler=handler))
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)

        assert len(requests) == 1
        assert requests[0].url.path == "/v1/chat/completions"
        assert result.ai_classified is True
        assert result.intent is DrivingIntent.EVASIVE
        assert result.confidence == 0.9
        assert result.is_high_confidence
        assert result.should_reduce_risk
        assert result.contributing_factors == {
            "factor_1": "sudden obstacle",
            "factor_2": "speed within limit",
        }
        assert result.error is None

    def test_http_error_degrades(self, sample, make_classifier):
        classifier = make_classifier(reasoning_transport(status_code=503))
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.confidence == 0.0
        assert result.ai_classified is False
        assert "503" in result.error

    def test_connection_error_degrades(self, sample, make_classifier):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        classifier = make_classifier(reasoning_transport(handler=handler))
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.error is not None

    def test_unparseable_reply_degrades(self, sample, make_classifier):
        classifier = make_classifier(reasoning_transport("I think it was evasive"))
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.confidence == 0.0
        assert result.ai_classified is False

    def test_malformed_envelope_degrades(self, sample, make_classifier):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        classifier = make_classifier(reasoning_transport(handler=handler))
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert result.intent is DrivingIntent.UNKNOWN
        assert "envelope" in result.error

    def test_timeout_degrades(self, sample, make_classifier):
        release = threading.Event()

        def handler(request):
            release.wait(2.0)
            return httpx.Response(200, json=chat_completion(EVASIVE_REPLY))

        classifier = make_classifier(reasoning_transport(handler=handler), timeout=0.05)
        started = time.monotonic()
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        elapsed = time.monotonic() - started
        release.set()

        assert elapsed < 1.0
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.confidence == 0.0
        assert "timed out" in result.error

    def test_saturated_pool_falls_back(self, sample, make_classifier):
        entered = threading.Event()
        release = threading.Event()

        def handler(request):
            entered.set()
            release.wait(2.0)
            return httpx.Response(200, json=chat_completion(EVASIVE_REPLY))

        classifier = make_classifier(
            reasoning_transport(handler=handler), timeout=2.0, max_concurrency=1
        )
        first: list[IntentClassificationResult] = []
        worker = threading.Thread(
            target=lambda: first.append(
                classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
            )
        )
        worker.start()
        assert entered.wait(2.0)

        second = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        release.set()
        worker.join(2.0)

        assert second.ai_classified is False
        assert second.confidence == 0.5
        assert "saturated" in second.explanation
        assert first[0].ai_classified is True

    def test_never_raises(self, sample, make_classifier):
        classifier = make_classifier(reasoning_transport(EVASIVE_REPLY))

        def explode(*args):
            raise RuntimeError("kaboom")

        classifier._call = explode
        result = classifier.classify(sample(g_force=8.5), MicroBehavior.POTENTIAL_ACCIDENT)
        assert result.intent is DrivingIntent.UNKNOWN
        assert result.confidence == 0.0
        assert result.ai_classified is False
        assert result.error == "kaboom"
