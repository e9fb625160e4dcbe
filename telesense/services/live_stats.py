"""
Live statistics aggregator: process-wide counters, per-driver rolling
stats and a ring of recent notable events.

Written concurrently by every pipeline worker and read by the broadcaster.
Counters, the driver map and the recent-event ring each have their own
lock, held only for a dict/deque operation, so producers never wait on a
snapshot for long.

Lifecycle: one instance per process, created at startup by the runtime,
zeroed by reset(), discarded at shutdown.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from telesense.schemas.stats import DriverStatsOut, RecentEventOut, StatsSnapshot
from telesense.services.domain import MicroBehavior, Severity

NOTABLE_BEHAVIORS: tuple[MicroBehavior, ...] = (
    MicroBehavior.POTENTIAL_ACCIDENT,
    MicroBehavior.HARSH_BRAKING,
    MicroBehavior.SPEEDING,
    MicroBehavior.AGGRESSIVE_CORNERING,
)

UNKNOWN_DRIVER = "unknown"


@dataclass
class DriverStats:
    driver_id: str
    event_count: int = 0
    behavior_count: int = 0
    total_risk_score: float = 0.0

    @property
    def average_risk_score(self) -> float:
        return self.total_risk_score / self.event_count if self.event_count else 0.0


@dataclass(frozen=True)
class RecentEvent:
    timestamp: datetime
    driver_id: Optional[str]
    vehicle_id: Optional[str]
    behavior_type: MicroBehavior
    severity: Severity
    risk_score: float
    intent: Optional[str] = None


class LiveStats:

    def __init__(self, recent_capacity: int = 50):
        self._counter_lock = threading.Lock()
        self._driver_lock = threading.Lock()
        self._recent_lock = threading.Lock()
        self._recent: deque[RecentEvent] = deque(maxlen=recent_capacity)
        self._drivers: dict[str, DriverStats] = {}
        self._zero_counters()
        self.events_per_second = 0.0
        self.generation = 0
        self.started_at = time.monotonic()
        self.last_processed_at = time.monotonic()

    def _zero_counters(self) -> None:
        self.events_received = 0
        self.events_processed = 0
        self.behaviors_detected = 0
        self.vehicle_events_emitted = 0
        self.intents_classified = 0
        self.classification_failures = 0
        self.behavior_counts = {b: 0 for b in NOTABLE_BEHAVIORS}

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def increment_events_received(self) -> None:
        with self._counter_lock:
            self.events_received += 1

    def increment_events_processed(self) -> None:
        with self._counter_lock:
            self.events_processed += 1
        self.last_processed_at = time.monotonic()

    def record_behaviors(self, behaviors: list[MicroBehavior]) -> None:
        with self._counter_lock:
            self.behaviors_detected += len(behaviors)
            for b in behaviors:
                if b in self.behavior_counts:
                    self.behavior_counts[b] += 1

    def record_classification(self, ai_classified: bool, failed: bool) -> None:
        if not (ai_classified or failed):
            return
        with self._counter_lock:
            if ai_classified:
                self.intents_classified += 1
            if failed:
                self.classification_failures += 1

    def increment_vehicle_events_emitted(self) -> None:
        with self._counter_lock:
            self.vehicle_events_emitted += 1

    def update_driver(self, driver_id: Optional[str], primary: MicroBehavior, risk_score: float) -> None:
        key = driver_id or UNKNOWN_DRIVER
        with self._driver_lock:
            stats = self._drivers.get(key)
            if stats is None:
                stats = self._drivers[key] = DriverStats(key)
            stats.event_count += 1
            stats.total_risk_score += risk_score
            if primary is not MicroBehavior.SMOOTH_DRIVING:
                stats.behavior_count += 1

    def add_recent_event(self, event: RecentEvent) -> None:
        """Most recent first; the oldest entry falls off when full."""
        with self._recent_lock:
            self._recent.appendleft(event)

    def set_events_per_second(self, eps: float) -> None:
        self.events_per_second = eps

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def top_risk_drivers(self, limit: int = 5) -> list[DriverStats]:
        with self._driver_lock:
            drivers = [
                DriverStats(d.driver_id, d.event_count, d.behavior_count, d.total_risk_score)
                for d in self._drivers.values()
            ]
        drivers.sort(key=lambda d: d.average_risk_score, reverse=True)
        return drivers[:limit]

    def recent_events(self) -> list[RecentEvent]:
        with self._recent_lock:
            return list(self._recent)

    def received_reading(self) -> tuple[int, int]:
        """(generation, events_received), read together so a reset cannot split them."""
        with self._counter_lock:
            return self.generation, self.events_received

    def seconds_since_last_processed(self) -> float:
        return time.monotonic() - self.last_processed_at

    def get_snapshot(self, top_n: int = 5) -> StatsSnapshot:
        with self._counter_lock:
            counters = dict(
                events_received=self.events_received,
                events_processed=self.events_processed,
                behaviors_detected=self.behaviors_detected,
                vehicle_events_emitted=self.vehicle_events_emitted,
                potential_accidents=self.behavior_counts[MicroBehavior.POTENTIAL_ACCIDENT],
                harsh_braking_events=self.behavior_counts[MicroBehavior.HARSH_BRAKING],
                speeding_events=self.behavior_counts[MicroBehavior.SPEEDING],
                aggressive_cornering_events=self.behavior_counts[MicroBehavior.AGGRESSIVE_CORNERING],
                intents_classified=self.intents_classified,
                classification_failures=self.classification_failures,
            )
        with self._driver_lock:
            active_drivers = len(self._drivers)

        return StatsSnapshot(
            **counters,
            active_drivers=active_drivers,
            events_per_second=self.events_per_second,
            uptime_ms=int((time.monotonic() - self.started_at) * 1000),
            recent_events=[_recent_to_out(e) for e in self.recent_events()],
            top_risk_drivers=[_driver_to_out(d) for d in self.top_risk_drivers(top_n)],
            generated_at=datetime.now(timezone.utc),
        )

    def reset(self) -> None:
        with self._counter_lock:
            self._zero_counters()
            self.generation += 1
        with self._driver_lock:
            self._drivers.clear()
        with self._recent_lock:
            self._recent.clear()
        self.events_per_second = 0.0
        self.started_at = time.monotonic()


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _recent_to_out(e: RecentEvent) -> RecentEventOut:
    return RecentEventOut(
        timestamp=e.timestamp,
        driver_id=e.driver_id,
        vehicle_id=e.vehicle_id,
        behavior_type=e.behavior_type,
        severity=e.severity,
        risk_score=e.risk_score,
        intent=e.intent,
    )


def _driver_to_out(d: DriverStats) -> DriverStatsOut:
    return DriverStatsOut(
        driver_id=d.driver_id,
        event_count=d.event_count,
        behavior_count=d.behavior_count,
        average_risk_score=d.average_risk_score,
    )
