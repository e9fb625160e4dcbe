"""
Live statistics payloads.

GET /api/stats and every /ws/stats push carry a StatsSnapshot.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from telesense.services.domain import MicroBehavior, Severity


class RecentEventOut(BaseModel):
    timestamp: datetime
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    behavior_type: MicroBehavior
    severity: Severity
    risk_score: float
    intent: Optional[str] = Field(
        default=None,
        description="Intent label of the first classified behavior in the sample.",
    )


class DriverStatsOut(BaseModel):
    driver_id: str
    event_count: int
    behavior_count: int
    average_risk_score: float


class StatsSnapshot(BaseModel):
    events_received: int = 0
    events_processed: int = 0
    behaviors_detected: int = 0
    vehicle_events_emitted: int = 0
    potential_accidents: int = 0
    harsh_braking_events: int = 0
    speeding_events: int = 0
    aggressive_cornering_events: int = 0
    intents_classified: int = 0
    classification_failures: int = 0
    active_drivers: int = 0
    events_per_second: float = 0.0
    uptime_ms: int = 0
    recent_events: list[RecentEventOut] = Field(
        default_factory=list,
        description="Most recent first.",
    )
    top_risk_drivers: list[DriverStatsOut] = Field(
        default_factory=list,
        description="Highest average risk score first.",
    )
    generated_at: datetime
