"""
Input telemetry sample, one decoded record per sensor reading.

POST /telemetry          → TelemetryEvent
POST /telemetry/batch    → TelemetryBatchRequest

All 35 fields are optional: an absent numeric field means "the rule that
reads it does not apply", never a validation error.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from telesense.core.errors import TelemetryDecodeError


class TelemetryEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, allow_inf_nan=False)

    # Identifiers
    policy_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    vin: Optional[str] = None
    driver_id: Optional[str] = None
    event_time: Optional[datetime] = None

    # Speed
    speed_mph: Optional[float] = None
    speed_limit_mph: Optional[float] = None
    current_street: Optional[str] = None

    g_force: Optional[float] = Field(
        default=None,
        description="Combined accelerometer magnitude in g.",
    )

    # GPS
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_altitude: Optional[float] = None
    gps_speed: Optional[float] = None
    gps_bearing: Optional[float] = None
    gps_accuracy: Optional[float] = None
    gps_satellite_count: Optional[int] = None
    gps_fix_time: Optional[int] = None

    # IMU
    accelerometer_x: Optional[float] = None
    accelerometer_y: Optional[float] = Field(
        default=None,
        description="Lateral acceleration in g (used for cornering).",
    )
    accelerometer_z: Optional[float] = None
    gyroscope_x: Optional[float] = None
    gyroscope_y: Optional[float] = None
    gyroscope_z: Optional[float] = Field(
        default=None,
        description="Yaw rate in deg/s.",
    )
    magnetometer_x: Optional[float] = None
    magnetometer_y: Optional[float] = None
    magnetometer_z: Optional[float] = None
    magnetometer_heading: Optional[float] = None

    barometric_pressure: Optional[float] = None

    # Device state
    device_battery_level: Optional[float] = Field(
        default=None,
        description="Battery level as a fraction in [0, 1].",
    )
    device_signal_strength: Optional[float] = None
    device_orientation: Optional[str] = None
    device_screen_on: Optional[bool] = None
    device_charging: Optional[bool] = None

    def is_potential_accident(self, threshold: float) -> bool:
        return self.g_force is not None and self.g_force > threshold

    def is_speeding(self, tolerance_mph: float) -> bool:
        if self.speed_mph is None or self.speed_limit_mph is None:
            return False
        return self.speed_mph > self.speed_limit_mph + tolerance_mph

    @property
    def speed_excess(self) -> float:
        """mph over the posted limit, 0.0 when either value is missing."""
        if self.speed_mph is None or self.speed_limit_mph is None:
            return 0.0
        return max(0.0, self.speed_mph - self.speed_limit_mph)

    @property
    def lateral_g(self) -> Optional[float]:
        if self.accelerometer_y is None:
            return None
        return abs(self.accelerometer_y)


class TelemetryBatchRequest(BaseModel):
    """A batch of samples. Each one is processed independently."""
    items: list[TelemetryEvent] = Field(min_length=1)


def decode_telemetry(payload: Union[bytes, str, dict[str, Any]]) -> TelemetryEvent:
    """
    Decode one transport record into a TelemetryEvent.

    Raises TelemetryDecodeError for anything that is not a JSON object or
    fails field validation. The record is rejected, never retried here:
    redelivery / dead-lettering belongs to the transport.
    """
    try:
        if isinstance(payload, dict):
            return TelemetryEvent.model_validate(payload)
        data = json.loads(payload)
    except ValidationError as exc:
        raise TelemetryDecodeError("Invalid telemetry record.", errors=_errors(exc)) from exc
    except (ValueError, TypeError) as exc:
        raise TelemetryDecodeError(f"Telemetry record is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise TelemetryDecodeError(
            f"Telemetry record must be a JSON object, got {type(data).__name__}."
        )
    try:
        return TelemetryEvent.model_validate(data)
    except ValidationError as exc:
        raise TelemetryDecodeError("Invalid telemetry record.", errors=_errors(exc)) from exc


def _errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
