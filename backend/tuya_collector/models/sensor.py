"""
Sensor Models
=============
Pydantic models for the readings we pull out of Tuya and the results of
writing them into the time-series stores.

This module defines the data structures used throughout the collector:
- Cloud session: the access token we get from Tuya and when it expires
- Readings: a normalized temperature / humidity / battery observation
- Outcomes: what happened when we fetched a device, and when we wrote it

THE FLOW:
    device id --fetch--> FetchOutcome (reading or error)
                              |
                              | write (one per sink)
                              v
                         WriteOutcome (written or skipped/failed)
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Optional
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class SinkType(str, Enum):
    """
    Time-series backends the collector can write to.

    Selected with the WRITE_DB setting (comma-separated), e.g.
    WRITE_DB=influxdb,questdb
    """
    INFLUXDB = "influxdb"
    QUESTDB = "questdb"


class WriteSkipReason(str, Enum):
    """
    Why a reading was not written.

    - NO_TIMESTAMP: the device reported no property times, nothing to key on
    - NO_FIELDS: none of temperature / humidity / battery was present
    - ERROR: the store rejected the write or could not be reached
    """
    NO_TIMESTAMP = "no_timestamp"
    NO_FIELDS = "no_fields"
    ERROR = "error"


# =============================================================================
# CLOUD SESSION
# =============================================================================

class TuyaSession(BaseModel):
    """
    A Tuya access token and the instant it stops being valid.

    Sessions are never modified. A refresh builds a new one and swaps it in,
    so whoever holds a session always sees a matching token/expiry pair.
    """
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="Opaque token from /v1.0/token")
    expires_at_ms: int = Field(..., description="Expiry as epoch milliseconds")

    def is_stale(self, now_ms: int, margin_ms: int = 60_000) -> bool:
        """True once we are inside the safety margin before expiry."""
        return now_ms >= self.expires_at_ms - margin_ms


# =============================================================================
# READINGS
# =============================================================================

class SensorReading(BaseModel):
    """
    One normalized observation from a Tuya temperature/humidity sensor.

    Every field is optional - a device that only reports humidity produces a
    reading with just humidity set.

    Fields:
        temperature: Degrees Celsius (Tuya reports tenths of a degree)
        humidity: Relative humidity %
        battery: Battery level %, mapped from the category when needed
        timestamp: Latest property `time` the device reported (epoch ms,
                   as Tuya sends it)
    """
    model_config = ConfigDict(frozen=True)

    temperature: Optional[float] = Field(None, description="Temperature in °C")
    humidity: Optional[float] = Field(None, description="Relative humidity %")
    battery: Optional[float] = Field(None, description="Battery level %")
    timestamp: Optional[int] = Field(None, description="Latest property time")

    def metric_fields(self) -> dict[str, float]:
        """Present metrics, in write order, as float values."""
        fields = {}
        if self.temperature is not None:
            fields["temperature"] = float(self.temperature)
        if self.humidity is not None:
            fields["humidity"] = float(self.humidity)
        if self.battery is not None:
            fields["battery"] = float(self.battery)
        return fields


# =============================================================================
# OUTCOMES
# =============================================================================

class FetchOutcome(BaseModel):
    """
    Result of fetching one device.

    Exactly one of these per requested device id. A success carries the
    parsed reading and the raw Tuya payload; a failure carries only the
    error message.
    """
    model_config = ConfigDict(frozen=True)

    device_id: str
    success: bool
    reading: Optional[SensorReading] = None
    raw_payload: Any = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _success_xor_failure(self):
        if self.success and self.error_message is not None:
            raise ValueError("a successful fetch cannot carry an error message")
        if not self.success and (self.error_message is None or self.reading is not None):
            raise ValueError("a failed fetch needs an error message and no reading")
        return self

    @classmethod
    def ok(cls, device_id: str, reading: SensorReading, raw_payload: Any) -> "FetchOutcome":
        return cls(device_id=device_id, success=True, reading=reading, raw_payload=raw_payload)

    @classmethod
    def failed(cls, device_id: str, error_message: str) -> "FetchOutcome":
        return cls(device_id=device_id, success=False, error_message=error_message)

    def summary(self) -> dict:
        """Flat dict for the run summary printed by the CLI."""
        if self.success:
            return {
                "device_id": self.device_id,
                "success": True,
                **(self.reading.model_dump() if self.reading else {}),
            }
        return {"device_id": self.device_id, "success": False, "error": self.error_message}


class WriteOutcome(BaseModel):
    """
    Result of writing one device's reading into one sink.

    Fields:
        device_id: Device the reading came from
        written: True if the store accepted the point
        reason: Why it was not written (only when written is False)
        error_message: Error details when reason is ERROR
    """
    device_id: str
    written: bool
    reason: Optional[WriteSkipReason] = None
    error_message: Optional[str] = None

    @classmethod
    def success(cls, device_id: str) -> "WriteOutcome":
        return cls(device_id=device_id, written=True)

    @classmethod
    def skipped(cls, device_id: str, reason: WriteSkipReason) -> "WriteOutcome":
        return cls(device_id=device_id, written=False, reason=reason)

    @classmethod
    def error(cls, device_id: str, error_message: str) -> "WriteOutcome":
        return cls(
            device_id=device_id,
            written=False,
            reason=WriteSkipReason.ERROR,
            error_message=error_message,
        )


class RunReport(BaseModel):
    """
    Everything one collection run produced.

    write_results and sink_errors are keyed by sink name ("influxdb",
    "questdb"). A sink that blew up as a whole (e.g. the QuestDB table could
    not be created) shows up in sink_errors instead of write_results.
    """
    fetch_outcomes: list[FetchOutcome] = Field(default_factory=list)
    write_results: dict[str, list[WriteOutcome]] = Field(default_factory=dict)
    sink_errors: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.sink_errors
