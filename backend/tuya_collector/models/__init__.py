"""
Models Package
==============

This is where all our data models live.
Import from here instead of the individual files.

Example:
    from tuya_collector.models import SensorReading, FetchOutcome
"""

from .sensor import (
    # Backend selection and skip reasons
    SinkType,
    WriteSkipReason,

    # Cloud auth state
    TuyaSession,

    # The actual data from sensors
    SensorReading,

    # What happened during a run
    FetchOutcome,
    WriteOutcome,
    RunReport,
)

__all__ = [
    "SinkType",
    "WriteSkipReason",
    "TuyaSession",
    "SensorReading",
    "FetchOutcome",
    "WriteOutcome",
    "RunReport",
]
