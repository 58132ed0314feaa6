"""
Sensor Parser
=============

Turns a Tuya shadow-properties payload into a SensorReading.

WHAT TUYA SENDS:
---------------
    {
        "properties": [
            {"code": "temp_current",   "value": 215,    "time": 1700000000000},
            {"code": "humidity_value", "value": 55,     "time": 1700000000000},
            {"code": "battery_state",  "value": "high", "time": 1699990000000},
            {"code": "temp_unit_convert", "value": "c", "time": ...}   <- ignored
        ]
    }

WHAT WE KEEP:
------------
    temp_current    -> temperature = value / 10   (Tuya sends tenths of °C)
    humidity_value  -> humidity    = value
    battery_state   -> battery     = high:100, medium:50, low:20, very_low:10
                                     (or the number itself if it's numeric)

The reading's timestamp is the LATEST `time` across all properties - we
treat the reading as "the freshest thing the device told us".

Bad input never raises. Anything we can't make sense of just leaves that
field empty.
"""

import logging
import math
from typing import Any, Optional

from tuya_collector.models import SensorReading

logger = logging.getLogger(__name__)


BATTERY_LEVELS = {
    "high": 100.0,
    "medium": 50.0,
    "low": 20.0,
    "very_low": 10.0,
}


def safe_number(value) -> Optional[float]:
    """Convert to float, or None for None / bools / junk strings / NaN / infinity."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_battery(value) -> Optional[float]:
    if isinstance(value, str):
        level = BATTERY_LEVELS.get(value.strip().lower())
        if level is None:
            logger.debug(f"Unknown battery_state category: {value!r}")
        return level
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return safe_number(value)
    return None


def parse_sensor_properties(raw: Any) -> SensorReading:
    """
    Build a reading from a raw `shadow/properties` result.

    Args:
        raw: Whatever Tuya returned as `result` (may be None or malformed)

    Returns:
        A SensorReading - all fields None if nothing usable was found
    """
    if not isinstance(raw, dict):
        return SensorReading()

    properties = raw.get("properties")
    if not isinstance(properties, list):
        return SensorReading()

    values: dict[str, Optional[float]] = {}
    latest_time: Optional[int] = None

    for prop in properties:
        if not isinstance(prop, dict):
            continue

        prop_time = safe_number(prop.get("time"))
        if prop_time is not None and (latest_time is None or prop_time > latest_time):
            latest_time = int(prop_time)

        code = prop.get("code")
        value = prop.get("value")

        if code == "temp_current":
            number = safe_number(value)
            values["temperature"] = number / 10 if number is not None else None
        elif code == "humidity_value":
            values["humidity"] = safe_number(value)
        elif code == "battery_state":
            values["battery"] = parse_battery(value)

    return SensorReading(timestamp=latest_time, **values)
