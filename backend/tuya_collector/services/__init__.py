"""
Services Package
================

These are the "workers" that do the actual work.

- signer: Builds Tuya request signatures
- TuyaClient: Talks to the Tuya cloud (token + device calls)
- parse_sensor_properties: Turns Tuya properties into a SensorReading
- FetchOrchestrator: Fetches every device without letting one failure spread
- sinks: Where readings get written (InfluxDB, QuestDB)
- SensorCollector: The boss that runs a whole collection pass
"""

from .tuya_client import TuyaClient, TuyaAPIError, AuthError, FetchError
from .sensor_parser import parse_sensor_properties
from .fetch_orchestrator import FetchOrchestrator
from .collector import SensorCollector

__all__ = [
    "TuyaClient",
    "TuyaAPIError",
    "AuthError",
    "FetchError",
    "parse_sensor_properties",
    "FetchOrchestrator",
    "SensorCollector",
]
