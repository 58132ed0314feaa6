"""
Fetch Orchestrator
==================

Fetches every configured device, one at a time, and never lets one broken
device spoil the rest.

    ["dev1", "dev2", "dev3"]
            |
            |  for each device (in order):
            |     get properties -> parse -> success outcome
            |     anything goes wrong -> failure outcome
            v
    [FetchOutcome(dev1), FetchOutcome(dev2), FetchOutcome(dev3)]

Same length, same order as the input. Always.
"""

import logging

from tuya_collector.models import FetchOutcome
from tuya_collector.services.sensor_parser import parse_sensor_properties
from tuya_collector.services.tuya_client import TuyaClient

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """Runs the per-device fetch loop against a TuyaClient."""

    def __init__(self, client: TuyaClient):
        self.client = client

    async def fetch_device(self, device_id: str) -> FetchOutcome:
        """Fetch and parse one device. Never raises."""
        try:
            raw = await self.client.get_device_properties(device_id)
            reading = parse_sensor_properties(raw)
        except Exception as e:
            logger.error(f"[{device_id}] Fetch failed: {e}")
            return FetchOutcome.failed(device_id, str(e) or e.__class__.__name__)

        logger.info(
            f"[{device_id}] temperature={reading.temperature} "
            f"humidity={reading.humidity} battery={reading.battery} "
            f"timestamp={reading.timestamp}"
        )
        return FetchOutcome.ok(device_id, reading, raw)

    async def fetch_all(self, device_ids: list[str]) -> list[FetchOutcome]:
        """
        Fetch every device sequentially.

        Returns:
            One FetchOutcome per device id, in the same order
        """
        outcomes = []
        for device_id in device_ids:
            outcomes.append(await self.fetch_device(device_id))

        ok = sum(1 for outcome in outcomes if outcome.success)
        logger.info(f"Fetched {ok}/{len(outcomes)} devices successfully")
        return outcomes

    async def fetch_device_names(self, device_ids: list[str]) -> dict[str, str]:
        """
        Build the device id -> custom name index from Tuya's batch lookup.

        Devices without a custom name map to "". Raises whatever the client
        raises; the caller decides whether names are worth failing over.
        """
        names = {}
        batch = await self.client.get_device_batch(device_ids)
        if isinstance(batch, list):
            for device in batch:
                if not isinstance(device, dict) or device.get("id") is None:
                    continue
                custom_name = device.get("custom_name")
                names[str(device["id"])] = "" if custom_name is None else str(custom_name)
        return names
