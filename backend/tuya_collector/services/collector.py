"""
Sensor Collector
================

This is the BRAIN of a collection run!

WHAT ONE RUN DOES:
-----------------
1. Authenticate with Tuya (if this fails, nothing else can work - we stop)
2. Look up every device's custom name (nice to have - we carry on without it)
3. Fetch each device's readings, one device at a time
4. Hand the results to every configured database AT THE SAME TIME
5. Return a RunReport with what happened

    Tuya ----> [fetch dev1, dev2, dev3] ----> outcomes
                                                 |
                          +----------------------+----------------------+
                          v                                             v
                   InfluxDBSink.write_many                  QuestDBSink.write_many
                          |                                             |
                          +-------------------> RunReport <-------------+

A database that falls over completely (e.g. QuestDB table can't be created)
is recorded in the report and does NOT stop the other database.
"""

import asyncio
import logging

from tuya_collector.models import RunReport
from tuya_collector.services.fetch_orchestrator import FetchOrchestrator
from tuya_collector.services.sinks import TimeSeriesSink
from tuya_collector.services.tuya_client import AuthError, TuyaAPIError, TuyaClient

logger = logging.getLogger(__name__)


class SensorCollector:
    """
    Runs one batch: Tuya -> readings -> every active sink.

    HOW TO USE:
    ----------
    collector = SensorCollector(client, sinks=[InfluxDBSink(...), QuestDBSink(...)])
    try:
        report = await collector.run(["dev1", "dev2"])
    finally:
        await collector.close()
    """

    def __init__(self, client: TuyaClient, sinks: list[TimeSeriesSink]):
        self.client = client
        self.sinks = sinks
        self.orchestrator = FetchOrchestrator(client)

    async def run(self, device_ids: list[str]) -> RunReport:
        """
        Do one full collection pass.

        Raises:
            AuthError: Tuya wouldn't give us a token - the whole run is off
        """
        logger.info("Authenticating...")
        await self.client.authenticate()
        logger.info("Authentication successful")

        device_names = await self._load_device_names(device_ids)

        logger.info(f"Fetching data for {len(device_ids)} devices...")
        outcomes = await self.orchestrator.fetch_all(device_ids)
        report = RunReport(fetch_outcomes=outcomes)

        if not self.sinks:
            return report

        results = await asyncio.gather(
            *[sink.write_many(outcomes, device_names) for sink in self.sinks],
            return_exceptions=True,
        )

        for sink, result in zip(self.sinks, results):
            if isinstance(result, Exception):
                logger.error(f"[{sink.name}] Batch write failed: {result}")
                report.sink_errors[sink.name] = str(result) or result.__class__.__name__
            elif isinstance(result, BaseException):
                raise result
            else:
                written = sum(1 for r in result if r.written)
                logger.info(f"[{sink.name}] {written}/{len(result)} readings written")
                report.write_results[sink.name] = result

        return report

    async def _load_device_names(self, device_ids: list[str]) -> dict[str, str]:
        try:
            return await self.orchestrator.fetch_device_names(device_ids)
        except AuthError:
            raise
        except TuyaAPIError as e:
            logger.warning(f"Could not load device names, writing without custom_name: {e}")
            return {}

    async def close(self):
        """Close every sink and the Tuya client."""
        for sink in self.sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.error(f"[{sink.name}] Error while closing: {e}")
        await self.client.close()
