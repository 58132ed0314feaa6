"""
InfluxDB Sink
=============

Writes readings into InfluxDB 2.x with the official influxdb-client library.

HOW IT WRITES:
-------------
Points are collected in memory while the batch runs and sent in ONE write
at the end (finish()). Each point's outcome is reported as soon as it is
buffered.

KNOWN GAP:
---------
If that final flush fails we log the error, but the outcomes already
handed back still say written=True. Nothing is retried or re-reported.
If you need to know a point really landed, check InfluxDB (or use the
QuestDB sink, which reports each write's real result).

Timestamps: Tuya property times are epoch milliseconds, the point is
written with nanosecond precision (ms * 1,000,000).
"""

import asyncio
import logging
from typing import Optional

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from tuya_collector.models import SensorReading, WriteOutcome
from tuya_collector.services.sinks.base import MEASUREMENT, TimeSeriesSink

logger = logging.getLogger(__name__)


class InfluxDBSink(TimeSeriesSink):
    """Buffered InfluxDB 2.x writer."""

    name = "influxdb"

    def __init__(
        self,
        url: str,
        token: str,
        org: str = "default",
        bucket: str = "tuya",
        client: Optional[InfluxDBClient] = None,
    ):
        """
        Args:
            url: InfluxDB URL, e.g. "http://localhost:8086"
            token: API token with write access to the bucket
            org: Organization name
            bucket: Bucket to write into
            client: Optional pre-built client (tests pass a mock)
        """
        self.url = url
        self.org = org
        self.bucket = bucket

        self.client = client or InfluxDBClient(url=url, token=token, org=org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)
        self._buffer: list[Point] = []

    def build_point(self, device_id: str, reading: SensorReading, custom_name: Optional[str]) -> Point:
        point = (
            Point(MEASUREMENT)
            .tag("device_id", device_id)
            .time(reading.timestamp * 1_000_000, WritePrecision.NS)
        )
        if custom_name is not None and custom_name != "":
            point.tag("custom_name", str(custom_name))

        for field_name, value in reading.metric_fields().items():
            point.field(field_name, value)
        return point

    async def write_point(self, device_id: str, reading: SensorReading, custom_name: Optional[str]) -> WriteOutcome:
        self._buffer.append(self.build_point(device_id, reading, custom_name))
        return WriteOutcome.success(device_id)

    async def finish(self):
        """Flush everything buffered during the batch. Errors are logged, not raised."""
        if not self._buffer:
            return

        points, self._buffer = self._buffer, []
        try:
            await asyncio.to_thread(
                self.write_api.write,
                bucket=self.bucket,
                org=self.org,
                record=points,
                write_precision=WritePrecision.NS,
            )
            logger.info(f"[InfluxDB] Flushed {len(points)} points to bucket '{self.bucket}'")
        except Exception as e:
            logger.error(f"[InfluxDB] Error flushing writes: {e}")

    async def close(self):
        await asyncio.to_thread(self.write_api.close)
        await asyncio.to_thread(self.client.close)
        logger.info("[InfluxDB] Connection closed")
