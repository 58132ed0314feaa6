"""
InfluxDB -> QuestDB Migration
=============================

One-off tool that copies every `temp` point already stored in InfluxDB into
QuestDB, so QuestDB has the full history and not just what was collected
after it was switched on.

HOW IT WORKS:
    1. Query InfluxDB for every temp point, pivoted so each row has
       temperature / humidity / battery side by side
    2. Turn each row into a line protocol line
    3. Write the lines to QuestDB in chunks of 5000 (QuestDBSink.write_lines)

Safe to run more than once: QuestDB dedups on (timestamp, device_id).

HOW TO RUN:
    tuya-migrate        # reads the same .env as the collector
"""

import asyncio
import logging
import os
import sys
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from influxdb_client import InfluxDBClient

from tuya_collector.main import Config, configure_logging
from tuya_collector.services.sinks import MEASUREMENT, QuestDBSink
from tuya_collector.utils.line_protocol import build_line

logger = logging.getLogger(__name__)


FLUX_QUERY = """
from(bucket: "{bucket}")
  |> range(start: 0)
  |> filter(fn: (r) => r["_measurement"] == "{measurement}")
  |> pivot(rowKey: ["_time", "device_id", "custom_name"], columnKey: ["_field"], valueColumn: "_value")
"""


def _to_epoch_ms(value) -> Optional[int]:
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return None


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def row_to_line(row: dict) -> Optional[str]:
    """
    Convert one pivoted InfluxDB row to an ILP line for QuestDB.

    Returns:
        The line, or None if the row has no usable time or no fields
    """
    timestamp_ms = _to_epoch_ms(row.get("_time"))
    if timestamp_ms is None:
        return None

    fields = {
        "temperature": _to_float(row.get("temperature")),
        "humidity": _to_float(row.get("humidity")),
        "battery": _to_float(row.get("battery")),
    }
    tags = {
        "device_id": row.get("device_id") or "",
        "custom_name": row.get("custom_name"),
    }
    return build_line(MEASUREMENT, tags, fields, timestamp_ms)


def read_influx_rows(client: InfluxDBClient, bucket: str, org: str) -> list[dict]:
    """Read every temp row from InfluxDB (blocking)."""
    query = FLUX_QUERY.format(bucket=bucket, measurement=MEASUREMENT)
    tables = client.query_api().query(query, org=org)
    return [record.values for table in tables for record in table.records]


async def migrate(client: InfluxDBClient, sink: QuestDBSink, bucket: str, org: str) -> int:
    """
    Copy all temp points from InfluxDB into QuestDB.

    Returns:
        Number of lines written to QuestDB
    """
    logger.info("Querying InfluxDB...")
    rows = await asyncio.to_thread(read_influx_rows, client, bucket, org)
    logger.info(f"Read {len(rows)} rows from InfluxDB")

    if not rows:
        logger.info("Nothing to migrate.")
        return 0

    lines = [line for line in (row_to_line(row) for row in rows) if line]
    logger.info(f"Writing {len(lines)} rows to QuestDB in batches of {sink.BATCH_SIZE}...")
    written = await sink.write_lines(lines)
    logger.info("Done.")
    return written


async def _run(influx_url: str, token: str, org: str, bucket: str, questdb_url: str) -> int:
    client = InfluxDBClient(url=influx_url, token=token, org=org)
    sink = QuestDBSink(url=questdb_url)
    try:
        await migrate(client, sink, bucket, org)
    finally:
        await sink.close()
        client.close()
    return 0


def main() -> int:
    load_dotenv()
    configure_logging()

    token = os.getenv("INFLUXDB_TOKEN")
    if not token:
        logger.error("Set INFLUXDB_TOKEN in .env")
        return 1

    try:
        return asyncio.run(_run(
            influx_url=os.getenv("INFLUXDB_URL") or Config.DEFAULT_INFLUXDB_URL,
            token=token,
            org=os.getenv("INFLUXDB_ORG") or Config.DEFAULT_INFLUXDB_ORG,
            bucket=os.getenv("INFLUXDB_BUCKET") or Config.DEFAULT_INFLUXDB_BUCKET,
            questdb_url=os.getenv("QUESTDB_URL") or Config.DEFAULT_QUESTDB_URL,
        ))
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
