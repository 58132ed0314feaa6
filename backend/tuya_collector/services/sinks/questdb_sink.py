"""
QuestDB Sink
============

Writes readings into QuestDB using InfluxDB line protocol over HTTP.

QUESTDB ENDPOINTS WE USE:
------------------------
- GET  /exec?query=<sql>        - run SQL (we only use it to create the table)
- POST /write?precision=ms      - ingest line protocol, timestamps in ms

THE TABLE:
---------
    temp (
        device_id   SYMBOL,
        custom_name SYMBOL,
        temperature DOUBLE,
        humidity    DOUBLE,
        battery     DOUBLE,
        timestamp   TIMESTAMP
    ) partitioned by day, deduplicated on (timestamp, device_id)

Because of the dedup keys, sending the same device + timestamp twice
overwrites the row instead of duplicating it - so re-running a batch is safe.

The table is created lazily before the first write, once per sink.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from tuya_collector.models import SensorReading, WriteOutcome, WriteSkipReason
from tuya_collector.services.sinks.base import (
    MEASUREMENT,
    SchemaError,
    TimeSeriesSink,
    WriteError,
)
from tuya_collector.utils.line_protocol import build_line

logger = logging.getLogger(__name__)


TEMP_TABLE_SQL = " ".join([
    f"CREATE TABLE IF NOT EXISTS {MEASUREMENT} (",
    "  device_id SYMBOL,",
    "  custom_name SYMBOL,",
    "  temperature DOUBLE,",
    "  humidity DOUBLE,",
    "  battery DOUBLE,",
    "  timestamp TIMESTAMP",
    ") TIMESTAMP(timestamp) PARTITION BY DAY",
    "DEDUP UPSERT KEYS(timestamp, device_id);",
])


class QuestDBSink(TimeSeriesSink):
    """Line-protocol-over-HTTP QuestDB writer."""

    name = "questdb"

    # Max lines per POST for bulk writes (keeps request bodies reasonable)
    BATCH_SIZE = 5000

    def __init__(
        self,
        url: str = "http://localhost:9000",
        request_timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: QuestDB HTTP endpoint, e.g. "http://localhost:9000"
            request_timeout: Seconds to wait for QuestDB
            http_client: Optional pre-built httpx client (tests use a mock transport)
        """
        self.url = url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=request_timeout)
        self._table_ensured = False
        self._table_lock = asyncio.Lock()

    # =========================================================================
    # SCHEMA
    # =========================================================================

    async def ensure_table(self):
        """
        Create the temp table if it doesn't exist.

        Only the first successful call talks to QuestDB. A failure is not
        remembered, so the next call tries again.

        Raises:
            SchemaError: QuestDB unreachable or rejected the DDL
        """
        if self._table_ensured:
            return

        async with self._table_lock:
            if self._table_ensured:
                return

            url = f"{self.url}/exec?query={quote(TEMP_TABLE_SQL, safe='')}"
            try:
                response = await self.http_client.get(url)
            except httpx.HTTPError as e:
                raise SchemaError(f"QuestDB table bootstrap failed: {e}") from e

            if not response.is_success:
                raise SchemaError(
                    f"QuestDB table bootstrap failed: HTTP {response.status_code}: {response.text[:500]}"
                )

            self._table_ensured = True
            logger.info(f"[QuestDB] Table '{MEASUREMENT}' ready")

    async def prepare(self):
        await self.ensure_table()

    # =========================================================================
    # WRITES
    # =========================================================================

    def build_line(self, device_id: str, reading: SensorReading, custom_name: Optional[str]) -> Optional[str]:
        """ILP line for one reading (None if it has no fields)."""
        return build_line(
            MEASUREMENT,
            {"device_id": device_id, "custom_name": custom_name},
            reading.metric_fields(),
            reading.timestamp,
        )

    async def _post_lines(self, body: str):
        try:
            response = await self.http_client.post(
                f"{self.url}/write?precision=ms",
                content=body.encode("utf-8"),
            )
        except httpx.HTTPError as e:
            raise WriteError(str(e) or e.__class__.__name__) from e

        if not response.is_success:
            raise WriteError(f"HTTP {response.status_code}: {response.text[:500]}")

    async def write_point(self, device_id: str, reading: SensorReading, custom_name: Optional[str]) -> WriteOutcome:
        line = self.build_line(device_id, reading, custom_name)
        if line is None:
            return WriteOutcome.skipped(device_id, WriteSkipReason.NO_FIELDS)

        await self._post_lines(line)
        logger.debug(f"[QuestDB] Wrote {device_id}: {line.strip()}")
        return WriteOutcome.success(device_id)

    async def write_lines(self, lines: list[str], batch_size: Optional[int] = None) -> int:
        """
        Bulk-write pre-built ILP lines in chunks.

        Used by the InfluxDB -> QuestDB migration. Stops at the first chunk
        QuestDB rejects.

        Args:
            lines: Newline-terminated ILP lines
            batch_size: Lines per request (default BATCH_SIZE)

        Returns:
            Number of lines written

        Raises:
            SchemaError: the table could not be created
            WriteError: a chunk was rejected
        """
        await self.ensure_table()

        size = batch_size or self.BATCH_SIZE
        total = len(lines)
        for start in range(0, total, size):
            await self._post_lines("".join(lines[start:start + size]))
            logger.info(f"[QuestDB] {min(start + size, total)} / {total}")
        return total

    async def close(self):
        await self.http_client.aclose()
