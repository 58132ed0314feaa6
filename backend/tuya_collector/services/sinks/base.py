"""
Time-Series Sink Interface
==========================

Every database we write readings into implements TimeSeriesSink.

THE CONTRACT:
------------
write_many(fetch_outcomes, device_names) gives back one WriteOutcome for
every SUCCESSFUL fetch outcome (failed fetches are never written):

    no timestamp       -> written=False, reason=no_timestamp   (no network call)
    no metric fields   -> written=False, reason=no_fields      (no network call)
    store accepted it  -> written=True
    store said no      -> written=False, reason=error, error_message=...

All the writes for a batch run at the same time. One failing write never
stops or fails the others.

Every point looks the same in every store:
    measurement: temp
    tags:        device_id, custom_name (only if the device has one)
    fields:      temperature, humidity, battery (only the ones present)

Adding a backend = subclass this, implement write_point, register it in
build_sinks(). The collector doesn't need to change.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from tuya_collector.models import FetchOutcome, SensorReading, WriteOutcome, WriteSkipReason

logger = logging.getLogger(__name__)


MEASUREMENT = "temp"


# =============================================================================
# ERRORS
# =============================================================================

class SinkError(Exception):
    """Base exception for time-series sink failures."""
    pass


class WriteError(SinkError):
    """A point (or a chunk of lines) was rejected or could not be sent."""
    pass


class SchemaError(SinkError):
    """The destination table could not be created."""
    pass


# =============================================================================
# THE INTERFACE
# =============================================================================

class TimeSeriesSink(ABC):
    """Base class for the InfluxDB and QuestDB writers."""

    name: str = "sink"

    async def prepare(self):
        """Runs once before a batch's writes (e.g. make sure the table exists)."""
        pass

    async def finish(self):
        """Runs once after a batch's writes (e.g. flush buffered points)."""
        pass

    @abstractmethod
    async def write_point(
        self,
        device_id: str,
        reading: SensorReading,
        custom_name: Optional[str],
    ) -> WriteOutcome:
        """
        Write one reading that already has a timestamp and at least one field.

        Raise on failure - write_many turns exceptions into error outcomes.
        """
        pass

    async def close(self):
        """Release connections."""
        pass

    async def write_many(
        self,
        outcomes: list[FetchOutcome],
        device_names: Optional[dict[str, str]] = None,
    ) -> list[WriteOutcome]:
        """
        Write every successful fetch outcome, concurrently.

        Args:
            outcomes: Fetch outcomes from the orchestrator (failures are skipped)
            device_names: Device id -> custom name, used for the custom_name tag

        Returns:
            One WriteOutcome per successful outcome that carried a reading,
            in the same order

        Raises:
            SinkError: only from prepare(), when the sink can't take any writes
        """
        names = device_names or {}
        writable = [o for o in outcomes if o.success and o.reading is not None]

        await self.prepare()

        results = await asyncio.gather(*[
            self._write_one(o.device_id, o.reading, names.get(o.device_id))
            for o in writable
        ])

        await self.finish()
        return list(results)

    async def _write_one(
        self,
        device_id: str,
        reading: SensorReading,
        custom_name: Optional[str],
    ) -> WriteOutcome:
        if not reading.timestamp:
            logger.info(f"[{self.name}] Skipping {device_id}: no timestamp")
            return WriteOutcome.skipped(device_id, WriteSkipReason.NO_TIMESTAMP)

        if not reading.metric_fields():
            logger.info(f"[{self.name}] Skipping {device_id}: no fields")
            return WriteOutcome.skipped(device_id, WriteSkipReason.NO_FIELDS)

        try:
            return await self.write_point(device_id, reading, custom_name)
        except Exception as e:
            logger.error(f"[{self.name}] Write failed for {device_id}: {e}")
            return WriteOutcome.error(device_id, str(e) or e.__class__.__name__)
