"""
Sinks Package
=============

The time-series databases readings end up in.

- TimeSeriesSink: The interface every backend implements
- InfluxDBSink: InfluxDB 2.x via influxdb-client (buffered, flushed at the end)
- QuestDBSink: QuestDB via line protocol over HTTP
- build_sinks: Turns the WRITE_DB setting into a list of ready sinks
"""

from tuya_collector.models import SinkType

from .base import MEASUREMENT, SchemaError, SinkError, TimeSeriesSink, WriteError
from .influxdb_sink import InfluxDBSink
from .questdb_sink import QuestDBSink, TEMP_TABLE_SQL


def build_sinks(config) -> list[TimeSeriesSink]:
    """
    Create one sink per backend selected in config.write_db.

    Args:
        config: Anything with write_db (list[SinkType]) plus the influxdb_* /
                questdb_* connection settings (see main.Config)

    Returns:
        Sinks in the order they were selected
    """
    sinks: list[TimeSeriesSink] = []
    for sink_type in config.write_db:
        if sink_type == SinkType.INFLUXDB:
            sinks.append(InfluxDBSink(
                url=config.influxdb_url,
                token=config.influxdb_token,
                org=config.influxdb_org,
                bucket=config.influxdb_bucket,
            ))
        elif sink_type == SinkType.QUESTDB:
            sinks.append(QuestDBSink(url=config.questdb_url))
    return sinks


__all__ = [
    "MEASUREMENT",
    "TEMP_TABLE_SQL",
    "SinkError",
    "WriteError",
    "SchemaError",
    "TimeSeriesSink",
    "InfluxDBSink",
    "QuestDBSink",
    "build_sinks",
]
