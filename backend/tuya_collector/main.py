"""
Tuya Sensor Collector - Batch Entry Point
=========================================
Reads temperature / humidity / battery from Tuya cloud sensors and writes
them to InfluxDB and/or QuestDB. One pass, then exit.

ARCHITECTURE:
    This runs on a schedule (cron, systemd timer, ...). Every run:

    [Tuya Cloud API] --signed HTTPS--> [This Collector] --+--> [InfluxDB]
                                                          |
                                                          +--> [QuestDB]

HOW TO RUN:
    # Install
    pip install -e .

    # Configure (see Config below for every variable)
    cp .env.example .env

    # Run once
    tuya-collector

    # Or every 5 minutes from cron
    */5 * * * * cd /opt/tuya-collector && .venv/bin/tuya-collector

EXIT CODES:
    0 - run finished (individual devices may still have failed, see the log)
    1 - bad configuration, Tuya authentication failed, or a database
        could not accept writes at all
"""

import asyncio
import json
import logging
import os
import sys
from typing import Mapping, Optional

from dotenv import load_dotenv

from tuya_collector.models import SinkType
from tuya_collector.services import SensorCollector, TuyaAPIError, TuyaClient
from tuya_collector.services.sinks import build_sinks
from tuya_collector.utils.validation import parse_csv_list, validate_device_id, validate_timeout_ms

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

class ConfigError(ValueError):
    """A required setting is missing or a setting can't be understood."""
    pass


class Config:
    """
    Collector configuration loaded from environment variables.

    Environment Variables:
        TUYA_CLIENT_ID: Tuya cloud project Access ID (required)
        TUYA_CLIENT_SECRET: Tuya cloud project Access Secret (required)
        TUYA_BASE_URL: Tuya data center host (default: openapi.tuyaeu.com)
        TUYA_REQUEST_TIMEOUT: Per-request timeout in ms (default: 30000)
        TUYA_DEVICE_IDS: Comma-separated device ids (required)
        WRITE_DB: Comma-separated backends: influxdb, questdb (default: influxdb)
        INFLUXDB_URL: InfluxDB URL (default: http://localhost:8086)
        INFLUXDB_TOKEN: InfluxDB API token (required when writing to influxdb)
        INFLUXDB_ORG: InfluxDB organization (default: default)
        INFLUXDB_BUCKET: InfluxDB bucket (default: tuya)
        QUESTDB_URL: QuestDB HTTP URL (default: http://localhost:9000)

    Everything is checked up front - a bad config never gets as far as the
    network.
    """

    DEFAULT_TUYA_BASE_URL = "openapi.tuyaeu.com"
    DEFAULT_REQUEST_TIMEOUT_MS = 30_000
    DEFAULT_WRITE_DB = "influxdb"
    DEFAULT_INFLUXDB_URL = "http://localhost:8086"
    DEFAULT_INFLUXDB_ORG = "default"
    DEFAULT_INFLUXDB_BUCKET = "tuya"
    DEFAULT_QUESTDB_URL = "http://localhost:9000"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        device_ids: list[str],
        base_url: str = DEFAULT_TUYA_BASE_URL,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        write_db: Optional[list[SinkType]] = None,
        influxdb_url: str = DEFAULT_INFLUXDB_URL,
        influxdb_token: Optional[str] = None,
        influxdb_org: str = DEFAULT_INFLUXDB_ORG,
        influxdb_bucket: str = DEFAULT_INFLUXDB_BUCKET,
        questdb_url: str = DEFAULT_QUESTDB_URL,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.device_ids = device_ids
        self.base_url = base_url
        self.request_timeout_ms = request_timeout_ms
        self.write_db = write_db if write_db is not None else [SinkType.INFLUXDB]
        self.influxdb_url = influxdb_url
        self.influxdb_token = influxdb_token
        self.influxdb_org = influxdb_org
        self.influxdb_bucket = influxdb_bucket
        self.questdb_url = questdb_url

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build and validate the config from environment variables.

        Args:
            env: Variables to read (defaults to os.environ)

        Raises:
            ConfigError: something required is missing or invalid
        """
        env = os.environ if env is None else env

        client_id = env.get("TUYA_CLIENT_ID", "").strip()
        client_secret = env.get("TUYA_CLIENT_SECRET", "").strip()
        if not client_id or not client_secret:
            raise ConfigError("TUYA_CLIENT_ID and TUYA_CLIENT_SECRET must be set in .env file")

        device_ids = parse_csv_list(env.get("TUYA_DEVICE_IDS"))
        if not device_ids:
            raise ConfigError("TUYA_DEVICE_IDS must be set in .env file (comma-separated list)")
        bad_ids = [d for d in device_ids if not validate_device_id(d)]
        if bad_ids:
            raise ConfigError(f"Invalid device id(s) in TUYA_DEVICE_IDS: {', '.join(bad_ids)}")

        raw_timeout = env.get("TUYA_REQUEST_TIMEOUT", "").strip()
        request_timeout_ms = cls.DEFAULT_REQUEST_TIMEOUT_MS
        if raw_timeout:
            try:
                request_timeout_ms = int(raw_timeout)
            except ValueError:
                raise ConfigError(f"TUYA_REQUEST_TIMEOUT must be a number of milliseconds, got {raw_timeout!r}")
            if not validate_timeout_ms(request_timeout_ms):
                raise ConfigError(f"TUYA_REQUEST_TIMEOUT out of range: {request_timeout_ms}")

        write_db = []
        for name in parse_csv_list((env.get("WRITE_DB") or cls.DEFAULT_WRITE_DB).lower()):
            try:
                sink_type = SinkType(name)
            except ValueError:
                choices = ", ".join(t.value for t in SinkType)
                raise ConfigError(f"Unknown WRITE_DB backend {name!r} (choose from: {choices})")
            if sink_type not in write_db:
                write_db.append(sink_type)

        influxdb_token = env.get("INFLUXDB_TOKEN") or None
        if SinkType.INFLUXDB in write_db and not influxdb_token:
            raise ConfigError("INFLUXDB_TOKEN must be set when WRITE_DB includes influxdb")

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            device_ids=device_ids,
            base_url=env.get("TUYA_BASE_URL") or cls.DEFAULT_TUYA_BASE_URL,
            request_timeout_ms=request_timeout_ms,
            write_db=write_db,
            influxdb_url=env.get("INFLUXDB_URL") or cls.DEFAULT_INFLUXDB_URL,
            influxdb_token=influxdb_token,
            influxdb_org=env.get("INFLUXDB_ORG") or cls.DEFAULT_INFLUXDB_ORG,
            influxdb_bucket=env.get("INFLUXDB_BUCKET") or cls.DEFAULT_INFLUXDB_BUCKET,
            questdb_url=env.get("QUESTDB_URL") or cls.DEFAULT_QUESTDB_URL,
        )


def configure_logging(level: Optional[str] = None):
    """Log to stderr so stdout stays clean for the JSON summary."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


# =============================================================================
# THE RUN
# =============================================================================

async def run(config: Config) -> int:
    """
    Do one collection pass and print the per-device summary as JSON.

    Returns:
        Process exit code (0 or 1)
    """
    logger.info("Initializing Tuya Cloud API client...")
    logger.info(f"Client ID: {config.client_id}")
    logger.info(f"Base URL: {config.base_url}")
    logger.info(f"Device IDs: {', '.join(config.device_ids)}")
    logger.info(f"Writing to: {', '.join(t.value for t in config.write_db) or 'nothing'}")

    client = TuyaClient(
        client_id=config.client_id,
        client_secret=config.client_secret,
        base_url=config.base_url,
        request_timeout_ms=config.request_timeout_ms,
    )
    try:
        sinks = build_sinks(config)
    except Exception:
        await client.close()
        raise
    collector = SensorCollector(client, sinks)

    try:
        report = await collector.run(config.device_ids)
    except TuyaAPIError as e:
        # AuthError lands here: without a token no reading can be trusted
        logger.error(f"Error: {e}")
        return 1
    finally:
        await collector.close()

    print(json.dumps([outcome.summary() for outcome in report.fetch_outcomes], indent=2))

    for sink_name, results in report.write_results.items():
        rendered = [r.model_dump(mode="json", exclude_none=True) for r in results]
        logger.info(f"{sink_name} write results: {json.dumps(rendered)}")
    for sink_name, message in report.sink_errors.items():
        logger.error(f"{sink_name} could not write this batch: {message}")

    return 0 if report.succeeded else 1


def main() -> int:
    # Load environment variables from .env file
    load_dotenv()
    configure_logging()

    try:
        config = Config.from_env()
    except ConfigError as e:
        logger.error(f"Error: {e}")
        return 1

    return asyncio.run(run(config))


if __name__ == "__main__":
    sys.exit(main())
