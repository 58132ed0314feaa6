"""
Tests for QuestDBSink against a fake QuestDB HTTP server.
"""

import asyncio
from urllib.parse import unquote

import httpx
import pytest

from tuya_collector.models import FetchOutcome, SensorReading, WriteSkipReason
from tuya_collector.services.sinks import QuestDBSink, SchemaError, TEMP_TABLE_SQL, WriteError


class FakeQuestDB:
    """
    Just enough of QuestDB's HTTP API: /exec for DDL and /write for ILP.

    Rows are stored keyed on (timestamp, device_id) once the dedup table has
    been created, mimicking DEDUP UPSERT KEYS.
    """

    def __init__(self):
        self.ddl: list[str] = []
        self.write_bodies: list[str] = []
        self.rows: dict[tuple, str] = {}
        self.fail_exec = False
        self.reject_devices: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/exec":
            if self.fail_exec:
                return httpx.Response(500, text="disk full")
            query = unquote(request.url.raw_path.decode().split("query=", 1)[1])
            self.ddl.append(query)
            return httpx.Response(200, json={"ddl": "OK"})

        if request.url.path == "/write":
            assert request.url.params["precision"] == "ms"
            body = request.content.decode()
            self.write_bodies.append(body)
            for line in body.splitlines():
                device_id = line.split(",")[1].split(" ")[0].split("=")[1]
                if device_id in self.reject_devices:
                    return httpx.Response(400, text=f"bad line for {device_id}")
                timestamp = line.rsplit(" ", 1)[1]
                dedup = any("DEDUP UPSERT KEYS(timestamp, device_id)" in q for q in self.ddl)
                key = (timestamp, device_id) if dedup else (timestamp, device_id, len(self.rows))
                self.rows[key] = line
            return httpx.Response(204)

        return httpx.Response(404)


@pytest.fixture
def questdb() -> FakeQuestDB:
    return FakeQuestDB()


@pytest.fixture
def sink(questdb) -> QuestDBSink:
    return QuestDBSink(
        url="http://questdb:9000/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(questdb.handler)),
    )


def ok(device_id, **reading) -> FetchOutcome:
    return FetchOutcome.ok(device_id, SensorReading(**reading), raw_payload={})


class TestEnsureTable:

    @pytest.mark.asyncio
    async def test_issues_ddl_once(self, sink, questdb):
        await sink.ensure_table()
        await sink.ensure_table()
        await sink.write_many([ok("dev1", temperature=20, timestamp=1)])

        assert questdb.ddl == [TEMP_TABLE_SQL]

    @pytest.mark.asyncio
    async def test_concurrent_callers_issue_ddl_once(self, sink, questdb):
        await asyncio.gather(*[sink.ensure_table() for _ in range(5)])
        assert len(questdb.ddl) == 1

    def test_table_definition(self):
        assert TEMP_TABLE_SQL.startswith("CREATE TABLE IF NOT EXISTS temp (")
        for column in ["device_id SYMBOL", "custom_name SYMBOL", "temperature DOUBLE",
                       "humidity DOUBLE", "battery DOUBLE", "timestamp TIMESTAMP"]:
            assert column in TEMP_TABLE_SQL
        assert "TIMESTAMP(timestamp) PARTITION BY DAY" in TEMP_TABLE_SQL
        assert "DEDUP UPSERT KEYS(timestamp, device_id)" in TEMP_TABLE_SQL

    @pytest.mark.asyncio
    async def test_failure_raises_and_is_retried(self, sink, questdb):
        questdb.fail_exec = True
        with pytest.raises(SchemaError, match="disk full"):
            await sink.write_many([ok("dev1", temperature=20, timestamp=1)])
        assert questdb.write_bodies == []

        questdb.fail_exec = False
        await sink.ensure_table()
        assert len(questdb.ddl) == 1


class TestWriteMany:

    @pytest.mark.asyncio
    async def test_writes_each_point_separately(self, sink, questdb):
        results = await sink.write_many(
            [
                ok("dev1", temperature=21.5, humidity=55, battery=100, timestamp=1_700_000_000_000),
                ok("dev2", humidity=40, timestamp=1_700_000_000_500),
            ],
            {"dev1": "Living Room", "dev2": ""},
        )

        assert [r.written for r in results] == [True, True]
        assert sorted(questdb.write_bodies) == sorted([
            "temp,device_id=dev1,custom_name=Living\\ Room "
            "temperature=21.5,humidity=55.0,battery=100.0 1700000000000\n",
            "temp,device_id=dev2 humidity=40.0 1700000000500\n",
        ])

    @pytest.mark.asyncio
    async def test_skips_and_failures(self, sink, questdb):
        outcomes = [
            ok("no_ts", temperature=20),
            ok("no_fields", timestamp=5),
            FetchOutcome.failed("fetch_failed", "boom"),
            ok("fine", temperature=20, timestamp=5),
        ]

        results = await sink.write_many(outcomes)

        assert [(r.device_id, r.written, r.reason) for r in results] == [
            ("no_ts", False, WriteSkipReason.NO_TIMESTAMP),
            ("no_fields", False, WriteSkipReason.NO_FIELDS),
            ("fine", True, None),
        ]
        assert len(questdb.write_bodies) == 1

    @pytest.mark.asyncio
    async def test_rejected_point_does_not_block_others(self, sink, questdb):
        questdb.reject_devices = {"dev2"}

        results = await sink.write_many([
            ok("dev1", temperature=20, timestamp=1),
            ok("dev2", temperature=20, timestamp=1),
            ok("dev3", temperature=20, timestamp=1),
        ])

        assert [r.written for r in results] == [True, False, True]
        assert results[1].reason == WriteSkipReason.ERROR
        assert results[1].error_message == "HTTP 400: bad line for dev2"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_error_outcome(self, questdb):
        def handler(request):
            if request.url.path == "/exec":
                return httpx.Response(200)
            raise httpx.ConnectError("connection refused")

        sink = QuestDBSink(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        results = await sink.write_many([ok("dev1", temperature=20, timestamp=1)])

        assert results[0].written is False
        assert results[0].reason == WriteSkipReason.ERROR
        assert "connection refused" in results[0].error_message

    @pytest.mark.asyncio
    async def test_replayed_point_is_deduplicated(self, sink, questdb):
        point = ok("dev1", temperature=20, timestamp=1_700_000_000_000)

        await sink.write_many([point])
        await sink.write_many([point])

        assert len(questdb.write_bodies) == 2
        assert list(questdb.rows) == [("1700000000000", "dev1")]


class TestWriteLines:

    @pytest.mark.asyncio
    async def test_chunks_at_batch_size(self, sink, questdb):
        lines = [f"temp,device_id=d{i} temperature=1.0 {i}\n" for i in range(12_001)]

        written = await sink.write_lines(lines)

        assert written == 12_001
        assert [body.count("\n") for body in questdb.write_bodies] == [5000, 5000, 2001]
        assert "".join(questdb.write_bodies) == "".join(lines)

    @pytest.mark.asyncio
    async def test_custom_chunk_size(self, sink, questdb):
        lines = [f"temp,device_id=d temperature=1.0 {i}\n" for i in range(5)]
        await sink.write_lines(lines, batch_size=2)
        assert len(questdb.write_bodies) == 3

    @pytest.mark.asyncio
    async def test_rejected_chunk_raises(self, sink, questdb):
        questdb.reject_devices = {"bad"}
        with pytest.raises(WriteError, match="HTTP 400"):
            await sink.write_lines(["temp,device_id=bad temperature=1.0 1\n"])

    @pytest.mark.asyncio
    async def test_empty_input_only_ensures_table(self, sink, questdb):
        assert await sink.write_lines([]) == 0
        assert questdb.write_bodies == []
        assert len(questdb.ddl) == 1
