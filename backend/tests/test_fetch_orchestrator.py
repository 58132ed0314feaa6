"""
Tests for FetchOrchestrator: isolation, ordering, completeness.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tuya_collector.services.fetch_orchestrator import FetchOrchestrator
from tuya_collector.services.tuya_client import AuthError

from conftest import properties


class TestFetchAll:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 1, 4, 12])
    async def test_one_outcome_per_device_in_order(self, tuya_client, cloud, count):
        device_ids = [f"dev{i}" for i in range(count)]
        for i, device_id in enumerate(device_ids):
            if i % 3 == 1:
                cloud.devices[device_id] = httpx.ConnectError("boom")
            elif i % 3 == 2:
                cloud.devices[device_id] = "permission deny"
            else:
                cloud.devices[device_id] = properties(("temp_current", 200 + i, 1))

        outcomes = await FetchOrchestrator(tuya_client).fetch_all(device_ids)

        assert [o.device_id for o in outcomes] == device_ids
        for outcome in outcomes:
            assert outcome.success != (outcome.error_message is not None)

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_neighbours(self, tuya_client, cloud):
        cloud.devices["good1"] = properties(("temp_current", 215, 10))
        cloud.devices["bad"] = httpx.ConnectError("network down")
        cloud.devices["good2"] = properties(("humidity_value", 40, 20))

        outcomes = await FetchOrchestrator(tuya_client).fetch_all(["good1", "bad", "good2"])

        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[0].reading.temperature == pytest.approx(21.5)
        assert outcomes[0].raw_payload == cloud.devices["good1"]
        assert "network down" in outcomes[1].error_message
        assert outcomes[1].reading is None
        assert outcomes[2].reading.humidity == 40

    @pytest.mark.asyncio
    async def test_devices_are_fetched_sequentially(self, tuya_client, cloud):
        for device_id in ["a", "b", "c"]:
            cloud.devices[device_id] = properties(("temp_current", 200, 1))

        await FetchOrchestrator(tuya_client).fetch_all(["c", "a", "b"])

        fetched = [r.url.path.split("/")[4] for r in cloud.requests if "shadow" in r.url.path]
        assert fetched == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_auth_failure_becomes_failure_outcome(self):
        client = MagicMock()
        client.get_device_properties = AsyncMock(side_effect=AuthError("Authentication error: token expired"))

        outcomes = await FetchOrchestrator(client).fetch_all(["dev1", "dev2"])

        assert [o.success for o in outcomes] == [False, False]
        assert "token expired" in outcomes[0].error_message

    @pytest.mark.asyncio
    async def test_parser_never_fails_a_device(self, tuya_client, cloud):
        cloud.devices["dev1"] = None

        outcomes = await FetchOrchestrator(tuya_client).fetch_all(["dev1"])

        assert outcomes[0].success is True
        assert outcomes[0].reading.timestamp is None


class TestFetchDeviceNames:

    @pytest.mark.asyncio
    async def test_builds_name_index(self, tuya_client, cloud):
        cloud.batch = [
            {"id": "dev1", "custom_name": "Living Room"},
            {"id": "dev2", "custom_name": None},
            {"id": "dev3"},
            "junk",
        ]

        names = await FetchOrchestrator(tuya_client).fetch_device_names(["dev1", "dev2", "dev3"])

        assert names == {"dev1": "Living Room", "dev2": "", "dev3": ""}
