"""Pytest configuration and fixtures for the Tuya collector tests."""

from typing import Any, Optional

import httpx
import pytest

from tuya_collector.services import signer
from tuya_collector.services.tuya_client import TuyaClient


CLIENT_ID = "test_client_id"
CLIENT_SECRET = "test_client_secret"
START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-milliseconds clock the tests move by hand."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int):
        self.now_ms += ms


class FakeTuyaCloud:
    """
    In-memory stand-in for the Tuya OpenAPI.

    Checks every request's signature the way Tuya does and records what was
    called. Per-device behaviour is configured through `devices`:
      - a dict      -> returned as the shadow properties result
      - an Exception -> raised from the transport
      - a str       -> returned as `success: false` with that msg
    """

    def __init__(self):
        self.token_calls = 0
        self.token_lifetime_s: Optional[int] = 7200
        self.token_failure: Optional[str] = None
        self.devices: dict[str, Any] = {}
        self.batch: Any = []
        self.requests: list[httpx.Request] = []
        self.bad_signatures = 0

    def _check_signature(self, request: httpx.Request):
        headers = request.headers
        path_with_query = request.url.raw_path.decode()
        string_to_sign = signer.build_string_to_sign(request.method, path_with_query)
        message = signer.build_signed_message(
            headers["client_id"],
            headers["t"],
            headers["nonce"],
            string_to_sign,
            access_token=headers.get("access_token"),
        )
        if signer.sign(CLIENT_SECRET, message) != headers["sign"]:
            self.bad_signatures += 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self._check_signature(request)
        path = request.url.path

        if path == "/v1.0/token":
            self.token_calls += 1
            if self.token_failure:
                return httpx.Response(200, json={"success": False, "msg": self.token_failure})
            result = {"access_token": f"token-{self.token_calls}"}
            if self.token_lifetime_s is not None:
                result["expire_time"] = self.token_lifetime_s
            return httpx.Response(200, json={"success": True, "result": result})

        if request.headers.get("access_token") is None:
            return httpx.Response(200, json={"success": False, "msg": "token invalid"})

        if path == "/v2.0/cloud/thing/batch":
            if isinstance(self.batch, Exception):
                raise self.batch
            return httpx.Response(200, json={"success": True, "result": self.batch})

        if path.endswith("/shadow/properties"):
            device_id = path.split("/")[4]
            behaviour = self.devices.get(device_id)
            if isinstance(behaviour, Exception):
                raise behaviour
            if isinstance(behaviour, str):
                return httpx.Response(200, json={"success": False, "msg": behaviour})
            return httpx.Response(200, json={"success": True, "result": behaviour})

        return httpx.Response(404, text="not found")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cloud() -> FakeTuyaCloud:
    return FakeTuyaCloud()


@pytest.fixture
def tuya_client(cloud, clock) -> TuyaClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(cloud.handler))
    return TuyaClient(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        base_url="openapi.tuyaeu.com",
        http_client=http_client,
        clock=clock,
    )


def properties(*props: tuple) -> dict:
    """Build a shadow-properties result from (code, value, time) tuples."""
    return {
        "properties": [
            {"code": code, "value": value, "time": time}
            for code, value, time in props
        ]
    }
