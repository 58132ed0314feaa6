"""
Tuya Cloud Client
=================

Talks to the Tuya OpenAPI to read our temperature/humidity sensors.

WHAT THIS DOES:
--------------
1. Gets an access token (and keeps it fresh)
2. Signs every request the way Tuya wants (see signer.py)
3. Looks up device names in one batch call
4. Reads each device's "shadow properties" (its latest reported values)

HOW TUYA AUTH WORKS:
-------------------
    GET /v1.0/token?grant_type=1          (signed with client id + secret)
            |
            v
    { "success": true, "result": { "access_token": "...", "expire_time": 7200 } }
            |
            v
    Every other call sends the token AND signs with it.

The token lasts `expire_time` seconds (2 hours if Tuya doesn't say). We
refresh it when it's missing or within 60 seconds of expiring. Only one
refresh runs at a time - anyone else who needs a token waits for that
refresh and reuses its result.

Every Tuya response is JSON with a `success` flag. `success: false` comes
with a `msg` explaining what went wrong, and we pass that message along.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

import httpx

from tuya_collector.models import TuyaSession
from tuya_collector.services import signer

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class TuyaAPIError(Exception):
    """Base exception for Tuya API failures (transport, timeout, bad response)."""
    pass


class AuthError(TuyaAPIError):
    """Raised when a token cannot be issued or refreshed."""
    pass


class FetchError(TuyaAPIError):
    """Raised when one device's properties cannot be fetched."""

    def __init__(self, device_id: str, message: str):
        self.device_id = device_id
        super().__init__(f"Failed to get device properties for {device_id}: {message}")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# THE CLIENT
# =============================================================================

class TuyaClient:
    """
    Async client for the Tuya OpenAPI.

    HOW TO USE:
    ----------
    async with TuyaClient(client_id, client_secret) as client:
        await client.authenticate()
        props = await client.get_device_properties("bf12ab34cd56ef78gh90")
    """

    DEFAULT_BASE_URL = "openapi.tuyaeu.com"
    TOKEN_PATH = "/v1.0/token?grant_type=1"
    DEFAULT_TOKEN_LIFETIME_S = 7200
    REFRESH_MARGIN_MS = 60_000

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout_ms: int = 30_000,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Set up the client. No network calls happen here.

        Args:
            client_id: Tuya cloud project Access ID
            client_secret: Tuya cloud project Access Secret (signing key)
            base_url: Data center host, e.g. "openapi.tuyaeu.com"
            request_timeout_ms: Hard limit for each request, in milliseconds
            http_client: Optional pre-built httpx client (tests pass one with a mock transport)
            clock: Optional epoch-milliseconds source
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url
        self.origin = base_url.rstrip("/") if "://" in base_url else f"https://{base_url.rstrip('/')}"
        self.request_timeout_ms = request_timeout_ms

        self.http_client = http_client or httpx.AsyncClient(
            timeout=request_timeout_ms / 1000,
            headers={"Content-Type": "application/json"},
        )
        self._clock = clock or _epoch_ms

        self._session: Optional[TuyaSession] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def session(self) -> Optional[TuyaSession]:
        """The current session snapshot (None before the first authenticate)."""
        return self._session

    # =========================================================================
    # SIGNING + TRANSPORT
    # =========================================================================

    def _signed_headers(self, method: str, path_with_query: str, access_token: Optional[str]) -> dict:
        t = str(self._clock())
        nonce = signer.generate_nonce()
        string_to_sign = signer.build_string_to_sign(method, path_with_query)
        message = signer.build_signed_message(
            self.client_id, t, nonce, string_to_sign, access_token=access_token
        )

        headers = {
            "client_id": self.client_id,
            "sign_method": signer.SIGN_METHOD,
            "t": t,
            "nonce": nonce,
            "sign": signer.sign(self.client_secret, message),
        }
        if access_token:
            headers["access_token"] = access_token
        return headers

    async def _send(self, method: str, path_with_query: str, headers: dict) -> dict:
        """
        Send one request and return the decoded JSON body.

        Raises TuyaAPIError on timeout, transport failure, a body that isn't
        a JSON object, or `success: false`.
        """
        url = f"{self.origin}{path_with_query}"
        logger.debug(f"[Tuya] {method} {path_with_query}")

        try:
            response = await asyncio.wait_for(
                self.http_client.request(method, url, headers=headers),
                timeout=self.request_timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TuyaAPIError(f"Request timed out after {self.request_timeout_ms}ms") from e
        except httpx.HTTPError as e:
            raise TuyaAPIError(str(e) or e.__class__.__name__) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise TuyaAPIError(f"Failed to parse response: {e}") from e

        if not isinstance(payload, dict):
            raise TuyaAPIError("Failed to parse response: expected a JSON object")

        if payload.get("success") is False:
            raise TuyaAPIError(payload.get("msg") or "API request failed")

        return payload

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def authenticate(self) -> TuyaSession:
        """
        Get a brand new access token, whatever state the current one is in.

        Returns:
            The new session

        Raises:
            AuthError: Tuya refused, or the request itself failed
        """
        async with self._refresh_lock:
            return await self._issue_token()

    async def ensure_authenticated(self) -> TuyaSession:
        """
        Return a session that is good for at least another 60 seconds.

        Refreshes only when needed. If several callers find the token stale
        at once, the first one refreshes and the rest reuse its session.
        """
        session = self._session
        if session is not None and not session.is_stale(self._clock(), self.REFRESH_MARGIN_MS):
            return session

        async with self._refresh_lock:
            # Someone may have refreshed while we waited for the lock
            session = self._session
            if session is None or session.is_stale(self._clock(), self.REFRESH_MARGIN_MS):
                session = await self._issue_token()
            return session

    async def _issue_token(self) -> TuyaSession:
        # Caller holds _refresh_lock
        headers = self._signed_headers("GET", self.TOKEN_PATH, access_token=None)

        try:
            payload = await self._send("GET", self.TOKEN_PATH, headers)
        except TuyaAPIError as e:
            raise AuthError(f"Authentication error: {e}") from e

        result = payload.get("result")
        if not payload.get("success") or not isinstance(result, dict) or not result.get("access_token"):
            reason = payload.get("msg") or "Authentication failed"
            raise AuthError(f"Authentication error: {reason}")

        lifetime_s = result.get("expire_time") or self.DEFAULT_TOKEN_LIFETIME_S
        session = TuyaSession(
            access_token=result["access_token"],
            expires_at_ms=self._clock() + int(lifetime_s) * 1000,
        )
        self._session = session

        logger.info(f"[Tuya] Authenticated - token valid for {lifetime_s}s")
        return session

    async def _authenticated_get(self, path_with_query: str) -> dict:
        session = await self.ensure_authenticated()
        headers = self._signed_headers("GET", path_with_query, access_token=session.access_token)
        return await self._send("GET", path_with_query, headers)

    # =========================================================================
    # DEVICE CALLS
    # =========================================================================

    async def get_device_batch(self, device_ids: list[str]) -> list:
        """
        Look up several devices in one call.

        We only use this for the `custom_name` each device was given in the
        Tuya app.

        Returns:
            Tuya's list of device records, e.g.
            [{"id": "bf12...", "custom_name": "Bedroom", ...}, ...]
        """
        path = f"/v2.0/cloud/thing/batch?device_ids={','.join(device_ids)}"
        try:
            payload = await self._authenticated_get(path)
        except AuthError:
            raise
        except TuyaAPIError as e:
            raise TuyaAPIError(f"Failed to get device batch: {e}") from e
        return payload.get("result") or []

    async def get_device_properties(self, device_id: str) -> Any:
        """
        Get a device's latest reported properties.

        Returns:
            Tuya's shadow result, e.g.
            {
                "properties": [
                    {"code": "temp_current", "value": 215, "time": 1700000000000},
                    {"code": "humidity_value", "value": 55, "time": 1700000000000},
                    {"code": "battery_state", "value": "high", "time": 1699999000000}
                ]
            }

        Raises:
            FetchError: the request failed or Tuya said no
            AuthError: the token could not be refreshed
        """
        path = f"/v2.0/cloud/thing/{device_id}/shadow/properties"
        try:
            payload = await self._authenticated_get(path)
        except AuthError:
            raise
        except TuyaAPIError as e:
            raise FetchError(device_id, str(e)) from e
        return payload.get("result")

    # =========================================================================
    # CLEANUP
    # =========================================================================

    async def close(self):
        """Close the HTTP connection pool."""
        await self.http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
