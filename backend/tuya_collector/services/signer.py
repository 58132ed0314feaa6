"""
Tuya Request Signer
===================

Tuya's OpenAPI wants every request signed with HMAC-SHA256 using the
project's client secret. The server rebuilds the same string and compares,
so every byte here has to match what Tuya expects.

HOW A SIGNATURE IS BUILT:
------------------------
    string_to_sign = METHOD + "\\n"
                   + sha256_hex(body)  (or the empty-body hash)  + "\\n"
                   + ""  (optional signature headers, unused)    + "\\n"
                   + path_with_query

    message = client_id + access_token(if we have one) + t + nonce + string_to_sign

    sign = HMAC_SHA256(client_secret, message).hex().upper()

Reference: https://developer.tuya.com/en/docs/iot/new-singnature
"""

import hashlib
import hmac
import uuid
from typing import Optional


# SHA-256 of zero bytes - Tuya uses this for GET requests with no body
EMPTY_BODY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

SIGN_METHOD = "HMAC-SHA256"


def sign(secret: str, message: str) -> str:
    """Upper-case hex HMAC-SHA256 of message keyed with secret."""
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest().upper()


def content_sha256(body: Optional[str]) -> str:
    """Hex SHA-256 of the request body, or the empty-body constant."""
    if not body:
        return EMPTY_BODY_SHA256
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def build_string_to_sign(method: str, path_with_query: str, body: Optional[str] = None) -> str:
    optional_headers = ""
    return f"{method.upper()}\n{content_sha256(body)}\n{optional_headers}\n{path_with_query}"


def build_signed_message(
    client_id: str,
    timestamp: str,
    nonce: str,
    string_to_sign: str,
    access_token: Optional[str] = None,
) -> str:
    """Concatenate the pieces Tuya signs, in the order Tuya expects."""
    return f"{client_id}{access_token or ''}{timestamp}{nonce}{string_to_sign}"


def generate_nonce() -> str:
    """
    Fresh single-use nonce: a random UUID4 with the dashes removed.

    uuid4 draws from os.urandom, so nonces are not predictable.
    """
    return uuid.uuid4().hex
