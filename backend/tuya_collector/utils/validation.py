"""
Input Validation Utilities
===========================

Validation and parsing helpers for the collector's configuration values.
"""

import re
from typing import Optional


# Tuya ids end up as a path segment of /v2.0/cloud/thing/{id}/...
DEVICE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,100}")


def validate_device_id(device_id: Optional[str]) -> bool:
    """True if device_id is a single URL-safe path segment, e.g. "bf1234567890abcdefxyz"."""
    return bool(device_id) and DEVICE_ID_PATTERN.fullmatch(device_id) is not None


def parse_csv_list(value: Optional[str]) -> list[str]:
    """
    Split a comma-separated setting into trimmed, non-empty items.

    Args:
        value: Raw setting, e.g. "dev1, dev2,dev3"

    Returns:
        ["dev1", "dev2", "dev3"] (empty list for None or blank input)
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def validate_timeout_ms(value: int) -> bool:
    """
    Validate a request timeout in milliseconds.

    Args:
        value: Timeout in ms

    Returns:
        True if between 1 ms and 10 minutes
    """
    return 1 <= value <= 600_000
