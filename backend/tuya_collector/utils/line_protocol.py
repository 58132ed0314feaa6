"""
Line Protocol Helpers
=====================

Builds InfluxDB line protocol (ILP) text, which QuestDB ingests over HTTP.

FORMAT:
    measurement,tag=value,tag=value field=value,field=value timestamp\\n

    temp,device_id=bf12ab,custom_name=Living\\ Room temperature=21.5,humidity=55.0 1700000000000

Tag values escape backslash, comma, equals and space with a backslash.
Fields are always written as floats so the DOUBLE columns line up.
"""

import math
from typing import Mapping, Optional


_TAG_ESCAPES = (
    ("\\", "\\\\"),  # must be first
    (",", "\\,"),
    ("=", "\\="),
    (" ", "\\ "),
)


def escape_tag(value) -> str:
    """Escape a tag key or value for line protocol."""
    text = str(value)
    for raw, escaped in _TAG_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def format_field_value(value: float) -> str:
    """Render a numeric field; ints become floats (e.g. 55 -> 55.0)."""
    return repr(float(value))


def build_line(
    measurement: str,
    tags: Mapping[str, Optional[str]],
    fields: Mapping[str, Optional[float]],
    timestamp: int,
) -> Optional[str]:
    """
    Build a single newline-terminated ILP line.

    Tags that are None or empty are left out. Fields that are None or not
    finite are left out.

    Returns:
        The line, or None when there are no fields left to write
        (line protocol requires at least one).
    """
    tag_parts = [
        f"{escape_tag(key)}={escape_tag(value)}"
        for key, value in tags.items()
        if value is not None and value != ""
    ]
    field_parts = [
        f"{escape_tag(key)}={format_field_value(value)}"
        for key, value in fields.items()
        if value is not None and math.isfinite(float(value))
    ]
    if not field_parts:
        return None

    head = ",".join([escape_tag(measurement), *tag_parts])
    return f"{head} {','.join(field_parts)} {int(timestamp)}\n"
