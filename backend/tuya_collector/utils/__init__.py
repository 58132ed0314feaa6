"""
Utility modules for the Tuya sensor collector.
"""

from tuya_collector.utils.validation import (
    validate_device_id,
    validate_timeout_ms,
    parse_csv_list,
)
from tuya_collector.utils.line_protocol import (
    escape_tag,
    format_field_value,
    build_line,
)

__all__ = [
    "validate_device_id",
    "validate_timeout_ms",
    "parse_csv_list",
    "escape_tag",
    "format_field_value",
    "build_line",
]
