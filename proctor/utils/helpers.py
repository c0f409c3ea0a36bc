"""
Common utility functions.
"""

import json
from typing import Any, Dict, Union


def normalize_total_duration(value: Union[int, float, str], threshold: int = 100) -> int:
    """
    Convert the backend's totalTestDuration into seconds.

    Values below ``threshold`` are minutes; anything else is already seconds.

    Args:
        value: Raw totalTestDuration (number or numeric string)
        threshold: Minutes/seconds cut-over

    Returns:
        Duration in whole seconds
    """
    duration = int(float(value))
    if duration < threshold:
        return duration * 60
    return duration


def format_time(seconds: float) -> str:
    """
    Format a countdown as MM:SS.

    Args:
        seconds: Remaining seconds (negative values clamp to zero)

    Returns:
        Zero-padded minutes and seconds
    """
    total = max(0, int(seconds))
    mins, secs = divmod(total, 60)
    return f"{mins:02d}:{secs:02d}"


def format_json(data: Dict[str, Any], indent: int = 2) -> str:
    """
    Format dictionary as pretty JSON string.

    Args:
        data: Dictionary to format
        indent: Indentation spaces

    Returns:
        Formatted JSON string
    """
    return json.dumps(data, indent=indent, ensure_ascii=False, default=str)
