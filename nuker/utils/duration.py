"""Human readable durations used in policy configuration (``14d``, ``12h``, ``90s``)."""

from __future__ import annotations

import re
from typing import Union

_DURATION_PART = re.compile(r"(\d+)\s*(w|d|h|m|s)")

_UNIT_SECONDS = {
    "w": 7 * 86400,
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
}


def parse_duration(value: Union[str, int, float]) -> int:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings combining the units ``w``, ``d``, ``h``,
    ``m`` and ``s``, e.g. ``"1d12h"``.

    Args:
        value: Duration string or number of seconds

    Returns:
        Duration in whole seconds

    Raises:
        ValueError: If the value is empty, negative or has unknown units
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration cannot be negative: {value}")
        return int(value)

    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    if not text:
        raise ValueError("Duration cannot be empty")

    if text.isdigit():
        return int(text)

    position = 0
    total = 0
    for match in _DURATION_PART.finditer(text):
        if text[position : match.start()].strip():
            raise ValueError(f"Invalid duration: {value!r}")
        total += int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or text[position:].strip():
        raise ValueError(f"Invalid duration: {value!r}")

    return total


def format_duration(seconds: int) -> str:
    """Format seconds using the largest whole units (``1209600`` -> ``"14d"``)."""
    if seconds <= 0:
        return "0s"

    parts = []
    remaining = seconds
    for unit in ("d", "h", "m", "s"):
        size = _UNIT_SECONDS[unit]
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{unit}")

    return "".join(parts)
