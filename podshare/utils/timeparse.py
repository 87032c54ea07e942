import re
from datetime import timedelta

_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_time(time_str: str) -> int:
    """
    Parse a duration string like '15s', '10m', '1h', '7d' into seconds.
    """
    if not isinstance(time_str, str):
        raise ValueError("Invalid time string format")

    match = re.fullmatch(r"(\d+)([smhd])", time_str.strip())
    if not match:
        raise ValueError(f"Invalid time string format: {time_str!r}")

    value, unit = match.groups()
    if int(value) == 0:
        raise ValueError("Duration must be positive")
    return int(value) * _UNITS[unit]


def parse_timedelta(time_str: str) -> timedelta:
    """Grant lifetime for ``--valid-for``."""
    return timedelta(seconds=parse_time(time_str))
