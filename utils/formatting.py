"""
Formatting Utilities
Human-readable uptime and in-game clock
"""

import re

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,16}$")


def format_uptime(uptime_seconds: float) -> str:
    """Format seconds as e.g. ``1d 2h 3m 4s``; zero parts are omitted"""
    total = int(uptime_seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"


def format_minecraft_time(time_of_day: int) -> str:
    """
    Convert world ticks to a 24h clock.

    Tick 0 is 06:00 and a day lasts 24000 ticks.
    """
    ticks = (int(time_of_day) + 6000) % 24000
    hours = ticks // 1000
    minutes = int((ticks % 1000) * 0.06)
    return f"{hours:02d}:{minutes:02d}"


def is_valid_username(username: str) -> bool:
    """Check a username against the offline-mode naming rules"""
    return bool(username) and USERNAME_PATTERN.match(username) is not None
