"""
Time helpers for the matchclock package.

Game time is always integer seconds; wall-clock instants are epoch floats in
memory and ISO-8601 strings (millisecond precision, ``Z`` suffix) in the store.
"""
import re
import time
from datetime import datetime, timezone
from typing import Optional

_SECONDS_FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")


def fmt_mmss(seconds: int) -> str:
    """
    Format seconds as MM:SS string.

    Example:
        >>> fmt_mmss(90)
        '01:30'
        >>> fmt_mmss(3661)
        '61:01'
    """
    m = seconds // 60
    s = seconds % 60
    return f"{m:02d}:{s:02d}"


def now_ts() -> float:
    """
    Get current timestamp in epoch seconds.

    Returns:
        Current time as floating point epoch seconds
    """
    return time.time()


def to_iso(ts: float) -> str:
    """Render an epoch timestamp the way the store persists instants."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: Optional[str]) -> Optional[float]:
    """Parse a persisted ISO-8601 instant back to epoch seconds."""
    if not value:
        return None
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 takes exactly 3 or 6 fraction digits
    text = _SECONDS_FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def game_minute(seconds: int) -> int:
    """Whole elapsed game minutes for a game-seconds value."""
    return max(0, int(seconds)) // 60


def format_game_time_display(seconds: int, half: int) -> str:
    """
    Format game time for sideline display.

    Example:
        >>> format_game_time_display(930, 1)
        "15' (1st Half)"
    """
    half_text = "1st" if half == 1 else "2nd"
    return f"{game_minute(seconds)}' ({half_text} Half)"


def format_play_time(seconds: int, fmt: str = "short") -> str:
    """
    Format accumulated play time.

    Args:
        seconds: Total seconds
        fmt: ``short`` (M:SS, total minutes), ``long`` (``1h 23m``) or
            ``verbose`` (``1 hour 23 minutes``)

    Returns:
        Formatted time string
    """
    hours = seconds // 3600
    minutes_in_hour = (seconds % 3600) // 60
    total_minutes = seconds // 60
    secs = seconds % 60

    if fmt == "long":
        if hours > 0:
            return f"{hours}h {minutes_in_hour}m"
        return f"{total_minutes}m"

    if fmt == "verbose":
        parts = []
        if hours > 0:
            parts.append(f"{hours} {'hour' if hours == 1 else 'hours'}")
        if minutes_in_hour > 0:
            parts.append(f"{minutes_in_hour} {'minute' if minutes_in_hour == 1 else 'minutes'}")
        if seconds < 60 or (hours == 0 and minutes_in_hour == 0):
            parts.append(f"{secs} {'second' if secs == 1 else 'seconds'}")
        return " ".join(parts)

    return f"{total_minutes}:{secs:02d}"
