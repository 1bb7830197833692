"""
Utilities package for matchclock.

This package contains time helpers, configuration constants and logging setup.
"""
from .time_utils import (
    fmt_mmss, now_ts, to_iso, from_iso, game_minute,
    format_game_time_display, format_play_time
)
from .constants import (
    APP_TITLE, DEFAULT_HALF_LENGTH_MIN, DEFAULT_MAX_GAME_SECONDS,
    CHECKPOINT_INTERVAL_SECONDS, DEFAULT_MAX_PLAYERS_ON_FIELD, STATUS_CYCLE
)
from .logging_config import configure_logging, get_logger

__all__ = [
    "fmt_mmss", "now_ts", "to_iso", "from_iso", "game_minute",
    "format_game_time_display", "format_play_time",
    "APP_TITLE", "DEFAULT_HALF_LENGTH_MIN", "DEFAULT_MAX_GAME_SECONDS",
    "CHECKPOINT_INTERVAL_SECONDS", "DEFAULT_MAX_PLAYERS_ON_FIELD", "STATUS_CYCLE",
    "configure_logging", "get_logger",
]
