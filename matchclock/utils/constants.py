"""
Constants for the matchclock game management core.

This module contains configuration defaults used throughout the package.
"""

# Application metadata
APP_TITLE = "Match Clock"

# Game timing defaults
DEFAULT_HALF_LENGTH_MIN = 30
SECONDS_PER_MINUTE = 60
HALF_COUNT = 2

# Safety valve against runaway clocks (two hours)
DEFAULT_MAX_GAME_SECONDS = 7200

# The display tick and the coarser persistence checkpoint
TICK_SECONDS = 1
CHECKPOINT_INTERVAL_SECONDS = 5

# Lineup defaults
DEFAULT_MAX_PLAYERS_ON_FIELD = 7
MIN_PLAYERS_PER_ROTATION_GROUP = 3

# Game status values as persisted by the store
STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in-progress"
STATUS_HALFTIME = "halftime"
STATUS_COMPLETED = "completed"

# Availability status cycle (click order on the sideline)
AVAILABILITY_AVAILABLE = "available"
AVAILABILITY_ABSENT = "absent"
AVAILABILITY_LATE_ARRIVAL = "late-arrival"
AVAILABILITY_INJURED = "injured"
STATUS_CYCLE = [
    AVAILABILITY_AVAILABLE,
    AVAILABILITY_ABSENT,
    AVAILABILITY_LATE_ARRIVAL,
    AVAILABILITY_INJURED,
]

# Fairness classification for play time reports
FAIRNESS_THRESHOLD_SECONDS = 120

# Session resume pointer
SESSION_POINTER_VERSION = 1
SESSION_POINTER_MAX_AGE_SECONDS = 12 * 60 * 60
