"""
Models package for matchclock.

This package contains the data models read from and written to the store.
"""
from .game import Game, GameStatus
from .records import (
    PlayTimeRecord, LineupAssignment, Substitution,
    PlayerAvailability, AvailabilityStatus
)
from .game_plan import GamePlan, PlannedRotation, PlannedSubstitution, Lineup
from .settings import GameSettings
from .session import SessionResumePointer
from .game_report import GameReport, PlayerTimeSummary

__all__ = [
    "Game", "GameStatus", "PlayTimeRecord", "LineupAssignment", "Substitution",
    "PlayerAvailability", "AvailabilityStatus", "GamePlan", "PlannedRotation",
    "PlannedSubstitution", "Lineup", "GameSettings", "SessionResumePointer",
    "GameReport", "PlayerTimeSummary"
]
