"""
Services package for matchclock.

This package contains the business logic for the game clock, the play time
ledger, substitutions, rotation planning, availability and the session host.
"""
from .repository import Repository, InMemoryRepository, Subscription
from .play_time_ledger import (
    PlayTimeLedger, calculate_player_play_time, calculate_play_time_by_position,
    count_games_played, find_open_record, is_player_currently_playing
)
from .game_clock import GameClock, TickResult, transition
from .rotation_planner import (
    RotationMonitor, compute_lineup_at_rotation, compute_lineup_diff, find_due_rotation,
    calculate_rotation_minute, calculate_fair_rotations, build_planned_rotations,
    calculate_projected_play_time, validate_rotation_plan, rotations_referencing_player
)
from .availability_tracker import AvailabilityTracker, is_eligible, next_status
from .substitution_executor import (
    SubstitutionExecutor, SubstitutionQueue, SubstitutionRequest, SubstitutionStep, BatchResult
)
from .change_feed import ChangeFeed
from .analytics_service import AnalyticsService
from .persistence_service import PersistenceService
from .game_session import GameSession, InjuryReport, resume_session
from .service_factory import ServiceFactory

__all__ = [
    "Repository", "InMemoryRepository", "Subscription",
    "PlayTimeLedger", "calculate_player_play_time", "calculate_play_time_by_position",
    "count_games_played", "find_open_record", "is_player_currently_playing",
    "GameClock", "TickResult", "transition",
    "RotationMonitor", "compute_lineup_at_rotation", "compute_lineup_diff", "find_due_rotation",
    "calculate_rotation_minute", "calculate_fair_rotations", "build_planned_rotations",
    "calculate_projected_play_time", "validate_rotation_plan", "rotations_referencing_player",
    "AvailabilityTracker", "is_eligible", "next_status",
    "SubstitutionExecutor", "SubstitutionQueue", "SubstitutionRequest", "SubstitutionStep",
    "BatchResult", "ChangeFeed", "AnalyticsService", "PersistenceService",
    "GameSession", "InjuryReport", "resume_session", "ServiceFactory",
]
