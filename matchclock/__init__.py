"""
Match Clock

Game clock and substitution ledger for youth soccer: authoritative match
phase and game time, per-player play time intervals, substitutions with an
audit trail, rotation planning and per-game player availability.
"""
from .errors import (
    MatchClockError, InvalidTransition, DuplicateOpenInterval, EligibilityViolation,
    PartialSubstitutionFailure, ConfigurationError, RepositoryError, NotFoundError
)
from .models import Game, GameStatus, GameSettings, SessionResumePointer
from .services import GameSession, InMemoryRepository, ServiceFactory, resume_session
from .utils import configure_logging, fmt_mmss, now_ts, APP_TITLE

__version__ = "1.0.0"

__all__ = [
    "MatchClockError", "InvalidTransition", "DuplicateOpenInterval", "EligibilityViolation",
    "PartialSubstitutionFailure", "ConfigurationError", "RepositoryError", "NotFoundError",
    "Game", "GameStatus", "GameSettings", "SessionResumePointer",
    "GameSession", "InMemoryRepository", "ServiceFactory", "resume_session",
    "configure_logging", "fmt_mmss", "now_ts", "APP_TITLE",
]
