"""
Error taxonomy for the matchclock core.

Every error carries a ``context`` dictionary with the entity ids and the
attempted state so a caller can re-read authoritative state and retry.
"""
from typing import Any, Dict, Optional, Sequence


class MatchClockError(Exception):
    """Base class for all matchclock domain errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "error": self.message,
            "type": type(self).__name__,
            "context": {k: v for k, v in self.context.items() if _is_plain(v)},
        }


def _is_plain(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool, list, tuple, dict))


class InvalidTransition(MatchClockError):
    """A clock operation was attempted from the wrong phase."""

    def __init__(self, operation: str, status: str, current_half: int, running: bool):
        super().__init__(
            f"Cannot {operation} while game is {status} (half {current_half}, "
            f"{'running' if running else 'stopped'})",
            operation=operation,
            status=status,
            current_half=current_half,
            running=running,
        )
        self.operation = operation
        self.status = status


class DuplicateOpenInterval(MatchClockError):
    """Opening a play time interval would leave a player with two open records."""

    def __init__(self, game_id: str, player_id: str, record_id: Optional[str]):
        super().__init__(
            f"Player {player_id} already has an open play time record ({record_id})",
            game_id=game_id,
            player_id=player_id,
            record_id=record_id,
        )
        self.player_id = player_id
        self.record_id = record_id


class EligibilityViolation(MatchClockError):
    """A player cannot be fielded; raised before any mutation."""

    def __init__(self, player_id: str, reason: str, game_minute: Optional[int] = None,
                 position_id: Optional[str] = None):
        super().__init__(
            f"Player {player_id} is not eligible: {reason}",
            player_id=player_id,
            reason=reason,
            game_minute=game_minute,
            position_id=position_id,
        )
        self.player_id = player_id
        self.reason = reason


class PartialSubstitutionFailure(MatchClockError):
    """A substitution stopped after closing the outgoing interval."""

    def __init__(self, position_id: str, player_out_id: str, player_in_id: str,
                 game_seconds: int, completed_steps: Sequence[str], cause: BaseException):
        super().__init__(
            f"Substitution {player_out_id} -> {player_in_id} at {position_id} "
            f"stopped after {', '.join(completed_steps) or 'no steps'}: {cause}",
            position_id=position_id,
            player_out_id=player_out_id,
            player_in_id=player_in_id,
            game_seconds=game_seconds,
            completed_steps=list(completed_steps),
            cause=str(cause),
        )
        self.completed_steps = tuple(completed_steps)
        self.cause = cause


class ConfigurationError(MatchClockError):
    """Required team or game configuration is missing or invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", field=field, reason=reason)
        self.field = field


class RepositoryError(MatchClockError):
    """The backing store rejected or failed a call."""


class NotFoundError(RepositoryError):
    """The requested entity does not exist in the store."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
