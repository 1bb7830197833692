"""Per-game clock configuration."""
from dataclasses import dataclass
from typing import Optional

from ..errors import ConfigurationError
from ..utils.constants import (
    DEFAULT_HALF_LENGTH_MIN, DEFAULT_MAX_GAME_SECONDS,
    CHECKPOINT_INTERVAL_SECONDS, DEFAULT_MAX_PLAYERS_ON_FIELD, SECONDS_PER_MINUTE
)


@dataclass(frozen=True)
class GameSettings:
    """
    Configuration the clock needs for one game.

    Attributes:
        half_length_seconds: Regulation length of one half
        max_game_seconds: Hard ceiling that auto-ends the game; None disables it
        checkpoint_interval_seconds: Seconds between persisted clock checkpoints
        max_players_on_field: Field size used by rotation planning
    """
    half_length_seconds: int = DEFAULT_HALF_LENGTH_MIN * SECONDS_PER_MINUTE
    max_game_seconds: Optional[int] = DEFAULT_MAX_GAME_SECONDS
    checkpoint_interval_seconds: int = CHECKPOINT_INTERVAL_SECONDS
    max_players_on_field: int = DEFAULT_MAX_PLAYERS_ON_FIELD

    def __post_init__(self) -> None:
        if self.half_length_seconds is None or int(self.half_length_seconds) <= 0:
            raise ConfigurationError("half_length_seconds", "a positive half length is required")
        if self.max_game_seconds is not None and int(self.max_game_seconds) <= 0:
            raise ConfigurationError("max_game_seconds", "must be positive or None")
        if int(self.checkpoint_interval_seconds) <= 0:
            raise ConfigurationError("checkpoint_interval_seconds", "must be positive")
        if int(self.max_players_on_field) <= 0:
            raise ConfigurationError("max_players_on_field", "must be positive")

    @property
    def half_length_minutes(self) -> int:
        return self.half_length_seconds // SECONDS_PER_MINUTE

    @classmethod
    def from_half_length_minutes(cls, minutes: Optional[int], **kwargs) -> "GameSettings":
        """Build settings from a team's configured half length in minutes."""
        if minutes is None:
            raise ConfigurationError("half_length_minutes", "team has no half length configured")
        return cls(half_length_seconds=int(minutes) * SECONDS_PER_MINUTE, **kwargs)
