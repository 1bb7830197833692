"""
Game model for the matchclock core.

This module contains the Game dataclass which represents one scheduled match:
its phase, the current half, the last persisted clock checkpoint and the score.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils import from_iso
from ..utils.constants import (
    STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_HALFTIME, STATUS_COMPLETED
)


class GameStatus(str, Enum):
    """Match phase as persisted by the store."""
    SCHEDULED = STATUS_SCHEDULED
    IN_PROGRESS = STATUS_IN_PROGRESS
    HALFTIME = STATUS_HALFTIME
    COMPLETED = STATUS_COMPLETED


@dataclass
class Game:
    """
    Represents the clock-relevant state of a single match.

    Attributes:
        id: Store identifier of the game
        team_id: Owning team identifier
        status: Current match phase
        current_half: Active half (1 or 2)
        elapsed_seconds: Game seconds at the last persisted checkpoint
        last_start_time: ISO-8601 instant the clock was last (re)started,
            None while the clock is stopped
        our_score: Goals scored by the coached team
        opponent_score: Goals scored by the opponent
    """
    id: str = ""
    team_id: Optional[str] = None
    status: GameStatus = GameStatus.SCHEDULED
    current_half: int = 1
    elapsed_seconds: int = 0
    last_start_time: Optional[str] = None
    our_score: int = 0
    opponent_score: int = 0

    @property
    def is_running(self) -> bool:
        """True while the clock is advancing."""
        return self.status == GameStatus.IN_PROGRESS and self.last_start_time is not None

    @property
    def last_start_ts(self) -> Optional[float]:
        """The last start instant as epoch seconds."""
        return from_iso(self.last_start_time)

    def game_seconds_at(self, now: float) -> int:
        """
        Compute authoritative game seconds at a wall-clock instant.

        While running this is the checkpoint plus whole seconds since the last
        start; otherwise the checkpoint itself.
        """
        if not self.is_running:
            return self.elapsed_seconds
        started = self.last_start_ts
        running = int(now - started) if started is not None else 0
        return self.elapsed_seconds + max(0, running)

    def to_dict(self) -> dict:
        """
        Convert Game to the store's field contract.

        Returns:
            Dictionary with camelCase keys suitable for JSON serialization
        """
        return {
            "id": self.id,
            "teamId": self.team_id,
            "status": GameStatus(self.status).value,
            "currentHalf": self.current_half,
            "elapsedSeconds": self.elapsed_seconds,
            "lastStartTime": self.last_start_time,
            "ourScore": self.our_score,
            "opponentScore": self.opponent_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Game":
        """
        Create Game from a store dictionary.

        Args:
            data: Dictionary with camelCase game fields

        Returns:
            New Game instance
        """
        return cls(
            id=data.get("id", ""),
            team_id=data.get("teamId"),
            status=GameStatus(data.get("status") or STATUS_SCHEDULED),
            current_half=int(data.get("currentHalf") or 1),
            elapsed_seconds=max(0, int(data.get("elapsedSeconds") or 0)),
            last_start_time=data.get("lastStartTime"),
            our_score=int(data.get("ourScore") or 0),
            opponent_score=int(data.get("opponentScore") or 0),
        )
