"""
Ledger and lineup records for the matchclock core.

Play time intervals, lineup assignments, substitution audit events and
per-game player availability, each with the store's camelCase field contract.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.constants import (
    AVAILABILITY_AVAILABLE, AVAILABILITY_ABSENT,
    AVAILABILITY_LATE_ARRIVAL, AVAILABILITY_INJURED
)


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


@dataclass
class PlayTimeRecord:
    """One continuous on-field interval for one player in one game."""
    id: str = ""
    game_id: str = ""
    player_id: str = ""
    position_id: Optional[str] = None
    start_game_seconds: int = 0
    end_game_seconds: Optional[int] = None  # None while the player is on the field

    @property
    def is_open(self) -> bool:
        return self.end_game_seconds is None

    def duration(self, current_game_seconds: Optional[int] = None) -> int:
        """
        Seconds covered by this interval.

        Args:
            current_game_seconds: Current game time, used for open intervals

        Returns:
            Closed duration, or the live duration (clamped to 0) when open
        """
        if self.end_game_seconds is not None:
            return self.end_game_seconds - self.start_game_seconds
        if current_game_seconds is None:
            return 0
        return max(0, current_game_seconds - self.start_game_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "playerId": self.player_id,
            "positionId": self.position_id,
            "startGameSeconds": self.start_game_seconds,
            "endGameSeconds": self.end_game_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayTimeRecord":
        return cls(
            id=data.get("id", ""),
            game_id=data.get("gameId", ""),
            player_id=data.get("playerId", ""),
            position_id=data.get("positionId"),
            start_game_seconds=int(data.get("startGameSeconds") or 0),
            end_game_seconds=_opt_int(data.get("endGameSeconds")),
        )


@dataclass
class LineupAssignment:
    """Current occupant of one field position."""
    id: str = ""
    game_id: str = ""
    player_id: str = ""
    position_id: str = ""
    is_starter: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "playerId": self.player_id,
            "positionId": self.position_id,
            "isStarter": self.is_starter,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineupAssignment":
        return cls(
            id=data.get("id", ""),
            game_id=data.get("gameId", ""),
            player_id=data.get("playerId", ""),
            position_id=data.get("positionId", ""),
            is_starter=bool(data.get("isStarter", False)),
        )


@dataclass(frozen=True)
class Substitution:
    """Immutable audit event for an executed substitution."""
    id: str = ""
    game_id: str = ""
    player_out_id: str = ""
    player_in_id: str = ""
    position_id: str = ""
    game_seconds: int = 0
    half: int = 1
    timestamp: Optional[str] = None

    def same_event(self, other: "Substitution") -> bool:
        """True when both describe the same swap at the same game second."""
        return (
            self.game_id == other.game_id
            and self.player_out_id == other.player_out_id
            and self.player_in_id == other.player_in_id
            and self.position_id == other.position_id
            and self.game_seconds == other.game_seconds
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "playerOutId": self.player_out_id,
            "playerInId": self.player_in_id,
            "positionId": self.position_id,
            "gameSeconds": self.game_seconds,
            "half": self.half,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Substitution":
        return cls(
            id=data.get("id", ""),
            game_id=data.get("gameId", ""),
            player_out_id=data.get("playerOutId", ""),
            player_in_id=data.get("playerInId", ""),
            position_id=data.get("positionId", ""),
            game_seconds=int(data.get("gameSeconds") or 0),
            half=int(data.get("half") or 1),
            timestamp=data.get("timestamp"),
        )


class AvailabilityStatus(str, Enum):
    """Player availability for a single game."""
    AVAILABLE = AVAILABILITY_AVAILABLE
    ABSENT = AVAILABILITY_ABSENT
    LATE_ARRIVAL = AVAILABILITY_LATE_ARRIVAL
    INJURED = AVAILABILITY_INJURED


@dataclass
class PlayerAvailability:
    """
    Availability status of one player for one game.

    The optional window narrows when the player may be fielded:
    ``available_from_minute`` for late arrivals, ``available_until_minute``
    for injuries.
    """
    id: str = ""
    game_id: str = ""
    player_id: str = ""
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    available_from_minute: Optional[int] = None
    available_until_minute: Optional[int] = None
    notes: Optional[str] = None
    marked_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "playerId": self.player_id,
            "status": AvailabilityStatus(self.status).value,
            "availableFromMinute": self.available_from_minute,
            "availableUntilMinute": self.available_until_minute,
            "notes": self.notes,
            "markedAt": self.marked_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerAvailability":
        return cls(
            id=data.get("id", ""),
            game_id=data.get("gameId", ""),
            player_id=data.get("playerId", ""),
            status=AvailabilityStatus(data.get("status") or AVAILABILITY_AVAILABLE),
            available_from_minute=_opt_int(data.get("availableFromMinute")),
            available_until_minute=_opt_int(data.get("availableUntilMinute")),
            notes=data.get("notes"),
            marked_at=data.get("markedAt"),
        )
