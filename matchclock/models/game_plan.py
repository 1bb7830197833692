"""
Pre-game planning artifacts: the game plan and its rotation checkpoints.

Lineups are plain ``position_id -> player_id`` dictionaries. The store keeps
lineup snapshots and substitution batches as JSON strings, so ``from_dict``
accepts either a JSON string or an already-decoded list.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Lineup = Dict[str, str]


def _decode_list(raw: Any) -> List[Dict[str, Any]]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return list(raw)


@dataclass(frozen=True)
class PlannedSubstitution:
    """One planned swap inside a rotation batch."""
    player_out_id: str
    player_in_id: str
    position_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "playerOutId": self.player_out_id,
            "playerInId": self.player_in_id,
            "positionId": self.position_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannedSubstitution":
        return cls(
            player_out_id=data["playerOutId"],
            player_in_id=data["playerInId"],
            position_id=data["positionId"],
        )


@dataclass
class PlannedRotation:
    """A time-indexed batch of substitutions prepared before kickoff."""
    id: str = ""
    game_plan_id: str = ""
    rotation_number: int = 0
    game_minute: int = 0
    half: int = 1
    planned_substitutions: List[PlannedSubstitution] = field(default_factory=list)
    viewed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gamePlanId": self.game_plan_id,
            "rotationNumber": self.rotation_number,
            "gameMinute": self.game_minute,
            "half": self.half,
            "plannedSubstitutions": json.dumps([s.to_dict() for s in self.planned_substitutions]),
            "viewedAt": self.viewed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannedRotation":
        return cls(
            id=data.get("id", ""),
            game_plan_id=data.get("gamePlanId", ""),
            rotation_number=int(data.get("rotationNumber") or 0),
            game_minute=int(data.get("gameMinute") or 0),
            half=int(data.get("half") or 1),
            planned_substitutions=[
                PlannedSubstitution.from_dict(item)
                for item in _decode_list(data.get("plannedSubstitutions"))
            ],
            viewed_at=data.get("viewedAt"),
        )


def lineup_from_slots(slots: List[Dict[str, Any]]) -> Lineup:
    """Convert ``[{playerId, positionId}, ...]`` into a position lineup."""
    return {slot["positionId"]: slot["playerId"] for slot in slots}


def lineup_to_slots(lineup: Lineup) -> List[Dict[str, str]]:
    return [{"playerId": pid, "positionId": pos} for pos, pid in lineup.items()]


@dataclass
class GamePlan:
    """
    Coach's plan for a game.

    Attributes:
        id: Store identifier
        game_id: Game this plan belongs to
        rotation_interval_minutes: Minutes between rotation checkpoints
        total_rotations: Number of rotation checkpoints in the plan
        starting_lineup: Opening ``position_id -> player_id`` lineup
        halftime_lineup: Optional lineup the coach wants after halftime
    """
    id: str = ""
    game_id: str = ""
    rotation_interval_minutes: int = 10
    total_rotations: int = 0
    starting_lineup: Lineup = field(default_factory=dict)
    halftime_lineup: Lineup = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "rotationIntervalMinutes": self.rotation_interval_minutes,
            "totalRotations": self.total_rotations,
            "startingLineup": json.dumps(lineup_to_slots(self.starting_lineup)),
            "halftimeLineup": (
                json.dumps(lineup_to_slots(self.halftime_lineup)) if self.halftime_lineup else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GamePlan":
        return cls(
            id=data.get("id", ""),
            game_id=data.get("gameId", ""),
            rotation_interval_minutes=int(data.get("rotationIntervalMinutes") or 10),
            total_rotations=int(data.get("totalRotations") or 0),
            starting_lineup=lineup_from_slots(_decode_list(data.get("startingLineup"))),
            halftime_lineup=lineup_from_slots(_decode_list(data.get("halftimeLineup"))),
        )
