"""Dataclasses representing play time reports for a game."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class PlayerTimeSummary:
    """Aggregated playing time information for a single player."""

    player_id: str
    on_field: bool
    position_id: Optional[str]
    closed_seconds: int
    active_stint_seconds: int
    cumulative_seconds: int
    target_seconds: int
    delta_seconds: int
    bench_seconds: int
    target_share: float
    fairness: str
    seconds_by_position: Dict[str, int] = field(default_factory=dict)


@dataclass
class GameReport:
    """Snapshot of playing time distribution for a game."""

    generated_ts: float
    game_id: str
    roster_size: int
    elapsed_seconds: int
    field_seconds_total: int
    target_seconds_per_player: int
    players: List[PlayerTimeSummary] = field(default_factory=list)
    average_seconds: float = 0.0
    median_seconds: float = 0.0
    min_seconds: int = 0
    max_seconds: int = 0
    fairness_counts: Dict[str, int] = field(default_factory=dict)
