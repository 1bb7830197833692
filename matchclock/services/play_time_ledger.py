"""
Play time ledger for the matchclock core.

The module-level functions are pure calculations over lists of
:class:`PlayTimeRecord`; :class:`PlayTimeLedger` applies them against the
repository for one game.
"""
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import DuplicateOpenInterval
from ..models import PlayTimeRecord
from ..utils import get_logger

logger = get_logger(__name__)


# ----------------------------------------------------------------------
# Pure calculations
# ----------------------------------------------------------------------
def find_open_record(records: Iterable[PlayTimeRecord], player_id: str) -> Optional[PlayTimeRecord]:
    """Return the player's open record, if any."""
    return next((r for r in records if r.player_id == player_id and r.is_open), None)


def is_player_currently_playing(records: Iterable[PlayTimeRecord], player_id: str) -> bool:
    return find_open_record(records, player_id) is not None


def calculate_player_play_time(
    records: Iterable[PlayTimeRecord],
    player_id: str,
    current_game_seconds: Optional[int] = None,
) -> int:
    """
    Total play time for a player in seconds.

    Closed records contribute ``end - start``. An open record contributes
    ``current - start`` (never negative) when ``current_game_seconds`` is
    given, otherwise nothing.
    """
    return sum(
        record.duration(current_game_seconds)
        for record in records
        if record.player_id == player_id
    )


def calculate_play_time_by_position(
    records: Iterable[PlayTimeRecord],
    player_id: str,
    current_game_seconds: Optional[int] = None,
    position_names: Optional[Mapping[str, str]] = None,
) -> Dict[str, int]:
    """
    Play time grouped by position.

    Args:
        records: Play time records to analyze
        player_id: The player's id
        current_game_seconds: Current game time, used for open records
        position_names: Optional map of position id to display name

    Returns:
        Ordered mapping of position (name when known) to seconds played
    """
    totals: Dict[str, int] = OrderedDict()
    for record in records:
        if record.player_id != player_id:
            continue
        key = record.position_id or "Unknown"
        if position_names is not None:
            key = position_names.get(record.position_id or "", "Unknown")
        totals[key] = totals.get(key, 0) + record.duration(current_game_seconds)
    return totals


def count_games_played(records: Iterable[PlayTimeRecord], player_id: str) -> int:
    """Number of distinct games the player has at least one record in."""
    return len({r.game_id for r in records if r.player_id == player_id})


def plan_open(
    records: Sequence[PlayTimeRecord],
    game_id: str,
    player_id: str,
    position_id: Optional[str],
    at_game_seconds: int,
) -> PlayTimeRecord:
    """
    Build the record that opens a new interval.

    Raises:
        DuplicateOpenInterval: If the player already has an open record
    """
    existing = find_open_record(records, player_id)
    if existing is not None:
        raise DuplicateOpenInterval(game_id, player_id, existing.id)
    return PlayTimeRecord(
        game_id=game_id,
        player_id=player_id,
        position_id=position_id,
        start_game_seconds=int(at_game_seconds),
    )


def plan_close(
    records: Sequence[PlayTimeRecord],
    at_game_seconds: int,
    player_ids: Optional[Iterable[str]] = None,
) -> List[Tuple[PlayTimeRecord, int]]:
    """
    Select open records to close and the end second for each.

    An empty or missing ``player_ids`` selects every open record. The end
    second never precedes the record's start.
    """
    wanted = set(player_ids) if player_ids else None
    closing = []
    for record in records:
        if not record.is_open:
            continue
        if wanted is not None and record.player_id not in wanted:
            continue
        closing.append((record, max(int(at_game_seconds), record.start_game_seconds)))
    return closing


# ----------------------------------------------------------------------
# Repository-backed ledger
# ----------------------------------------------------------------------
class PlayTimeLedger:
    """Opens and closes play time intervals for one game."""

    def __init__(self, repository, game_id: str):
        self.repository = repository
        self.game_id = game_id

    def records(self) -> List[PlayTimeRecord]:
        """All records for this game, oldest interval first."""
        records = self.repository.list(PlayTimeRecord, game_id=self.game_id)
        records.sort(key=lambda r: (r.start_game_seconds, r.end_game_seconds is None, r.id))
        return records

    def open_records(self) -> List[PlayTimeRecord]:
        return [r for r in self.records() if r.is_open]

    def open(self, player_id: str, position_id: Optional[str], at_game_seconds: int) -> PlayTimeRecord:
        """
        Open an interval for a player entering the field.

        Raises:
            DuplicateOpenInterval: If the player is already on the field
        """
        record = plan_open(self.records(), self.game_id, player_id, position_id, at_game_seconds)
        created = self.repository.create(record)
        logger.info(
            "Opened play time record",
            game_id=self.game_id,
            player_id=player_id,
            position_id=position_id,
            game_seconds=at_game_seconds,
        )
        return created

    def close(self, player_id: str, at_game_seconds: int) -> Optional[PlayTimeRecord]:
        """Close the player's open interval; returns None when none was open."""
        closed = self.close_all([player_id], at_game_seconds)
        return closed[0] if closed else None

    def close_all(self, player_ids: Optional[Iterable[str]], at_game_seconds: int) -> List[PlayTimeRecord]:
        """
        Close open intervals for the given players, or every open interval.

        Closing a player with no open interval is a no-op, so calling this
        twice with the same arguments leaves the same state.
        """
        closed = []
        for record, end in plan_close(self.records(), at_game_seconds, player_ids):
            closed.append(
                self.repository.update(PlayTimeRecord, record.id, end_game_seconds=end)
            )
            logger.info(
                "Closed play time record",
                game_id=self.game_id,
                player_id=record.player_id,
                game_seconds=end,
                duration=end - record.start_game_seconds,
            )
        return closed

    def cumulative_play_time(self, player_id: str, current_game_seconds: int) -> int:
        return calculate_player_play_time(self.records(), player_id, current_game_seconds)

    def play_time_by_position(self, player_id: str, current_game_seconds: int) -> Dict[str, int]:
        return calculate_play_time_by_position(self.records(), player_id, current_game_seconds)

    def is_on_field(self, player_id: str) -> bool:
        return is_player_currently_playing(self.records(), player_id)

    def open_record_for(self, player_id: str) -> Optional[PlayTimeRecord]:
        return find_open_record(self.records(), player_id)
