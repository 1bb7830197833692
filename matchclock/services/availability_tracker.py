"""
Player availability tracking for the matchclock core.

A coach cycles each player's status with a tap:
available -> absent -> late-arrival -> injured -> available. Late arrivals
and injuries carry a window of game minutes in which the player may be fielded.
"""
from typing import Iterable, List, Optional, Tuple

from ..errors import ConfigurationError, EligibilityViolation
from ..models import AvailabilityStatus, PlayerAvailability
from ..utils import get_logger, now_ts, to_iso
from ..utils.constants import STATUS_CYCLE

logger = get_logger(__name__)

Window = Tuple[Optional[int], Optional[int]]


def next_status(current: Optional[str]) -> AvailabilityStatus:
    """Return the status that follows ``current`` in the fixed cycle."""
    try:
        index = STATUS_CYCLE.index(AvailabilityStatus(current or STATUS_CYCLE[0]).value)
    except ValueError:
        index = -1
    return AvailabilityStatus(STATUS_CYCLE[(index + 1) % len(STATUS_CYCLE)])


def derive_window(
    status: str,
    half_length_minutes: Optional[int],
    elapsed_minutes: Optional[int],
) -> Window:
    """
    Compute ``(available_from_minute, available_until_minute)`` for a status.

    Raises:
        ConfigurationError: If a late arrival is marked without a half length
    """
    status = AvailabilityStatus(status)
    if status == AvailabilityStatus.LATE_ARRIVAL:
        if half_length_minutes is None:
            raise ConfigurationError("half_length_minutes",
                                     "needed to mark a late arrival")
        return int(half_length_minutes), None
    if status == AvailabilityStatus.INJURED:
        return None, (None if elapsed_minutes is None else max(0, int(elapsed_minutes)))
    return None, None


def ineligibility_reason(availability: Optional[PlayerAvailability], minute: int) -> Optional[str]:
    """Explain why a player cannot be fielded at ``minute``; None when eligible."""
    if availability is None:
        return None
    status = AvailabilityStatus(availability.status)
    if status == AvailabilityStatus.ABSENT:
        return "player is absent"
    if status == AvailabilityStatus.INJURED and availability.available_until_minute is None:
        return "player is injured"
    start = availability.available_from_minute
    if start is not None and minute < start:
        return f"player is not available until minute {start}"
    until = availability.available_until_minute
    if until is not None and minute > until:
        return f"player was only available until minute {until}"
    return None


def is_eligible(availability: Optional[PlayerAvailability], minute: int) -> bool:
    return ineligibility_reason(availability, minute) is None


class AvailabilityTracker:
    """Reads and upserts :class:`PlayerAvailability` rows for one game."""

    def __init__(self, repository, game_id: str, half_length_minutes: Optional[int]):
        self.repository = repository
        self.game_id = game_id
        self.half_length_minutes = half_length_minutes

    def all(self) -> List[PlayerAvailability]:
        return self.repository.list(PlayerAvailability, game_id=self.game_id)

    def get(self, player_id: str) -> Optional[PlayerAvailability]:
        rows = self.repository.list(PlayerAvailability, game_id=self.game_id, player_id=player_id)
        if len(rows) > 1:
            logger.warning("Multiple availability rows for player", game_id=self.game_id,
                           player_id=player_id, count=len(rows))
        return rows[0] if rows else None

    def status_of(self, player_id: str) -> AvailabilityStatus:
        row = self.get(player_id)
        return AvailabilityStatus(row.status) if row else AvailabilityStatus.AVAILABLE

    def cycle(self, player_id: str, elapsed_minutes: int, notes: Optional[str] = None,
              now: Optional[float] = None) -> PlayerAvailability:
        """Advance a player to the next status in the cycle."""
        new_status = next_status(self.status_of(player_id))
        return self.set_status(player_id, new_status, elapsed_minutes, notes, now)

    def set_status(
        self,
        player_id: str,
        status: str,
        elapsed_minutes: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[float] = None,
    ) -> PlayerAvailability:
        """
        Upsert a player's status and the window it implies.

        Args:
            player_id: Player to update
            status: New availability status
            elapsed_minutes: Current elapsed game minute, used for injuries
            notes: Optional free-text note
            now: Wall-clock instant recorded as ``marked_at``

        Returns:
            The stored availability row
        """
        status = AvailabilityStatus(status)
        available_from, available_until = derive_window(
            status, self.half_length_minutes, elapsed_minutes
        )
        return self._upsert(player_id, status, available_from, available_until, notes, now)

    def mark_arrived(self, player_id: str, minute: int, now: Optional[float] = None) -> PlayerAvailability:
        """A late arrival showed up; they may be fielded from ``minute`` on."""
        row = self.get(player_id)
        notes = row.notes if row else None
        return self._upsert(player_id, AvailabilityStatus.LATE_ARRIVAL, max(0, int(minute)),
                            None, notes, now)

    def is_eligible(self, player_id: str, minute: int) -> bool:
        return is_eligible(self.get(player_id), minute)

    def check_eligible(self, player_id: str, minute: int, position_id: Optional[str] = None) -> None:
        """
        Raises:
            EligibilityViolation: If the player's status or window excludes ``minute``
        """
        reason = ineligibility_reason(self.get(player_id), minute)
        if reason is not None:
            raise EligibilityViolation(player_id, reason, game_minute=minute, position_id=position_id)

    def unavailable(self, player_ids: Iterable[str]) -> List[Tuple[str, AvailabilityStatus]]:
        """Players among ``player_ids`` marked absent or injured."""
        blocked = (AvailabilityStatus.ABSENT, AvailabilityStatus.INJURED)
        result = []
        for player_id in player_ids:
            status = self.status_of(player_id)
            if status in blocked:
                result.append((player_id, status))
        return result

    def _upsert(self, player_id, status, available_from, available_until, notes, now):
        marked_at = to_iso(now if now is not None else now_ts())
        existing = self.get(player_id)
        if existing is not None:
            row = self.repository.update(
                PlayerAvailability,
                existing.id,
                status=status,
                available_from_minute=available_from,
                available_until_minute=available_until,
                notes=notes if notes is not None else existing.notes,
                marked_at=marked_at,
            )
        else:
            row = self.repository.create(PlayerAvailability(
                game_id=self.game_id,
                player_id=player_id,
                status=status,
                available_from_minute=available_from,
                available_until_minute=available_until,
                notes=notes,
                marked_at=marked_at,
            ))
        logger.info(
            "Updated player availability",
            game_id=self.game_id,
            player_id=player_id,
            status=status.value,
            available_from_minute=available_from,
            available_until_minute=available_until,
        )
        return row
