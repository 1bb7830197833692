"""
Substitution execution for the matchclock core.

A substitution is four store writes: close the outgoing interval, replace
the position's lineup assignment, open the incoming interval and append the
audit record. The store offers no transactions, so every step checks
whether it already happened and a retry after a partial failure finishes
the job without duplicating anything.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..errors import EligibilityViolation, MatchClockError, PartialSubstitutionFailure
from ..models import LineupAssignment, PlayTimeRecord, Substitution
from ..utils import get_logger, now_ts, to_iso
from ..utils.constants import SECONDS_PER_MINUTE
from .play_time_ledger import find_open_record

logger = get_logger(__name__)


class SubstitutionStep:
    """Names of the mutating steps, in execution order."""
    CLOSE_OUTGOING = "close-outgoing"
    REPLACE_ASSIGNMENT = "replace-assignment"
    OPEN_INCOMING = "open-incoming"
    RECORD_AUDIT = "record-audit"

    ORDER = (CLOSE_OUTGOING, REPLACE_ASSIGNMENT, OPEN_INCOMING, RECORD_AUDIT)


@dataclass(frozen=True)
class SubstitutionRequest:
    position_id: str
    player_out_id: str
    player_in_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "positionId": self.position_id,
            "playerOutId": self.player_out_id,
            "playerInId": self.player_in_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "SubstitutionRequest":
        return cls(data["positionId"], data["playerOutId"], data["playerInId"])


@dataclass
class SubstitutionOutcome:
    """A substitution that ran to completion."""
    request: SubstitutionRequest
    substitution: Substitution
    completed_steps: tuple = SubstitutionStep.ORDER

    def to_dict(self) -> Dict:
        return {
            "request": self.request.to_dict(),
            "substitution": self.substitution.to_dict(),
            "completedSteps": list(self.completed_steps),
        }


@dataclass
class BatchResult:
    """
    Result of applying a batch of substitutions in order.

    Attributes:
        applied: Substitutions that completed
        failed_request: The request that stopped the batch, if any
        error: Why it stopped
        not_attempted: Requests after the failure, left untouched
    """
    applied: List[SubstitutionOutcome] = field(default_factory=list)
    failed_request: Optional[SubstitutionRequest] = None
    error: Optional[MatchClockError] = None
    not_attempted: List[SubstitutionRequest] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_steps(self) -> tuple:
        if isinstance(self.error, PartialSubstitutionFailure):
            return self.error.completed_steps
        return ()

    def to_dict(self) -> Dict:
        return {
            "ok": self.ok,
            "applied": [outcome.to_dict() for outcome in self.applied],
            "failed": None if self.failed_request is None else {
                "request": self.failed_request.to_dict(),
                "completedSteps": list(self.failed_steps),
                **(self.error.to_dict() if self.error else {}),
            },
            "notAttempted": [request.to_dict() for request in self.not_attempted],
        }


# ----------------------------------------------------------------------
# Substitution queue
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class QueuedSubstitution:
    player_id: str
    position_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"playerId": self.player_id, "positionId": self.position_id}


class SubstitutionQueue:
    """Players staged to come on when the referee allows."""

    def __init__(self):
        self._entries: List[QueuedSubstitution] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def entries(self) -> List[QueuedSubstitution]:
        return list(self._entries)

    def add(self, player_id: str, position_id: str) -> QueuedSubstitution:
        """
        Stage a player for a position.

        Raises:
            EligibilityViolation: If the player is already queued anywhere
        """
        queued_at = self.position_for(player_id)
        if queued_at == position_id:
            raise EligibilityViolation(player_id, "already queued for this position",
                                       position_id=position_id)
        if queued_at is not None:
            raise EligibilityViolation(player_id, "already queued for another position",
                                       position_id=position_id)
        entry = QueuedSubstitution(player_id, position_id)
        self._entries.append(entry)
        return entry

    def remove(self, player_id: str, position_id: str) -> bool:
        before = len(self._entries)
        self._entries = [
            e for e in self._entries
            if not (e.player_id == player_id and e.position_id == position_id)
        ]
        return len(self._entries) != before

    def remove_player(self, player_id: str) -> None:
        self._entries = [e for e in self._entries if e.player_id != player_id]

    def clear(self) -> None:
        self._entries = []

    def position_for(self, player_id: str) -> Optional[str]:
        return next((e.position_id for e in self._entries if e.player_id == player_id), None)


# ----------------------------------------------------------------------
# Executor
# ----------------------------------------------------------------------
class SubstitutionExecutor:
    """Executes substitutions and position assignments for one game."""

    def __init__(self, repository, game_id: str, ledger, availability=None,
                 queue: Optional[SubstitutionQueue] = None):
        self.repository = repository
        self.game_id = game_id
        self.ledger = ledger
        self.availability = availability
        self.queue = queue

    # ---------- Queries ---------- #

    def assignments(self) -> List[LineupAssignment]:
        return self.repository.list(LineupAssignment, game_id=self.game_id)

    def assignments_at(self, position_id: str) -> List[LineupAssignment]:
        return self.repository.list(LineupAssignment, game_id=self.game_id, position_id=position_id)

    def occupant(self, position_id: str) -> Optional[str]:
        current = self.assignments_at(position_id)
        return current[0].player_id if current else None

    # ---------- Eligibility ---------- #

    def check_incoming(self, player_in_id: str, position_id: str, at_game_seconds: int,
                       player_out_id: Optional[str] = None) -> None:
        """
        Verify the incoming player can take ``position_id``; nothing is written.

        Raises:
            EligibilityViolation: If the player is on the field, assigned or
                queued at another position, or outside their availability window
        """
        if player_out_id is not None and player_in_id == player_out_id:
            raise EligibilityViolation(player_in_id, "cannot substitute a player for themselves",
                                       position_id=position_id)

        open_record = find_open_record(self.ledger.records(), player_in_id)
        if open_record is not None and open_record.position_id != position_id:
            raise EligibilityViolation(player_in_id, "already on the field",
                                       position_id=open_record.position_id)

        for assignment in self.assignments():
            if assignment.player_id == player_in_id and assignment.position_id != position_id:
                raise EligibilityViolation(player_in_id, "already assigned to another position",
                                           position_id=assignment.position_id)

        if self.queue is not None:
            queued_at = self.queue.position_for(player_in_id)
            if queued_at is not None and queued_at != position_id:
                raise EligibilityViolation(player_in_id, "queued for another position",
                                           position_id=queued_at)

        if self.availability is not None:
            self.availability.check_eligible(
                player_in_id, at_game_seconds // SECONDS_PER_MINUTE, position_id
            )

    def check_outgoing(self, position_id: str, player_out_id: str, player_in_id: str) -> None:
        """
        Verify ``player_out_id`` still holds ``position_id``; nothing is written.

        A slot already held by ``player_in_id`` passes so a retry can finish.

        Raises:
            EligibilityViolation: If someone else holds the position or it is empty
        """
        occupants = [a.player_id for a in self.assignments_at(position_id)]
        if player_out_id in occupants or player_in_id in occupants:
            return
        reason = (f"position {position_id} is held by {', '.join(occupants)}"
                  if occupants else f"position {position_id} is empty")
        raise EligibilityViolation(player_out_id, f"not on the field at {position_id}; {reason}",
                                   position_id=position_id)

    # ---------- Substitutions ---------- #

    def execute_substitution(
        self,
        position_id: str,
        player_out_id: str,
        player_in_id: str,
        at_game_seconds: int,
        half: int,
    ) -> Substitution:
        """
        Swap ``player_out_id`` for ``player_in_id`` at ``position_id``.

        Args:
            position_id: Position being changed
            player_out_id: Player leaving the field
            player_in_id: Player entering the field
            at_game_seconds: Game second of the swap
            half: Current half

        Returns:
            The stored audit record

        Raises:
            EligibilityViolation: Before any write, if the incoming player cannot
                play or the outgoing player no longer holds the position
            PartialSubstitutionFailure: If a write fails after the outgoing
                interval was closed; calling again with the same arguments resumes
        """
        at_game_seconds = int(at_game_seconds)
        self.check_incoming(player_in_id, position_id, at_game_seconds, player_out_id)
        self.check_outgoing(position_id, player_out_id, player_in_id)

        completed: List[str] = []
        step = SubstitutionStep.CLOSE_OUTGOING
        try:
            self.ledger.close(player_out_id, at_game_seconds)
            completed.append(step)

            step = SubstitutionStep.REPLACE_ASSIGNMENT
            self._replace_assignment(position_id, player_in_id, is_starter=False)
            completed.append(step)

            step = SubstitutionStep.OPEN_INCOMING
            self._ensure_open(player_in_id, position_id, at_game_seconds)
            completed.append(step)

            step = SubstitutionStep.RECORD_AUDIT
            substitution = self._record(position_id, player_out_id, player_in_id,
                                        at_game_seconds, half)
            completed.append(step)
        except Exception as exc:
            if not completed:
                raise
            logger.warning(
                "Substitution stopped part way",
                game_id=self.game_id,
                position_id=position_id,
                player_out_id=player_out_id,
                player_in_id=player_in_id,
                game_seconds=at_game_seconds,
                failed_step=step,
                completed_steps=completed,
                error=str(exc),
            )
            raise PartialSubstitutionFailure(position_id, player_out_id, player_in_id,
                                             at_game_seconds, completed, exc) from exc

        if self.queue is not None:
            self.queue.remove(player_in_id, position_id)
        logger.info(
            "Executed substitution",
            game_id=self.game_id,
            position_id=position_id,
            player_out_id=player_out_id,
            player_in_id=player_in_id,
            game_seconds=at_game_seconds,
            half=half,
        )
        return substitution

    def execute_batch(self, requests: Sequence[SubstitutionRequest], at_game_seconds: int,
                      half: int) -> BatchResult:
        """Apply ``requests`` in order, stopping at the first failure."""
        result = BatchResult()
        for index, request in enumerate(requests):
            try:
                substitution = self.execute_substitution(
                    request.position_id, request.player_out_id, request.player_in_id,
                    at_game_seconds, half,
                )
            except MatchClockError as exc:
                result.failed_request = request
                result.error = exc
                result.not_attempted = list(requests[index + 1:])
                logger.warning(
                    "Substitution batch stopped",
                    game_id=self.game_id,
                    applied=len(result.applied),
                    not_attempted=len(result.not_attempted),
                    error=exc.message,
                )
                break
            result.applied.append(SubstitutionOutcome(request, substitution))
        return result

    # ---------- Assignments ---------- #

    def assign_position(self, position_id: str, player_id: str, at_game_seconds: int,
                        running: bool, is_starter: bool = False) -> LineupAssignment:
        """
        Put a player at a position without recording a substitution.

        An interval is only opened while the clock runs. A player displaced
        from the position while the clock runs has their interval closed.
        """
        at_game_seconds = int(at_game_seconds)
        self.check_incoming(player_id, position_id, at_game_seconds)
        displaced = self.occupant(position_id)
        if running and displaced and displaced != player_id:
            self.ledger.close(displaced, at_game_seconds)
        assignment = self._replace_assignment(position_id, player_id, is_starter=is_starter)
        if running:
            self._ensure_open(player_id, position_id, at_game_seconds)
        logger.info(
            "Assigned position",
            game_id=self.game_id,
            position_id=position_id,
            player_id=player_id,
            game_seconds=at_game_seconds,
            running=running,
        )
        return assignment

    def replace_lineup(self, lineup: Dict[str, str], is_starter: bool = False) -> List[LineupAssignment]:
        """
        Make the stored lineup equal ``lineup`` while the clock is stopped.

        Assignments that do not match are removed first, so players may move
        between positions. No intervals are opened or closed.
        """
        wanted = {(position_id, player_id) for position_id, player_id in lineup.items()}
        kept = set()
        for assignment in self.assignments():
            key = (assignment.position_id, assignment.player_id)
            if key in wanted and key not in kept:
                kept.add(key)
            else:
                self.repository.delete(LineupAssignment, assignment.id)
        for position_id, player_id in lineup.items():
            if (position_id, player_id) not in kept:
                self.repository.create(LineupAssignment(
                    game_id=self.game_id,
                    player_id=player_id,
                    position_id=position_id,
                    is_starter=is_starter,
                ))
        logger.info("Replaced lineup", game_id=self.game_id, positions=len(lineup))
        return self.assignments()

    def remove_from_field(self, player_id: str, at_game_seconds: int) -> Optional[str]:
        """Close the player's interval and drop their assignment; returns the vacated position."""
        self.ledger.close(player_id, int(at_game_seconds))
        vacated = None
        for assignment in self.assignments():
            if assignment.player_id == player_id:
                self.repository.delete(LineupAssignment, assignment.id)
                vacated = assignment.position_id
        if self.queue is not None:
            self.queue.remove_player(player_id)
        return vacated

    # ---------- Step helpers ---------- #

    def _replace_assignment(self, position_id: str, player_id: str,
                            is_starter: bool) -> LineupAssignment:
        current = self.assignments_at(position_id)
        keep = next((a for a in current if a.player_id == player_id), None)
        if keep is None and current:
            keep = self.repository.update(LineupAssignment, current[0].id,
                                          player_id=player_id, is_starter=is_starter)
        elif keep is None:
            keep = self.repository.create(LineupAssignment(
                game_id=self.game_id,
                player_id=player_id,
                position_id=position_id,
                is_starter=is_starter,
            ))
        for extra in current:
            if extra.id != keep.id:
                self.repository.delete(LineupAssignment, extra.id)
        return keep

    def _ensure_open(self, player_id: str, position_id: str, at_game_seconds: int) -> PlayTimeRecord:
        existing = find_open_record(self.ledger.records(), player_id)
        if existing is not None and existing.position_id == position_id:
            return existing
        return self.ledger.open(player_id, position_id, at_game_seconds)

    def _record(self, position_id: str, player_out_id: str, player_in_id: str,
                at_game_seconds: int, half: int) -> Substitution:
        substitution = Substitution(
            game_id=self.game_id,
            player_out_id=player_out_id,
            player_in_id=player_in_id,
            position_id=position_id,
            game_seconds=at_game_seconds,
            half=half,
            timestamp=to_iso(now_ts()),
        )
        for existing in self.repository.list(Substitution, game_id=self.game_id):
            if existing.same_event(substitution):
                return existing
        return self.repository.create(substitution)

    def substitutions(self) -> List[Substitution]:
        """Audit trail for this game in game-time order."""
        return sorted(self.repository.list(Substitution, game_id=self.game_id),
                      key=lambda s: (s.game_seconds, s.timestamp or ""))
