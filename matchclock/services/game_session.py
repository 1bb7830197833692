"""
Game session: one host managing one game.

Ties the clock, ledger, substitution executor, availability tracker,
rotation monitor and change feed together and exposes the sideline
operations in wall-clock terms.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import MatchClockError, NotFoundError
from ..models import (
    AvailabilityStatus, Game, GamePlan, GameStatus, Lineup, PlannedRotation,
    PlannedSubstitution, SessionResumePointer, Substitution
)
from ..utils import fmt_mmss, format_game_time_display, game_minute, get_logger, now_ts
from .rotation_planner import (
    compute_lineup_at_rotation, compute_lineup_diff, rotations_referencing_player
)
from .substitution_executor import BatchResult, SubstitutionRequest

logger = get_logger(__name__)


@dataclass
class InjuryReport:
    """What marking a player injured changed, for the sideline to act on."""
    player_id: str
    game_seconds: int
    vacated_position_id: Optional[str] = None
    affected_rotations: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "playerId": self.player_id,
            "gameSeconds": self.game_seconds,
            "vacatedPositionId": self.vacated_position_id,
            "affectedRotations": list(self.affected_rotations),
        }


class GameSession:
    """Live management of a single game. Build it with :class:`ServiceFactory`."""

    def __init__(self, repository, game_id, settings, clock, ledger, executor,
                 availability, rotation_monitor, change_feed, analytics, queue):
        self.repository = repository
        self.game_id = game_id
        self.settings = settings
        self.clock = clock
        self.ledger = ledger
        self.executor = executor
        self.availability = availability
        self.rotation_monitor = rotation_monitor
        self.change_feed = change_feed
        self.analytics = analytics
        self.queue = queue
        self.change_feed.on(GamePlan, self._on_plan_change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self, now: Optional[float] = None) -> "GameSession":
        """Load the game, subscribe to changes and seed the lineup if needed."""
        self.clock.load(now)
        self.change_feed.start()
        self._follow_plan(self.game_plan())
        self.seed_lineup_from_plan()
        return self

    def close(self) -> None:
        self.change_feed.stop()

    @property
    def game(self) -> Game:
        return self.clock.game

    def resume_pointer(self, now: Optional[float] = None) -> SessionResumePointer:
        return SessionResumePointer.capture(
            self.game_id, self.game.team_id or "", now if now is not None else now_ts()
        )

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------
    def game_plan(self) -> Optional[GamePlan]:
        plans = self.repository.list(GamePlan, game_id=self.game_id)
        return plans[0] if plans else None

    def planned_rotations(self) -> List[PlannedRotation]:
        return self.rotation_monitor.rotations()

    def rotation(self, rotation_number: int) -> PlannedRotation:
        for rotation in self.planned_rotations():
            if rotation.rotation_number == rotation_number:
                return rotation
        raise NotFoundError("PlannedRotation", str(rotation_number))

    def seed_lineup_from_plan(self) -> bool:
        """Create starter assignments from the plan while the game is scheduled."""
        plan = self.game_plan()
        if plan is None or not plan.starting_lineup:
            return False
        if self.game.status != GameStatus.SCHEDULED or self.executor.assignments():
            return False
        self.executor.replace_lineup(plan.starting_lineup, is_starter=True)
        logger.info("Seeded lineup from game plan", game_id=self.game_id,
                    positions=len(plan.starting_lineup))
        return True

    def lineup_at_rotation(self, rotation_number: int) -> Lineup:
        plan = self.game_plan()
        starting = plan.starting_lineup if plan else {}
        return compute_lineup_at_rotation(starting, self.planned_rotations(), rotation_number)

    def rotation_diff(self, rotation_number: int) -> List[PlannedSubstitution]:
        """Substitutions that take the field from the previous rotation to this one."""
        return compute_lineup_diff(
            self.lineup_at_rotation(rotation_number - 1),
            self.lineup_at_rotation(rotation_number),
        )

    def _on_plan_change(self, plans: List[GamePlan]) -> None:
        self._follow_plan(plans[0] if plans else None)
        if self.game is not None:
            self.seed_lineup_from_plan()

    def _follow_plan(self, plan: Optional[GamePlan]) -> None:
        self.rotation_monitor.game_plan_id = plan.id if plan else None

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------
    def current_game_seconds(self, now: Optional[float] = None) -> int:
        return self.clock.current_game_seconds(now)

    def current_minute(self, now: Optional[float] = None) -> int:
        return game_minute(self.current_game_seconds(now))

    def start(self, now: Optional[float] = None) -> Game:
        unavailable = self.check_starters_available()
        if unavailable:
            logger.warning(
                "Starting with unavailable starters",
                game_id=self.game_id,
                starters=[f"{pid} ({status.value})" for pid, status in unavailable],
            )
        return self.clock.start(now)

    def tick(self, now: Optional[float] = None):
        return self.clock.tick(now)

    # ------------------------------------------------------------------
    # Lineup changes
    # ------------------------------------------------------------------
    def lineup(self) -> Lineup:
        return {a.position_id: a.player_id for a in self.executor.assignments()}

    def substitute(self, position_id: str, player_out_id: str, player_in_id: str,
                   now: Optional[float] = None) -> Substitution:
        return self.executor.execute_substitution(
            position_id, player_out_id, player_in_id,
            self.current_game_seconds(now), self.game.current_half,
        )

    def substitute_batch(self, requests: Sequence[SubstitutionRequest],
                         now: Optional[float] = None) -> BatchResult:
        return self.executor.execute_batch(
            list(requests), self.current_game_seconds(now), self.game.current_half
        )

    def execute_rotation(self, rotation_number: int, now: Optional[float] = None) -> BatchResult:
        """Apply a planned rotation's substitutions against the live lineup."""
        rotation = self.rotation(rotation_number)
        requests = [
            SubstitutionRequest(s.position_id, s.player_out_id, s.player_in_id)
            for s in rotation.planned_substitutions
        ]
        return self.substitute_batch(requests, now)

    def execute_queue(self, now: Optional[float] = None) -> BatchResult:
        """
        Bring on every queued player in queue order, stopping at the first failure.

        The occupant is read again before each entry, so a second player
        queued for the same position replaces the first one brought on.
        """
        at_game_seconds = self.current_game_seconds(now)
        entries = self.queue.entries
        result = BatchResult()
        for index, entry in enumerate(entries):
            occupant = self.executor.occupant(entry.position_id)
            if occupant is None:
                self.assign(entry.position_id, entry.player_id, now)
                self.queue.remove(entry.player_id, entry.position_id)
                continue
            request = SubstitutionRequest(entry.position_id, occupant, entry.player_id)
            step = self.executor.execute_batch([request], at_game_seconds, self.game.current_half)
            result.applied.extend(step.applied)
            if not step.ok:
                result.failed_request = request
                result.error = step.error
                result.not_attempted = [
                    SubstitutionRequest(e.position_id, self.executor.occupant(e.position_id) or "",
                                        e.player_id)
                    for e in entries[index + 1:]
                ]
                break
        return result

    def assign(self, position_id: str, player_id: str, now: Optional[float] = None):
        return self.executor.assign_position(
            position_id, player_id, self.current_game_seconds(now),
            running=self.clock.is_running,
            is_starter=self.game.status == GameStatus.SCHEDULED,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    def cycle_availability(self, player_id: str, now: Optional[float] = None):
        return self.availability.cycle(player_id, self.current_minute(now), now=now)

    def mark_arrived(self, player_id: str, minute: Optional[int] = None,
                     now: Optional[float] = None):
        minute = minute if minute is not None else self.current_minute(now)
        return self.availability.mark_arrived(player_id, minute, now=now)

    def mark_injured(self, player_id: str, now: Optional[float] = None) -> InjuryReport:
        """
        Take an injured player off the field.

        The player is marked injured with the current minute as the end of
        their window, their interval is closed and their assignment removed.
        Future planned rotations that still move the player are reported so
        the coach can adjust them.
        """
        seconds = self.current_game_seconds(now)
        minute = game_minute(seconds)
        self.availability.set_status(
            player_id,
            AvailabilityStatus.INJURED,
            elapsed_minutes=minute,
            notes=f"Injured at {format_game_time_display(seconds, self.game.current_half)}",
            now=now,
        )
        vacated = self.executor.remove_from_field(player_id, seconds)
        affected = [
            r.rotation_number
            for r in rotations_referencing_player(self.planned_rotations(), player_id, minute)
        ]
        if affected:
            logger.warning("Injured player appears in planned rotations", game_id=self.game_id,
                           player_id=player_id, rotations=affected)
        logger.info("Marked player injured", game_id=self.game_id, player_id=player_id,
                    game_seconds=seconds, vacated_position_id=vacated)
        return InjuryReport(player_id, seconds, vacated, affected)

    def check_starters_available(self) -> List[Tuple[str, AvailabilityStatus]]:
        """Starters currently marked absent or injured."""
        starters = [a.player_id for a in self.executor.assignments() if a.is_starter]
        return self.availability.unavailable(starters)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def report(self, roster: Optional[Sequence[str]] = None, now: Optional[float] = None):
        return self.analytics.generate_game_report(roster, now)

    def snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        """Current state for display."""
        now = now if now is not None else now_ts()
        seconds = self.current_game_seconds(now)
        return {
            "game": self.game.to_dict(),
            "gameSeconds": seconds,
            "clock": fmt_mmss(seconds),
            "display": format_game_time_display(seconds, self.game.current_half),
            "running": self.clock.is_running,
            "lineup": self.lineup(),
            "playTime": {
                player_id: self.ledger.cumulative_play_time(player_id, seconds)
                for player_id in self.analytics.roster()
            },
            "availability": [a.to_dict() for a in self.availability.all()],
            "queue": [entry.to_dict() for entry in self.queue.entries],
            "lastPersistError": (
                str(self.clock.last_persist_error) if self.clock.last_persist_error else None
            ),
        }


def resume_session(
    pointer: Optional[SessionResumePointer],
    repository,
    factory,
    settings=None,
    now: Optional[float] = None,
) -> Optional[GameSession]:
    """
    Reopen the game a host was managing before a reload.

    Returns:
        The opened session, or None when the pointer is missing or stale, the
        game no longer exists, or the game is already completed
    """
    now = now if now is not None else now_ts()
    if pointer is None:
        return None
    if pointer.is_stale(now):
        logger.info("Ignoring stale session pointer", game_id=pointer.game_id,
                    version=pointer.version, captured_at=pointer.captured_at)
        return None
    game = repository.get(Game, pointer.game_id)
    if game is None:
        logger.info("Session pointer references a missing game", game_id=pointer.game_id)
        return None
    if game.status == GameStatus.COMPLETED:
        logger.info("Not resuming completed game", game_id=pointer.game_id)
        return None
    try:
        session = factory.create_session(repository, pointer.game_id, settings=settings)
        return session.open(now)
    except MatchClockError as exc:
        logger.warning("Could not resume session", game_id=pointer.game_id, error=exc.message)
        return None
