"""Game clock for the matchclock core.

Phase changes are expressed as events applied by the pure :func:`transition`
function; :class:`GameClock` wraps it with the ledger side effects, the
per-second tick, periodic checkpoints and adoption of pushed snapshots.
Local and remote-origin changes go through the same :func:`transition`.
"""
import dataclasses
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..errors import InvalidTransition, NotFoundError
from ..models import Game, GameSettings, GameStatus, LineupAssignment, PlannedRotation
from ..utils import get_logger, now_ts, to_iso

logger = get_logger(__name__)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ClockEvent:
    """Base class for clock events."""
    name = "event"


@dataclass(frozen=True)
class StartGame(ClockEvent):
    name = "start"


@dataclass(frozen=True)
class PauseClock(ClockEvent):
    name = "pause"


@dataclass(frozen=True)
class ResumeClock(ClockEvent):
    name = "resume"


@dataclass(frozen=True)
class GoToHalftime(ClockEvent):
    name = "go to halftime"


@dataclass(frozen=True)
class StartSecondHalf(ClockEvent):
    name = "start second half"


@dataclass(frozen=True)
class EndGame(ClockEvent):
    name = "end"


@dataclass(frozen=True)
class Checkpoint(ClockEvent):
    name = "checkpoint"


@dataclass(frozen=True)
class ScoreChange(ClockEvent):
    our_score: int = 0
    opponent_score: int = 0
    name = "change score"


@dataclass(frozen=True)
class RemoteSnapshot(ClockEvent):
    """A Game pushed by the store after a change made anywhere."""
    game: Game = None
    running_locally: bool = False
    awaiting_pause_ack: bool = False
    name = "adopt remote snapshot"


def phase_rank(game: Game) -> int:
    """Order of match phases; a snapshot never moves a game backwards."""
    if game.status == GameStatus.SCHEDULED:
        return 0
    if game.status == GameStatus.IN_PROGRESS:
        return 1 if game.current_half == 1 else 3
    if game.status == GameStatus.HALFTIME:
        return 2
    return 4


# ----------------------------------------------------------------------
# Pure transition function
# ----------------------------------------------------------------------
def transition(game: Game, event: ClockEvent, now: float) -> Game:
    """
    Apply one event to a game and return the new game.

    Raises:
        InvalidTransition: If the event is not valid in the current phase;
            the input game is never modified
    """
    def invalid() -> InvalidTransition:
        return InvalidTransition(event.name, GameStatus(game.status).value,
                                 game.current_half, game.is_running)

    seconds = game.game_seconds_at(now)
    replace = dataclasses.replace

    if isinstance(event, StartGame):
        if game.status != GameStatus.SCHEDULED:
            raise invalid()
        return replace(game, status=GameStatus.IN_PROGRESS, current_half=1,
                       last_start_time=to_iso(now))

    if isinstance(event, PauseClock):
        if not game.is_running:
            raise invalid()
        return replace(game, elapsed_seconds=seconds, last_start_time=None)

    if isinstance(event, ResumeClock):
        if game.status != GameStatus.IN_PROGRESS or game.is_running:
            raise invalid()
        return replace(game, last_start_time=to_iso(now))

    if isinstance(event, GoToHalftime):
        if game.status != GameStatus.IN_PROGRESS or game.current_half != 1:
            raise invalid()
        return replace(game, status=GameStatus.HALFTIME, elapsed_seconds=seconds,
                       last_start_time=None)

    if isinstance(event, StartSecondHalf):
        if game.status != GameStatus.HALFTIME:
            raise invalid()
        return replace(game, status=GameStatus.IN_PROGRESS, current_half=2,
                       last_start_time=to_iso(now))

    if isinstance(event, EndGame):
        if game.status not in (GameStatus.IN_PROGRESS, GameStatus.HALFTIME):
            raise invalid()
        return replace(game, status=GameStatus.COMPLETED, elapsed_seconds=seconds,
                       last_start_time=None)

    if isinstance(event, Checkpoint):
        if not game.is_running:
            raise invalid()
        # Advance the start instant by whole seconds so no fraction is lost
        advanced = game.last_start_ts + (seconds - game.elapsed_seconds)
        return replace(game, elapsed_seconds=seconds, last_start_time=to_iso(advanced))

    if isinstance(event, ScoreChange):
        return replace(game, our_score=max(0, event.our_score),
                       opponent_score=max(0, event.opponent_score))

    if isinstance(event, RemoteSnapshot):
        return _merge_remote(game, event)

    raise invalid()


def _merge_remote(local: Game, event: RemoteSnapshot) -> Game:
    remote = event.game
    scores = {"our_score": remote.our_score, "opponent_score": remote.opponent_score}

    if phase_rank(remote) < phase_rank(local):
        # Stale delivery from before a phase change we already made
        return dataclasses.replace(local, **scores)

    same_phase = phase_rank(remote) == phase_rank(local)
    if same_phase and event.running_locally:
        # This session owns the running clock; keep its time fields
        return dataclasses.replace(local, **scores)

    if same_phase and event.awaiting_pause_ack and remote.last_start_time is not None:
        # Echo of a checkpoint written before our pause landed
        return dataclasses.replace(local, **scores)

    elapsed = max(local.elapsed_seconds, remote.elapsed_seconds)
    return dataclasses.replace(remote, id=local.id or remote.id, elapsed_seconds=elapsed)


# ----------------------------------------------------------------------
# Stateful clock service
# ----------------------------------------------------------------------
@dataclass
class TickResult:
    """What happened during one clock tick."""
    game_seconds: int
    due_rotation: Optional[PlannedRotation] = None
    auto_transition: Optional[str] = None
    checkpointed: bool = False


class GameClock:
    """Service owning match phase and elapsed-time accounting for one game."""

    def __init__(
        self,
        repository,
        game_id: str,
        settings: GameSettings,
        ledger=None,
        rotation_monitor=None,
        on_change: Optional[Callable[[Game], None]] = None,
    ):
        self.repository = repository
        self.game_id = game_id
        self.settings = settings
        self.ledger = ledger
        self.rotation_monitor = rotation_monitor
        self.on_change = on_change
        self.game: Optional[Game] = None
        self.running_locally = False
        self.last_persist_error: Optional[Exception] = None
        self._awaiting_pause_ack = False
        self._last_checkpoint_ts: Optional[float] = None

    # ------------------------------------------------------------------
    # Loading and queries
    # ------------------------------------------------------------------
    def load(self, now: Optional[float] = None) -> Game:
        """
        Fetch the game from the store and resume a clock left running.

        Raises:
            NotFoundError: If the game does not exist
        """
        game = self.repository.get(Game, self.game_id)
        if game is None:
            raise NotFoundError("Game", self.game_id)
        self.game = game
        self.running_locally = game.is_running
        self._last_checkpoint_ts = now if now is not None else now_ts()
        logger.info(
            "Loaded game clock",
            game_id=self.game_id,
            status=GameStatus(game.status).value,
            half=game.current_half,
            game_seconds=self.current_game_seconds(now),
        )
        return game

    def _require_game(self) -> Game:
        if self.game is None:
            self.load()
        return self.game

    def current_game_seconds(self, now: Optional[float] = None) -> int:
        game = self._require_game()
        return game.game_seconds_at(now if now is not None else now_ts())

    @property
    def is_running(self) -> bool:
        return self.game is not None and self.game.is_running

    def lineup(self) -> List[LineupAssignment]:
        return self.repository.list(LineupAssignment, game_id=self.game_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self, now: Optional[float] = None) -> Game:
        """Kick off the first half and open intervals for every starter."""
        now = now if now is not None else now_ts()
        game = self._require_game()
        new_game = self._next(StartGame(), now)
        if self.ledger is not None:
            self._open_for(
                [a for a in self.lineup() if a.is_starter],
                game.elapsed_seconds,
            )
        return self._commit(new_game, now, running=True)

    def pause(self, now: Optional[float] = None) -> Game:
        now = now if now is not None else now_ts()
        new_game = self._next(PauseClock(), now)
        self._awaiting_pause_ack = True
        return self._commit(new_game, now, running=False)

    def resume(self, now: Optional[float] = None) -> Game:
        now = now if now is not None else now_ts()
        new_game = self._next(ResumeClock(), now)
        self._awaiting_pause_ack = False
        return self._commit(new_game, now, running=True)

    def go_to_halftime(self, now: Optional[float] = None) -> Game:
        """Close every open interval at the captured second, then enter halftime."""
        now = now if now is not None else now_ts()
        new_game = self._next(GoToHalftime(), now)
        if self.ledger is not None:
            self.ledger.close_all(None, new_game.elapsed_seconds)
        return self._commit(new_game, now, running=False)

    def start_second_half(self, now: Optional[float] = None) -> Game:
        """Open intervals for the current lineup at the halftime second."""
        now = now if now is not None else now_ts()
        new_game = self._next(StartSecondHalf(), now)
        if self.ledger is not None:
            self._open_for(self.lineup(), new_game.elapsed_seconds)
        return self._commit(new_game, now, running=True)

    def end(self, now: Optional[float] = None) -> Game:
        """Close every open interval and freeze the clock."""
        now = now if now is not None else now_ts()
        new_game = self._next(EndGame(), now)
        if self.ledger is not None:
            self.ledger.close_all(None, new_game.elapsed_seconds)
        return self._commit(new_game, now, running=False)

    def checkpoint(self, now: Optional[float] = None) -> Game:
        now = now if now is not None else now_ts()
        new_game = self._next(Checkpoint(), now)
        self._last_checkpoint_ts = now
        return self._commit(new_game, now, running=self.running_locally)

    def set_score(self, our_score: int, opponent_score: int) -> Game:
        new_game = self._next(ScoreChange(our_score, opponent_score), now_ts())
        return self._commit(new_game, None, running=self.running_locally)

    def record_goal(self, ours: bool = True) -> Game:
        game = self._require_game()
        if ours:
            return self.set_score(game.our_score + 1, game.opponent_score)
        return self.set_score(game.our_score, game.opponent_score + 1)

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------
    def tick(self, now: Optional[float] = None) -> TickResult:
        """
        Advance the clock by one display tick.

        Checks for a due rotation, fires the automatic halftime and the
        hard ceiling, and writes a checkpoint every configured interval.
        """
        now = now if now is not None else now_ts()
        game = self._require_game()
        seconds = game.game_seconds_at(now)
        result = TickResult(game_seconds=seconds)
        if not (self.running_locally and game.is_running):
            return result

        if self.rotation_monitor is not None:
            result.due_rotation = self.rotation_monitor.check(seconds, game.current_half)

        ceiling = self.settings.max_game_seconds
        if ceiling is not None and seconds >= ceiling:
            logger.warning("Game clock reached hard ceiling", game_id=self.game_id,
                           game_seconds=seconds, ceiling=ceiling)
            self.end(now)
            result.auto_transition = "end"
        elif game.current_half == 1 and seconds >= self.settings.half_length_seconds:
            self.go_to_halftime(now)
            result.auto_transition = "halftime"
        elif (
            self._last_checkpoint_ts is None
            or now - self._last_checkpoint_ts >= self.settings.checkpoint_interval_seconds
        ):
            self.checkpoint(now)
            result.checkpointed = True
        return result

    # ------------------------------------------------------------------
    # Remote changes
    # ------------------------------------------------------------------
    def apply_remote(self, remote: Game, now: Optional[float] = None) -> Game:
        """
        Adopt a Game pushed by the store.

        Repeated delivery of the same snapshot leaves the clock unchanged.
        """
        now = now if now is not None else now_ts()
        if self.game is None:
            self.game = remote
            self.running_locally = remote.is_running
            self._last_checkpoint_ts = now
            return remote

        event = RemoteSnapshot(remote, self.running_locally, self._awaiting_pause_ack)
        merged = transition(self.game, event, now)
        if self._awaiting_pause_ack and remote.last_start_time is None:
            self._awaiting_pause_ack = False

        if merged != self.game:
            if merged.is_running and not self.running_locally:
                self._last_checkpoint_ts = now
            self.running_locally = merged.is_running
            self.game = merged
            logger.info(
                "Adopted remote game snapshot",
                game_id=self.game_id,
                status=GameStatus(merged.status).value,
                half=merged.current_half,
                elapsed_seconds=merged.elapsed_seconds,
            )
            if self.on_change is not None:
                self.on_change(merged)
        return self.game

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _next(self, event: ClockEvent, now: float) -> Game:
        try:
            return transition(self._require_game(), event, now)
        except InvalidTransition as exc:
            logger.info("Rejected clock transition", game_id=self.game_id, **exc.context)
            raise

    def _open_for(self, assignments: List[LineupAssignment], at_game_seconds: int) -> None:
        on_field = {r.player_id for r in self.ledger.open_records()}
        for assignment in assignments:
            if assignment.player_id in on_field:
                continue
            self.ledger.open(assignment.player_id, assignment.position_id, at_game_seconds)
            on_field.add(assignment.player_id)

    def _commit(self, new_game: Game, now: Optional[float], running: bool) -> Game:
        previous = self.game
        self.game = new_game
        self.running_locally = running
        if running and now is not None and (previous is None or not previous.is_running):
            self._last_checkpoint_ts = now
        self._persist(new_game)
        if self.on_change is not None:
            self.on_change(new_game)
        return new_game

    def _persist(self, game: Game) -> None:
        """Write the clock fields; failures are logged, never raised."""
        try:
            self.repository.update(
                Game,
                game.id or self.game_id,
                status=game.status,
                current_half=game.current_half,
                elapsed_seconds=game.elapsed_seconds,
                last_start_time=game.last_start_time,
                our_score=game.our_score,
                opponent_score=game.opponent_score,
            )
            self.last_persist_error = None
        except Exception as exc:
            self.last_persist_error = exc
            logger.warning(
                "Failed to persist game clock",
                game_id=self.game_id,
                elapsed_seconds=game.elapsed_seconds,
                error=str(exc),
            )
