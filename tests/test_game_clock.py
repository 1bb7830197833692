import unittest
from unittest.mock import patch

from matchclock.errors import InvalidTransition, RepositoryError
from matchclock.models import Game, GameSettings, GameStatus, LineupAssignment, PlannedRotation
from matchclock.services import GameClock, InMemoryRepository, PlayTimeLedger, RotationMonitor
from matchclock.services.game_clock import (
    EndGame, GoToHalftime, PauseClock, RemoteSnapshot, ResumeClock, StartGame,
    StartSecondHalf, transition
)
from matchclock.utils import to_iso

BASE = 1_700_000_000.0


def make_clock(settings=None, starters=7, repository=None, monitor=None):
    repository = repository or InMemoryRepository()
    repository.create(Game(id="g1", team_id="t1"))
    for index in range(1, starters + 1):
        repository.create(LineupAssignment(
            game_id="g1", player_id=f"P{index}", position_id=f"pos{index}", is_starter=True
        ))
    ledger = PlayTimeLedger(repository, "g1")
    clock = GameClock(repository, "g1", settings or GameSettings(), ledger=ledger,
                      rotation_monitor=monitor)
    clock.load(now=BASE)
    return repository, ledger, clock


class FailingGameUpdates(InMemoryRepository):
    def __init__(self):
        super().__init__()
        self.fail_game_updates = False

    def update(self, entity, entity_id, **changes):
        if entity is Game and self.fail_game_updates:
            raise RepositoryError("store offline")
        return super().update(entity, entity_id, **changes)


class TransitionTests(unittest.TestCase):
    def test_start_sets_first_half_and_start_instant(self) -> None:
        game = transition(Game(id="g1"), StartGame(), BASE)
        self.assertEqual(game.status, GameStatus.IN_PROGRESS)
        self.assertEqual(game.current_half, 1)
        self.assertEqual(game.last_start_time, to_iso(BASE))
        self.assertTrue(game.is_running)

    def test_pause_folds_running_time_into_elapsed(self) -> None:
        game = transition(Game(id="g1"), StartGame(), BASE)
        paused = transition(game, PauseClock(), BASE + 90.8)
        self.assertEqual(paused.elapsed_seconds, 90)
        self.assertIsNone(paused.last_start_time)
        resumed = transition(paused, ResumeClock(), BASE + 200)
        self.assertEqual(resumed.game_seconds_at(BASE + 230), 120)

    def test_invalid_transitions_leave_input_untouched(self) -> None:
        game = Game(id="g1")
        for event in (PauseClock(), ResumeClock(), GoToHalftime(), StartSecondHalf(), EndGame()):
            with self.assertRaises(InvalidTransition):
                transition(game, event, BASE)
        self.assertEqual(game, Game(id="g1"))

        running = transition(game, StartGame(), BASE)
        with self.assertRaises(InvalidTransition) as ctx:
            transition(running, StartGame(), BASE + 5)
        self.assertEqual(ctx.exception.context["status"], "in-progress")
        self.assertTrue(ctx.exception.context["running"])

    def test_end_allowed_from_halftime(self) -> None:
        game = transition(Game(id="g1"), StartGame(), BASE)
        game = transition(game, GoToHalftime(), BASE + 1800)
        ended = transition(game, EndGame(), BASE + 2000)
        self.assertEqual(ended.status, GameStatus.COMPLETED)
        self.assertEqual(ended.elapsed_seconds, 1800)

    def test_stale_remote_snapshot_keeps_phase_but_takes_score(self) -> None:
        local = Game(id="g1", status=GameStatus.HALFTIME, elapsed_seconds=1800)
        remote = Game(id="g1", status=GameStatus.IN_PROGRESS, elapsed_seconds=1795,
                      last_start_time=to_iso(BASE), our_score=2)
        merged = transition(local, RemoteSnapshot(remote), BASE + 10)
        self.assertEqual(merged.status, GameStatus.HALFTIME)
        self.assertEqual(merged.elapsed_seconds, 1800)
        self.assertEqual(merged.our_score, 2)

    def test_remote_time_ignored_while_running_locally(self) -> None:
        local = transition(Game(id="g1"), StartGame(), BASE)
        remote = Game(id="g1", status=GameStatus.IN_PROGRESS, elapsed_seconds=40,
                      last_start_time=to_iso(BASE + 3), opponent_score=1)
        merged = transition(local, RemoteSnapshot(remote, running_locally=True), BASE + 50)
        self.assertEqual(merged.last_start_time, local.last_start_time)
        self.assertEqual(merged.elapsed_seconds, 0)
        self.assertEqual(merged.opponent_score, 1)

    def test_remote_phase_change_is_adopted(self) -> None:
        local = transition(Game(id="g1"), StartGame(), BASE)
        remote = Game(id="g1", status=GameStatus.HALFTIME, elapsed_seconds=1800)
        merged = transition(local, RemoteSnapshot(remote, running_locally=True), BASE + 1801)
        self.assertEqual(merged.status, GameStatus.HALFTIME)
        self.assertFalse(merged.is_running)

    def test_running_echo_ignored_while_pause_unacknowledged(self) -> None:
        local = Game(id="g1", status=GameStatus.IN_PROGRESS, elapsed_seconds=300)
        echo = Game(id="g1", status=GameStatus.IN_PROGRESS, elapsed_seconds=295,
                    last_start_time=to_iso(BASE))
        merged = transition(local, RemoteSnapshot(echo, awaiting_pause_ack=True), BASE + 301)
        self.assertFalse(merged.is_running)
        self.assertEqual(merged.elapsed_seconds, 300)


class GameClockTests(unittest.TestCase):
    def test_full_first_half_closes_every_record_at_half_length(self) -> None:
        repository, ledger, clock = make_clock()
        clock.start(now=BASE)

        records = ledger.records()
        self.assertEqual(len(records), 7)
        self.assertTrue(all(r.start_game_seconds == 0 and r.is_open for r in records))

        result = clock.tick(now=BASE + 1800)
        self.assertEqual(result.auto_transition, "halftime")

        records = ledger.records()
        self.assertTrue(all(r.end_game_seconds == 1800 for r in records))
        stored = repository.get(Game, "g1")
        self.assertEqual(stored.status, GameStatus.HALFTIME)
        self.assertEqual(stored.elapsed_seconds, 1800)
        self.assertIsNone(stored.last_start_time)

    def test_start_skips_starter_already_on_field(self) -> None:
        _, ledger, clock = make_clock(starters=3)
        existing = ledger.open("P1", "pos1", 0)

        clock.start(now=BASE)

        open_records = ledger.open_records()
        self.assertEqual(len(open_records), 3)
        self.assertEqual(sorted(r.player_id for r in open_records), ["P1", "P2", "P3"])
        self.assertEqual(ledger.open_record_for("P1").id, existing.id)

    def test_second_half_reopens_current_lineup(self) -> None:
        _, ledger, clock = make_clock(starters=3)
        clock.start(now=BASE)
        clock.go_to_halftime(now=BASE + 1700)
        clock.start_second_half(now=BASE + 2500)

        open_records = ledger.open_records()
        self.assertEqual(len(open_records), 3)
        self.assertTrue(all(r.start_game_seconds == 1700 for r in open_records))
        self.assertEqual(clock.current_game_seconds(BASE + 2560), 1760)

    def test_checkpoint_advances_start_by_whole_seconds(self) -> None:
        repository, _, clock = make_clock(starters=0)
        clock.start(now=BASE)

        self.assertFalse(clock.tick(now=BASE + 2.5).checkpointed)
        self.assertTrue(clock.tick(now=BASE + 5.7).checkpointed)

        stored = repository.get(Game, "g1")
        self.assertEqual(stored.elapsed_seconds, 5)
        self.assertEqual(stored.last_start_time, to_iso(BASE + 5))
        self.assertEqual(clock.current_game_seconds(BASE + 10.2), 10)

    def test_hard_ceiling_ends_game(self) -> None:
        settings = GameSettings(half_length_seconds=60, max_game_seconds=100)
        repository, ledger, clock = make_clock(settings=settings, starters=2)
        clock.start(now=BASE)
        self.assertEqual(clock.tick(now=BASE + 60).auto_transition, "halftime")
        clock.start_second_half(now=BASE + 100)

        result = clock.tick(now=BASE + 140)
        self.assertEqual(result.auto_transition, "end")
        stored = repository.get(Game, "g1")
        self.assertEqual(stored.status, GameStatus.COMPLETED)
        self.assertEqual(stored.elapsed_seconds, 100)
        self.assertEqual(ledger.open_records(), [])

    def test_ceiling_can_be_disabled(self) -> None:
        settings = GameSettings(half_length_seconds=60, max_game_seconds=None)
        _, _, clock = make_clock(settings=settings, starters=0)
        clock.start(now=BASE)
        clock.go_to_halftime(now=BASE + 60)
        clock.start_second_half(now=BASE + 70)
        result = clock.tick(now=BASE + 10_000)
        self.assertIsNone(result.auto_transition)
        self.assertEqual(clock.game.status, GameStatus.IN_PROGRESS)

    def test_invalid_transition_changes_nothing(self) -> None:
        repository, ledger, clock = make_clock()
        with self.assertRaises(InvalidTransition):
            clock.pause(now=BASE)
        with self.assertRaises(InvalidTransition):
            clock.start_second_half(now=BASE)
        self.assertEqual(repository.get(Game, "g1").status, GameStatus.SCHEDULED)
        self.assertEqual(ledger.records(), [])

    def test_persist_failure_is_logged_not_raised(self) -> None:
        repository = FailingGameUpdates()
        _, _, clock = make_clock(repository=repository, starters=0)
        clock.start(now=BASE)

        repository.fail_game_updates = True
        clock.pause(now=BASE + 30)

        self.assertIsInstance(clock.last_persist_error, RepositoryError)
        self.assertFalse(clock.is_running)
        self.assertEqual(clock.game.elapsed_seconds, 30)
        self.assertTrue(repository.get(Game, "g1").is_running)

    def test_tick_reports_due_rotation_once(self) -> None:
        repository = InMemoryRepository()
        repository.create(PlannedRotation(game_plan_id="plan1", rotation_number=1,
                                           game_minute=10, half=1))
        monitor = RotationMonitor(repository, "plan1")
        _, _, clock = make_clock(repository=repository, monitor=monitor, starters=0)
        clock.start(now=BASE)

        with patch("matchclock.services.rotation_planner.now_ts", return_value=BASE + 545):
            first = clock.tick(now=BASE + 545)
            second = clock.tick(now=BASE + 546)

        self.assertEqual(first.due_rotation.rotation_number, 1)
        self.assertIsNotNone(first.due_rotation.viewed_at)
        self.assertIsNone(second.due_rotation)

    def test_score_changes_persist(self) -> None:
        repository, _, clock = make_clock(starters=0)
        with patch("matchclock.services.game_clock.now_ts", return_value=BASE):
            clock.record_goal()
            clock.record_goal(ours=False)
            clock.record_goal()
        stored = repository.get(Game, "g1")
        self.assertEqual((stored.our_score, stored.opponent_score), (2, 1))

    def test_repeated_remote_snapshot_is_applied_once(self) -> None:
        repository, _, clock = make_clock(starters=0)
        changes = []
        clock.on_change = changes.append
        remote = Game(id="g1", team_id="t1", status=GameStatus.IN_PROGRESS,
                      elapsed_seconds=120, last_start_time=to_iso(BASE))

        clock.apply_remote(remote, now=BASE + 10)
        clock.apply_remote(remote, now=BASE + 11)

        self.assertEqual(len(changes), 1)
        self.assertTrue(clock.running_locally)
        self.assertEqual(clock.current_game_seconds(BASE + 30), 150)


if __name__ == "__main__":
    unittest.main()
