import unittest

from matchclock.errors import NotFoundError, RepositoryError
from matchclock.models import (
    Game, GamePlan, GameSettings, GameStatus, PlannedRotation, Substitution
)
from matchclock.services import ChangeFeed, GameClock, InMemoryRepository

BASE = 1_700_000_000.0


class InMemoryRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryRepository()

    def test_create_assigns_id_and_rejects_duplicates(self) -> None:
        game = self.repository.create(Game(team_id="t1"))
        self.assertTrue(game.id)
        with self.assertRaises(RepositoryError):
            self.repository.create(Game(id=game.id))

    def test_missing_entities(self) -> None:
        self.assertIsNone(self.repository.get(Game, "nope"))
        with self.assertRaises(NotFoundError):
            self.repository.update(Game, "nope", our_score=1)
        with self.assertRaises(NotFoundError):
            self.repository.delete(Game, "nope")

    def test_returned_items_are_copies(self) -> None:
        game = self.repository.create(Game(id="g1"))
        game.our_score = 5
        self.assertEqual(self.repository.get(Game, "g1").our_score, 0)

    def test_list_filters_by_attribute(self) -> None:
        self.repository.create(Substitution(game_id="g1", position_id="CB"))
        self.repository.create(Substitution(game_id="g2", position_id="CB"))
        self.assertEqual(len(self.repository.list(Substitution, game_id="g1")), 1)
        self.assertEqual(len(self.repository.list(Substitution, position_id="CB")), 2)

    def test_subscription_pushes_current_set_then_changes(self) -> None:
        deliveries = []
        subscription = self.repository.subscribe(
            Substitution, deliveries.append, game_id="g1"
        )
        self.repository.create(Substitution(game_id="g1"))
        self.repository.create(Substitution(game_id="g2"))

        self.assertEqual([len(d) for d in deliveries], [0, 1])

        subscription.unsubscribe()
        self.repository.create(Substitution(game_id="g1"))
        self.assertEqual(len(deliveries), 2)

    def test_failing_subscriber_does_not_fail_writer(self) -> None:
        def explode(items):
            if items:
                raise RuntimeError("listener bug")

        self.repository.subscribe(Game, explode)
        game = self.repository.create(Game(id="g1"))
        self.assertEqual(game.id, "g1")


class ChangeFeedTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryRepository()
        self.repository.create(Game(id="g1", team_id="t1"))

    def test_duplicate_delivery_is_dropped(self) -> None:
        feed = ChangeFeed(self.repository, "g1")
        seen = []
        feed.on(Substitution, seen.append)
        feed.start()
        self.repository.create(Substitution(game_id="g1", position_id="CB"))

        self.repository.redeliver()
        self.repository.redeliver(Substitution)

        self.assertEqual([len(items) for items in seen], [0, 1])

    def test_feed_follows_game_plan_rotations(self) -> None:
        feed = ChangeFeed(self.repository, "g1")
        rotations = []
        feed.on(PlannedRotation, rotations.append)
        feed.start()

        plan = self.repository.create(GamePlan(game_id="g1"))
        self.repository.create(PlannedRotation(game_plan_id=plan.id, rotation_number=1,
                                               game_minute=10))
        self.repository.create(PlannedRotation(game_plan_id="other", rotation_number=1))

        self.assertEqual([len(items) for items in rotations], [0, 1])

        feed.stop()
        self.assertFalse(feed.active)
        self.repository.create(PlannedRotation(game_plan_id=plan.id, rotation_number=2))
        self.assertEqual(len(rotations), 2)

    def test_second_session_adopts_remote_clock(self) -> None:
        settings = GameSettings()
        owner = GameClock(self.repository, "g1", settings)
        watcher = GameClock(self.repository, "g1", settings)
        owner.load(now=BASE)
        ChangeFeed(self.repository, "g1", clock=owner).start()
        ChangeFeed(self.repository, "g1", clock=watcher).start()

        owner.start(now=BASE)

        self.assertTrue(watcher.is_running)
        self.assertTrue(watcher.running_locally)
        self.assertEqual(watcher.current_game_seconds(BASE + 60), 60)

        owner.go_to_halftime(now=BASE + 1800)

        self.assertEqual(watcher.game.status, GameStatus.HALFTIME)
        self.assertEqual(watcher.game.elapsed_seconds, 1800)
        self.assertFalse(watcher.is_running)
        self.assertEqual(owner.game.status, GameStatus.HALFTIME)


if __name__ == "__main__":
    unittest.main()
