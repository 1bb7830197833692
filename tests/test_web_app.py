import unittest
from unittest.mock import patch

from matchclock.models import AvailabilityStatus, Game, GameSettings
from matchclock.services import InMemoryRepository, ServiceFactory
from matchclock.ui import create_app, run_web_app


class WebAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryRepository()
        self.repository.create(Game(id="g1", team_id="t1"))
        self.session = ServiceFactory(GameSettings()).create_session(self.repository, "g1")
        self.session.open()
        self.session.assign("CB", "P1")
        self.session.assign("ST", "P2")
        app = create_app(self.session)
        app.config["TESTING"] = True
        self.client = app.test_client()

    def tearDown(self) -> None:
        self.session.close()

    def test_state(self) -> None:
        response = self.client.get("/api/state")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["state"]["lineup"], {"CB": "P1", "ST": "P2"})
        self.assertEqual(body["state"]["game"]["status"], "scheduled")

    def test_session_pointer(self) -> None:
        body = self.client.get("/api/session/pointer").get_json()
        self.assertIn('"gameId": "g1"', body["pointer"])

    def test_invalid_clock_transition_is_conflict(self) -> None:
        response = self.client.post("/api/clock/pause")
        self.assertEqual(response.status_code, 409)
        body = response.get_json()
        self.assertFalse(body["success"])
        self.assertEqual(body["type"], "InvalidTransition")
        self.assertEqual(body["context"]["status"], "scheduled")

    def test_start_reports_unavailable_starters(self) -> None:
        self.session.availability.set_status("P2", AvailabilityStatus.ABSENT)

        response = self.client.post("/api/clock/start")

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["game"]["status"], "in-progress")
        self.assertEqual(body["warnings"], ["Starter P2 is absent"])

    def test_substitution_flow(self) -> None:
        self.client.post("/api/clock/start")

        missing = self.client.post("/api/substitution", json={"position_id": "CB"})
        self.assertEqual(missing.status_code, 400)
        self.assertIn("player_out_id", missing.get_json()["error"])

        self.session.availability.set_status("P9", AvailabilityStatus.ABSENT)
        ineligible = self.client.post("/api/substitution", json={
            "position_id": "CB", "player_out_id": "P1", "player_in_id": "P9",
        })
        self.assertEqual(ineligible.status_code, 400)
        self.assertEqual(ineligible.get_json()["type"], "EligibilityViolation")

        response = self.client.post("/api/substitution", json={
            "position_id": "CB", "player_out_id": "P1", "player_in_id": "P3",
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["substitution"]["playerInId"], "P3")
        self.assertEqual(self.session.lineup()["CB"], "P3")

    def test_queue_endpoints(self) -> None:
        added = self.client.post("/api/queue", json={"player_id": "P3", "position_id": "CB"})
        self.assertEqual(added.status_code, 200)

        duplicate = self.client.post("/api/queue", json={"player_id": "P3", "position_id": "ST"})
        self.assertEqual(duplicate.status_code, 400)

        queue = self.client.get("/api/queue").get_json()["queue"]
        self.assertEqual(len(queue), 1)
        self.client.delete("/api/queue")
        self.assertEqual(self.client.get("/api/queue").get_json()["queue"], [])

    def test_unknown_rotation_is_not_found(self) -> None:
        response = self.client.post("/api/rotations/9/execute")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/rotations/0/lineup").get_json()["lineup"], {})

    def test_analytics_endpoints(self) -> None:
        self.client.post("/api/clock/start")

        report = self.client.get("/api/analytics/report").get_json()["report"]
        self.assertEqual(report["game_id"], "g1")
        self.assertEqual(report["roster_size"], 2)

        export = self.client.get("/api/analytics/export")
        self.assertEqual(export.status_code, 200)
        self.assertEqual(export.mimetype, "text/csv")
        self.assertTrue(export.get_data(as_text=True).startswith("Play Time Report"))

    def test_run_web_app_serves_one_request_at_a_time(self) -> None:
        with patch("matchclock.ui.web_app.Flask.run") as run:
            run_web_app(self.session, port=7200)

        run.assert_called_once()
        self.assertEqual(run.call_args.kwargs["port"], 7200)
        self.assertIs(run.call_args.kwargs["threaded"], False)


if __name__ == "__main__":
    unittest.main()
