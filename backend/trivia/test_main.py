from __future__ import annotations

from unittest import TestCase

from fastapi.testclient import TestClient

from .db import InMemoryGameStore, Settings
from .events import EventStore
from .main import create_app
from .registry import GameRegistry

ADMIN = {"X-Admin-Key": "secret"}


class ApiTests(TestCase):
    def setUp(self) -> None:
        settings = Settings(ADMIN_KEY="secret", TICK_INTERVAL_SEC=60)
        self.registry = GameRegistry(InMemoryGameStore(), EventStore(), settings)
        self.client = TestClient(create_app(self.registry))
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def _create(self, host_name: str = "Hana") -> str:
        response = self.client.post("/api/game", json={"host_name": host_name})
        self.assertEqual(response.status_code, 200)
        return response.json()["game_id"]

    def _join(self, game_id: str, name: str) -> str:
        response = self.client.post("/api/join", json={"game_id": game_id, "name": name})
        self.assertEqual(response.status_code, 200)
        return response.json()["player_id"]

    def test_create_and_read_game(self):
        game_id = self._create()

        response = self.client.get(f"/api/game/{game_id}")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["host"], "Hana")
        self.assertEqual(body["status"], "waiting")
        self.assertEqual(body["currentQuestionIndex"], -1)

    def test_create_requires_host_name(self):
        response = self.client.post("/api/game", json={"host_name": "  "})

        self.assertEqual(response.status_code, 400)

    def test_unknown_game_is_404(self):
        self.assertEqual(self.client.get("/api/game/NOPE").status_code, 404)
        response = self.client.post("/api/join", json={"game_id": "nope", "name": "Ana"})
        self.assertEqual(response.status_code, 404)

    def test_join_and_player_view(self):
        game_id = self._create()
        player_id = self._join(game_id.lower(), "Ana")

        view = self.client.get(f"/api/game/{game_id}/player/{player_id}").json()

        self.assertEqual(view["name"], "Ana")
        self.assertEqual(view["score"], 0)
        self.assertEqual(view["rank"], 1)
        self.assertIsNone(view["phase"])
        self.assertFalse(view["answered"])

        standings = self.client.get(f"/api/game/{game_id}/standings").json()
        self.assertEqual(standings, [{"rank": 1, "id": player_id, "name": "Ana", "score": 0}])

    def test_join_requires_a_name(self):
        game_id = self._create()

        response = self.client.post("/api/join", json={"game_id": game_id, "name": ""})

        self.assertEqual(response.status_code, 400)

    def test_admin_actions_need_the_key(self):
        game_id = self._create()

        response = self.client.post("/api/admin/start", json={"game_id": game_id, "question_set": 0})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.client.get("/api/admin/verify", headers=ADMIN).json(), {"ok": True})

    def test_start_needs_questions(self):
        game_id = self._create()

        response = self.client.post("/api/admin/start", json={"game_id": game_id}, headers=ADMIN)

        self.assertEqual(response.status_code, 400)

    def test_start_unknown_game(self):
        response = self.client.post("/api/admin/start", json={"game_id": "NOPE", "question_set": 0}, headers=ADMIN)

        self.assertEqual(response.status_code, 404)

    def test_start_with_custom_questions_and_teardown(self):
        game_id = self._create()
        player_id = self._join(game_id, "Ana")
        questions = [{"text": "2 + 2?", "options": ["3", "4", "5", "6"], "correctAnswer": 1, "points": 2}]

        response = self.client.post(
            "/api/admin/start", json={"game_id": game_id, "questions": questions}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 200)

        record = self.client.get(f"/api/game/{game_id}").json()
        self.assertEqual(record["status"], "started")
        self.assertEqual(record["phase"], "countdown")
        self.assertEqual(record["questions"][0]["points"], 2)

        late = self.client.post("/api/join", json={"game_id": game_id, "name": "Late"})
        self.assertEqual(late.status_code, 409)

        answer = self.client.post(
            "/api/answer", json={"game_id": game_id, "player_id": player_id, "option_index": 1}
        )
        self.assertEqual(answer.json(), {"accepted": False})

        action = self.client.post("/api/admin/leaderboard", json={"game_id": game_id}, headers=ADMIN)
        self.assertEqual(action.json(), {"accepted": False, "phase": "countdown"})

        results = self.client.get(f"/api/admin/game/{game_id}/results", headers=ADMIN)
        self.assertEqual(results.json(), {"result": None})

        teardown = self.client.post("/api/admin/teardown", json={"game_id": game_id}, headers=ADMIN)
        self.assertEqual(teardown.status_code, 200)
        self.assertEqual(self.client.get(f"/api/game/{game_id}").status_code, 404)

    def test_start_with_invalid_question(self):
        game_id = self._create()
        questions = [{"text": "?", "options": ["a", "b"], "correctAnswer": 0}]

        response = self.client.post(
            "/api/admin/start", json={"game_id": game_id, "questions": questions}, headers=ADMIN
        )

        self.assertEqual(response.status_code, 422)

    def test_question_sets(self):
        sets = self.client.get("/api/question-sets").json()

        self.assertEqual([s["name"] for s in sets], ["General Knowledge", "Science & Technology"])
        self.assertEqual(len(sets[0]["questions"]), 5)
        self.assertEqual(sets[0]["questions"][0]["correctAnswer"], 2)

    def test_events_start_with_a_reset_marker(self):
        game_id = self._create()

        body = self.client.get(f"/api/game/{game_id}/events").json()

        self.assertEqual(body["events"][0]["seq"], 1)
        self.assertEqual(body["events"][0]["payload"], {"type": "game_reset"})
        self.assertGreaterEqual(body["latest_seq"], 1)

    def test_leave(self):
        game_id = self._create()
        player_id = self._join(game_id, "Ana")

        response = self.client.post("/api/leave", json={"game_id": game_id, "player_id": player_id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/game/{game_id}").json()["players"], {})
        again = self.client.post("/api/leave", json={"game_id": game_id, "player_id": player_id})
        self.assertEqual(again.status_code, 404)

    def test_game_id_is_accepted_in_any_case(self):
        game_id = self._create()
        loose = f" {game_id.lower()} "
        player_id = self._join(loose, "Ana")

        self.assertEqual(self.client.get(f"/api/game/{game_id.lower()}").json()["host"], "Hana")
        view = self.client.get(f"/api/game/{game_id.lower()}/player/{player_id}")
        self.assertEqual(view.json()["name"], "Ana")
        standings = self.client.get(f"/api/game/{game_id.lower()}/standings").json()
        self.assertEqual([s["name"] for s in standings], ["Ana"])
        events = self.client.get(f"/api/game/{game_id.lower()}/events").json()
        self.assertEqual(events["events"][0]["payload"], {"type": "game_reset"})

        answer = self.client.post(
            "/api/answer", json={"game_id": game_id.lower(), "player_id": player_id, "option_index": 0}
        )
        self.assertEqual(answer.status_code, 200)
        leave = self.client.post("/api/leave", json={"game_id": loose, "player_id": player_id})
        self.assertEqual(leave.status_code, 200)
        self.assertEqual(self.client.get(f"/api/game/{game_id}").json()["players"], {})

        teardown = self.client.post("/api/admin/teardown", json={"game_id": game_id.lower()}, headers=ADMIN)
        self.assertEqual(teardown.status_code, 200)
        self.assertEqual(self.client.get(f"/api/game/{game_id}").status_code, 404)

    def test_standings_use_the_host_leaderboard(self):
        game_id = self._create()
        ana = self._join(game_id, "Ana")
        ben = self._join(game_id, "Ben")
        self.registry.host(game_id)._scores[ben] = 500

        standings = self.client.get(f"/api/game/{game_id}/standings").json()

        self.assertEqual([s["id"] for s in standings], [ben, ana])
        self.assertEqual(standings[0]["score"], 500)

    def test_teardown_marks_events_deleted(self):
        game_id = self._create()

        self.client.post("/api/admin/teardown", json={"game_id": game_id}, headers=ADMIN)

        body = self.client.get(f"/api/game/{game_id}/events").json()
        self.assertEqual(body["events"][-1]["payload"], {"type": "game_deleted"})
        self.assertEqual(self.client.get(f"/api/game/{game_id}/standings").status_code, 404)
