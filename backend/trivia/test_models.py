from unittest import TestCase

from pydantic import ValidationError

from .models import Game, Phase, Question


def _record(**overrides):
    record = {
        "host": "Hana",
        "status": "started",
        "phase": "question",
        "currentQuestionIndex": 1,
        "questions": [
            {"text": "Q1", "options": ["a", "b", "c", "d"], "correctAnswer": 0, "points": 1},
            {"text": "Q2", "options": ["a", "b", "c", "d"], "correctAnswer": 3, "points": 2},
        ],
        "timeLeft": 12,
        "players": {
            "p1": {"name": "Ana", "score": 800, "answer": None, "joinedAt": 1.0},
            "p2": {
                "name": "Ben",
                "score": 0,
                "answer": {"questionIndex": 1, "option": 3, "time": 1500, "isCorrect": True},
                "joinedAt": 2.0,
            },
        },
    }
    record.update(overrides)
    return record


class GameRecordTests(TestCase):
    def test_parses_wire_record_and_keys_players(self):
        game = Game.from_record("ABC123", _record())

        self.assertEqual(game.id, "ABC123")
        self.assertEqual(game.phase, Phase.QUESTION)
        self.assertEqual(game.current_question.correct_answer, 3)
        self.assertEqual([p.id for p in game.players.values()], ["p1", "p2"])
        self.assertEqual(game.players["p2"].answer.time, 1500)

    def test_round_trip_keeps_explicit_null_answer(self):
        wire = Game.from_record("ABC123", _record()).to_wire()

        self.assertIn("answer", wire["players"]["p1"])
        self.assertIsNone(wire["players"]["p1"]["answer"])
        self.assertNotIn("id", wire)
        self.assertNotIn("id", wire["players"]["p1"])
        self.assertEqual(wire["currentQuestionIndex"], 1)
        self.assertEqual(wire["players"]["p2"]["answer"]["isCorrect"], True)

    def test_stale_answer_is_not_live(self):
        record = _record()
        record["players"]["p2"]["answer"]["questionIndex"] = 0
        game = Game.from_record("ABC123", record)

        self.assertIsNone(game.live_answer(game.players["p2"]))
        self.assertIsNotNone(game.live_answer(game.players["p2"], 0))

    def test_all_answered_requires_every_player_on_the_active_index(self):
        game = Game.from_record("ABC123", _record())
        self.assertFalse(game.all_answered(1))

        record = _record()
        record["players"]["p1"]["answer"] = {"questionIndex": 1, "option": 0, "time": 900, "isCorrect": False}
        self.assertTrue(Game.from_record("ABC123", record).all_answered(1))
        self.assertFalse(Game.from_record("ABC123", record).all_answered(0))

    def test_all_answered_never_fires_without_players(self):
        game = Game.from_record("ABC123", _record(players={}))

        self.assertFalse(game.all_answered(1))

    def test_missing_players_field_is_an_empty_mapping(self):
        record = _record()
        del record["players"]

        self.assertEqual(Game.from_record("ABC123", record).players, {})

    def test_negative_score_is_rejected(self):
        record = _record()
        record["players"]["p1"]["score"] = -5

        with self.assertRaises(ValidationError):
            Game.from_record("ABC123", record)


class QuestionValidationTests(TestCase):
    def test_accepts_snake_and_camel_names(self):
        a = Question(text="Q", options=["a", "b", "c", "d"], correct_answer=2)
        b = Question.model_validate({"text": "Q", "options": ["a", "b", "c", "d"], "correctAnswer": 2})

        self.assertEqual(a, b)
        self.assertEqual(a.points, 1)

    def test_requires_four_non_empty_options(self):
        with self.assertRaises(ValidationError):
            Question(text="Q", options=["a", "b", "c"], correct_answer=0)
        with self.assertRaises(ValidationError):
            Question(text="Q", options=["a", "b", " ", "d"], correct_answer=0)

    def test_correct_answer_and_points_bounds(self):
        with self.assertRaises(ValidationError):
            Question(text="Q", options=["a", "b", "c", "d"], correct_answer=4)
        with self.assertRaises(ValidationError):
            Question(text="Q", options=["a", "b", "c", "d"], correct_answer=0, points=3)
