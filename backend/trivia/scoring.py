from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from .models import Answer, Player, Question

BASE_POINTS = 1000
FASTEST_BONUS_POINTS = 500
QUESTION_DURATION_MS = 20_000


class QuestionResult(BaseModel):
    question_index: int
    correct_answer: int
    # player id -> points earned on this question (0 for wrong or missing answers)
    awards: Dict[str, int] = Field(default_factory=dict)
    # correct responders, fastest first
    correct_player_ids: List[str] = Field(default_factory=list)
    fastest_player_id: Optional[str] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def speed_points(
    time_ms: float,
    multiplier: int = 1,
    *,
    base_points: int = BASE_POINTS,
    duration_ms: int = QUESTION_DURATION_MS,
) -> int:
    """Points for a correct answer given ``time_ms`` after the question started.

    The speed factor decays linearly from 1 to 0 over the question duration;
    answers at or past the limit are still correct but earn nothing.
    """
    speed_factor = max(0.0, 1 - max(0.0, time_ms) / duration_ms)
    return _round_half_up(base_points * multiplier * speed_factor)


def is_correct(answer: Answer, question: Question) -> bool:
    return answer.option == question.correct_answer


def live_answers(players: Iterable[Player], question_index: int) -> List[Tuple[Player, Answer]]:
    return [
        (p, p.answer)
        for p in players
        if p.answer is not None and p.answer.question_index == question_index
    ]


def rank_correct_answers(
    players: Iterable[Player], question: Question, question_index: int
) -> List[Tuple[Player, Answer]]:
    """Correct live answers ordered fastest first.

    Equal times go to the earlier submission, then to record order.
    """
    correct = [(p, a) for p, a in live_answers(players, question_index) if is_correct(a, question)]
    correct.sort(
        key=lambda pa: (
            pa[1].time,
            pa[1].submitted_at if pa[1].submitted_at is not None else math.inf,
        )
    )
    return correct


def score_question(
    players: Iterable[Player],
    question: Question,
    question_index: int,
    *,
    base_points: int = BASE_POINTS,
    bonus_points: int = FASTEST_BONUS_POINTS,
    duration_ms: int = QUESTION_DURATION_MS,
) -> QuestionResult:
    players = list(players)
    ranked = rank_correct_answers(players, question, question_index)

    awards = {p.id: 0 for p in players}
    for player, answer in ranked:
        awards[player.id] = speed_points(
            answer.time, question.points, base_points=base_points, duration_ms=duration_ms
        )

    fastest_id = ranked[0][0].id if ranked else None
    if fastest_id is not None:
        awards[fastest_id] += bonus_points

    return QuestionResult(
        question_index=question_index,
        correct_answer=question.correct_answer,
        awards=awards,
        correct_player_ids=[p.id for p, _ in ranked],
        fastest_player_id=fastest_id,
    )
