from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

OPTION_COUNT = 4
POINT_MULTIPLIERS = (1, 2)


class Phase(str, Enum):
    COUNTDOWN = "countdown"
    QUESTION = "question"
    RESULTS = "results"
    LEADERBOARD = "leaderboard"
    FINISHED = "finished"


class WireModel(BaseModel):
    """Base for everything stored in the shared game record (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Question(WireModel):
    text: str
    options: List[str]
    correct_answer: int
    points: int = 1

    @field_validator("options")
    @classmethod
    def _four_options(cls, options: List[str]) -> List[str]:
        if len(options) != OPTION_COUNT:
            raise ValueError(f"A question needs exactly {OPTION_COUNT} options")
        if any(not option.strip() for option in options):
            raise ValueError("Options cannot be empty")
        return options

    @field_validator("correct_answer")
    @classmethod
    def _answer_in_range(cls, value: int) -> int:
        if not 0 <= value < OPTION_COUNT:
            raise ValueError("correct_answer must point at one of the options")
        return value

    @field_validator("points")
    @classmethod
    def _known_multiplier(cls, value: int) -> int:
        if value not in POINT_MULTIPLIERS:
            raise ValueError("points must be 1 (standard) or 2 (double)")
        return value


class Answer(WireModel):
    question_index: int
    option: int
    time: int  # ms since the question started
    is_correct: bool
    submitted_at: Optional[float] = None  # epoch seconds, only breaks exact time ties


class Player(WireModel):
    id: str = Field(default="", exclude=True)
    name: str
    score: int = Field(default=0, ge=0)
    answer: Optional[Answer] = None
    joined_at: float = 0.0


# Lobby: status "waiting", phase None.
# Play: status "started", phase countdown -> question -> results -> leaderboard -> ... -> finished
class Game(WireModel):
    id: str = Field(default="", exclude=True)
    host: str = ""
    status: Literal["waiting", "started"] = "waiting"
    phase: Optional[Phase] = None
    current_question_index: int = Field(default=-1, ge=-1)
    questions: List[Question] = Field(default_factory=list)
    time_left: int = 0
    players: Dict[str, Player] = Field(default_factory=dict)
    created_at: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _key_players(cls, data: Any) -> Any:
        # players are keyed by id on the wire; copy the key into each entry
        if isinstance(data, dict):
            players = data.get("players") or {}
            data = {
                **data,
                "players": {
                    pid: ({**entry, "id": pid} if isinstance(entry, dict) else entry)
                    for pid, entry in players.items()
                },
            }
        return data

    @classmethod
    def from_record(cls, game_id: str, record: Dict[str, Any]) -> "Game":
        return cls.model_validate({**record, "id": game_id})

    @property
    def current_question(self) -> Optional[Question]:
        return self.question_at(self.current_question_index)

    def question_at(self, index: int) -> Optional[Question]:
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None

    def live_answer(self, player: Player, index: Optional[int] = None) -> Optional[Answer]:
        """The player's answer if it targets ``index`` (default: the active question).

        Answers left over from an earlier question count as no answer.
        """
        if index is None:
            index = self.current_question_index
        if player.answer is not None and player.answer.question_index == index:
            return player.answer
        return None

    def all_answered(self, index: int) -> bool:
        if not self.players:
            return False
        return all(self.live_answer(p, index) is not None for p in self.players.values())
