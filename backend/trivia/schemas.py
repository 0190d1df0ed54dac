from pydantic import BaseModel
from typing import List, Optional
from .models import Answer, Question
from .scoring import QuestionResult


class CreateGameIn(BaseModel):
    host_name: str
    game_id: Optional[str] = None


class CreateGameOut(BaseModel):
    game_id: str


class JoinIn(BaseModel):
    game_id: str
    name: str


class LeaveIn(BaseModel):
    game_id: str
    player_id: str


class StartGameIn(BaseModel):
    game_id: str
    questions: Optional[List[Question]] = None
    question_set: Optional[int] = None


class HostActionIn(BaseModel):
    game_id: str


class HostActionOut(BaseModel):
    accepted: bool
    phase: Optional[str]


class AnswerIn(BaseModel):
    game_id: str
    player_id: str
    option_index: int


class StandingOut(BaseModel):
    rank: int
    id: str
    name: str
    score: int


class PlayerViewOut(BaseModel):
    player_id: str
    name: str
    phase: Optional[str]
    current_question_index: int
    time_left: int
    score: int
    rank: int
    answered: bool
    last_answer: Optional[Answer] = None


class ResultsOut(BaseModel):
    result: Optional[QuestionResult]
