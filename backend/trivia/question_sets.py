from typing import List

from pydantic import BaseModel

from .models import Question


class QuestionSet(BaseModel):
    name: str
    questions: List[Question]


PREDEFINED_QUESTION_SETS: List[QuestionSet] = [
    QuestionSet(
        name="General Knowledge",
        questions=[
            Question(text="What is the capital of France?", options=["London", "Berlin", "Paris", "Madrid"], correct_answer=2),
            Question(text="Which planet is known as the Red Planet?", options=["Earth", "Mars", "Jupiter", "Venus"], correct_answer=1),
            Question(text="What is 2 + 2?", options=["3", "4", "5", "6"], correct_answer=1),
            Question(text="Who painted the Mona Lisa?", options=["Van Gogh", "Picasso", "Da Vinci", "Michelangelo"], correct_answer=2),
            Question(text="Which element has the chemical symbol 'O'?", options=["Gold", "Oxygen", "Osmium", "Oganesson"], correct_answer=1),
        ],
    ),
    QuestionSet(
        name="Science & Technology",
        questions=[
            Question(text="What is the chemical symbol for gold?", options=["Au", "Ag", "Fe", "Gd"], correct_answer=0),
            Question(text="Which of these is NOT a programming language?", options=["Java", "Python", "Cobra", "Crocodile"], correct_answer=3),
            Question(
                text="What does CPU stand for?",
                options=[
                    "Central Processing Unit",
                    "Computer Personal Unit",
                    "Central Processor Utility",
                    "Central Program Unit",
                ],
                correct_answer=0,
            ),
        ],
    ),
]


def get_question_set(index: int) -> QuestionSet:
    if not 0 <= index < len(PREDEFINED_QUESTION_SETS):
        raise ValueError(f"Unknown question set {index}")
    return PREDEFINED_QUESTION_SETS[index]
