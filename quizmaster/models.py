"""
Core data models for the QuizMaster bot.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


UNANSWERED = "Not Answered"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    text: str
    options: List[str]
    correct_index: int

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_index]


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    duration: int = 60
    # Real seconds per countdown second; only tests shorten it
    tick_interval: float = 1.0


class Phase(Enum):
    """Lifecycle stage of a quiz session."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    REVIEWING = "reviewing"


@dataclass
class Session:
    """State of the single quiz attempt owned by the controller."""
    questions: List[Question]
    duration: int
    remaining_seconds: int
    position: int = 0
    answers: Dict[int, int] = field(default_factory=dict)
    score: int = 0
    phase: Phase = Phase.IN_PROGRESS

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.position]

    def is_answered(self, index: int) -> bool:
        return index in self.answers


@dataclass(frozen=True)
class ReviewEntry:
    """One row of the post-quiz answer review."""
    index: int
    question: str
    correct_answer: str
    user_answer: str
    selected_index: Optional[int]
    is_correct: bool


@dataclass(frozen=True)
class FinishResult:
    """Outcome of a finished session."""
    score: int
    total: int
    high_score: int
    previous_high_score: int
    timed_out: bool = False

    @property
    def is_new_high_score(self) -> bool:
        return self.score > self.previous_high_score
