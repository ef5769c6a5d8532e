"""
Session state and the pure transitions that drive a quiz run.

Every function here takes a SessionState and returns a new one; nothing is
mutated in place. The QuizEngine serializes calls to these transitions.
"""
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple

from .errors import ValidationError
from .models import Character, Question


MISSING_ANSWER_MESSAGE = "Please select or enter an answer"
MISSING_NAME_MESSAGE = "Please enter your name to begin!"
MISSING_CHARACTER_MESSAGE = "Please select your character!"
COMPLETED_MESSAGE = "The quiz is already complete"


class SessionPhase(Enum):
    """Per-question phase of a session."""
    ANSWERING = "answering"
    REVEALED = "revealed"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of one quiz run."""
    participant_name: str
    character: Optional[Character]
    questions: Tuple[Question, ...]
    seconds_per_question: int = 30
    current_index: int = 0
    selected_answer: str = ""
    score: int = 0
    remaining_seconds: int = 30
    answer_revealed: bool = False
    wrong_answer: Optional[str] = None
    eliminated_options: Tuple[str, ...] = ()
    hint_shown: bool = False
    timer_frozen: bool = False
    timed_out: bool = False
    power_used: bool = False
    completed: bool = False
    feedback_message: str = ""
    alert_message: str = ""

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if self.completed or self.current_index >= len(self.questions):
            return None
        return self.questions[self.current_index]

    @property
    def phase(self) -> SessionPhase:
        if self.completed:
            return SessionPhase.COMPLETED
        if self.timed_out:
            return SessionPhase.TIMED_OUT
        if self.answer_revealed:
            return SessionPhase.REVEALED
        return SessionPhase.ANSWERING

    @property
    def is_counting_down(self) -> bool:
        """True when a timer tick should decrement the countdown."""
        return self.phase is SessionPhase.ANSWERING and not self.timer_frozen


def shuffle_questions(questions: Sequence[Question], rng: Optional[random.Random] = None) -> Tuple[Question, ...]:
    """
    Return a uniformly shuffled copy of the question bank.

    Args:
        questions: The bank to shuffle; left untouched
        rng: Optional random source, mainly for reproducible tests

    Returns:
        New tuple with the same questions in random order
    """
    shuffled = list(questions)
    (rng or random).shuffle(shuffled)
    return tuple(shuffled)


def new_session(
    questions: Sequence[Question],
    participant_name: str,
    character: Optional[Character],
    seconds_per_question: int = 30,
    rng: Optional[random.Random] = None
) -> SessionState:
    """
    Create a fresh session over a shuffled copy of the bank.

    Raises:
        ValidationError: If the name is blank, no character was chosen,
            or the bank is empty
    """
    if not participant_name or not participant_name.strip():
        raise ValidationError(MISSING_NAME_MESSAGE)
    if character is None:
        raise ValidationError(MISSING_CHARACTER_MESSAGE)
    if not questions:
        raise ValidationError("Cannot start a quiz without questions")

    return SessionState(
        participant_name=participant_name.strip(),
        character=character,
        questions=shuffle_questions(questions, rng),
        seconds_per_question=seconds_per_question,
        remaining_seconds=seconds_per_question
    )


def is_correct_answer(question: Question, answer: str) -> bool:
    """
    Check a raw answer against the question's correct answer.

    Multiple-choice answers compare by string equality. Integer answers are
    parsed and compared numerically; unparseable input is simply wrong.
    """
    if question.is_multiple_choice:
        return answer == question.correct_answer

    text = str(answer).strip()
    try:
        value = int(text)
    except ValueError:
        try:
            value = float(text)
        except ValueError:
            return False
    return value == question.correct_answer


def select_answer(state: SessionState, value) -> SessionState:
    """Record the raw answer; ignored once the question is revealed or timed out."""
    if state.phase is not SessionPhase.ANSWERING:
        return state
    return replace(state, selected_answer="" if value is None else str(value))


def evaluate_answer(state: SessionState) -> Tuple[SessionState, bool]:
    """
    Evaluate the selected answer for the current question.

    Returns:
        Tuple of (revealed state, whether the answer was correct)

    Raises:
        ValidationError: If nothing was selected or the question is no
            longer answerable
    """
    if state.completed:
        raise ValidationError(COMPLETED_MESSAGE)
    if state.phase is not SessionPhase.ANSWERING:
        raise ValidationError("This question can no longer be answered")
    if not state.selected_answer.strip():
        raise ValidationError(MISSING_ANSWER_MESSAGE)

    correct = is_correct_answer(state.current_question, state.selected_answer)
    if correct:
        return replace(state, answer_revealed=True, score=state.score + 1), True
    return replace(state, answer_revealed=True, wrong_answer=state.selected_answer), False


def proceed(state: SessionState) -> SessionState:
    """Move to the next question, or complete the session after the last one."""
    if state.completed:
        return state

    next_index = state.current_index + 1
    if next_index >= state.question_count:
        return replace(state, completed=True, current_index=state.question_count, timer_frozen=False)

    return replace(
        state,
        current_index=next_index,
        selected_answer="",
        remaining_seconds=state.seconds_per_question,
        answer_revealed=False,
        wrong_answer=None,
        eliminated_options=(),
        hint_shown=False,
        timer_frozen=False,
        timed_out=False
    )


def tick(state: SessionState) -> SessionState:
    """Apply one elapsed second; reaching zero marks the question timed out."""
    if not state.is_counting_down:
        return state

    remaining = max(state.remaining_seconds - 1, 0)
    return replace(state, remaining_seconds=remaining, timed_out=remaining == 0)
