"""
Core data models for QuizQuest.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class QuestionType(Enum):
    """Kinds of questions a bank may contain."""
    MULTIPLE_CHOICE = "mc"
    INTEGER = "integer"


class PowerKind(Enum):
    """The five single-use character powers."""
    TIME_BOOST = "time_boost"
    REVEAL_ANSWER = "reveal_answer"
    SECOND_CHANCE = "second_chance"
    DRAGON_SHIELD = "dragon_shield"
    FIFTY_FIFTY = "fifty_fifty"


@dataclass(frozen=True)
class Question:
    """Represents a single quiz question."""
    id: int
    type: QuestionType
    prompt: str
    correct_answer: Union[str, int]
    options: Tuple[str, ...] = ()

    @property
    def is_multiple_choice(self) -> bool:
        return self.type is QuestionType.MULTIPLE_CHOICE


@dataclass(frozen=True)
class Character:
    """A playable character and the power it grants."""
    name: str
    emoji: str
    power: Optional[PowerKind]
    power_name: str = ""
    power_description: str = ""

    @property
    def label(self) -> str:
        """Display label, e.g. '🚀 Astronaut'."""
        return f"{self.emoji} {self.name}"


@dataclass
class QuizSettings:
    """Timing configuration for a quiz session."""
    timer_duration: int = 30
    time_boost_seconds: int = 15
    reveal_delay: float = 1.5
    timeout_grace: float = 1.0
    feedback_duration: float = 2.0
    alert_duration: float = 3.0


@dataclass
class AttemptRecord:
    """Persisted summary of one completed quiz run."""
    participant_name: str
    character_label: str
    score: int
    total_questions: int
    completed_at: datetime
    last_modified: Optional[datetime] = None
    id: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        data = asdict(self)
        data['completed_at'] = self.completed_at.isoformat()
        data['last_modified'] = self.last_modified.isoformat() if self.last_modified else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttemptRecord":
        """Build a record from its serialized form."""
        last_modified = data.get('last_modified')
        return cls(
            id=data.get('id'),
            participant_name=data['participant_name'],
            character_label=data['character_label'],
            score=int(data['score']),
            total_questions=int(data['total_questions']),
            completed_at=datetime.fromisoformat(data['completed_at']),
            last_modified=datetime.fromisoformat(last_modified) if last_modified else None,
            extra=dict(data.get('extra') or {})
        )
