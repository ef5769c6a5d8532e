"""
Character roster and power effects.

Each character grants exactly one single-use power. Effects are applied by
apply_power, a pure function over SessionState.
"""
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import Character, PowerKind
from .session import SessionPhase, SessionState, COMPLETED_MESSAGE

POWER_ALREADY_USED_MESSAGE = "Power has already been used in this quiz!"
NO_POWER_MESSAGE = "Your character has no special power!"
MULTIPLE_CHOICE_ONLY_MESSAGE = "This power only works on multiple choice questions!"

CHARACTERS: Tuple[Character, ...] = (
    Character("Astronaut", "🚀", PowerKind.TIME_BOOST,
              "Time Boost", "Add extra seconds to the timer"),
    Character("Wizard", "🧙", PowerKind.REVEAL_ANSWER,
              "Reveal Answer", "Reveals the correct answer"),
    Character("Knight", "⚔️", PowerKind.SECOND_CHANCE,
              "Second Chance", "Lets you retry the current question"),
    Character("Dragon Tamer", "🐉", PowerKind.DRAGON_SHIELD,
              "Dragon Shield", "Freeze the timer for this question"),
    Character("Detective", "🕵️", PowerKind.FIFTY_FIFTY,
              "50/50", "Eliminates two wrong answers (MC only)"),
)

_CHARACTERS_BY_KEY: Dict[str, Character] = {}
for _character in CHARACTERS:
    _CHARACTERS_BY_KEY[_character.name.lower()] = _character
    _CHARACTERS_BY_KEY[_character.label.lower()] = _character


def get_character(name: Optional[str]) -> Optional[Character]:
    """Look up a character by name ('Wizard') or label ('🧙 Wizard'), case-insensitively."""
    if not name:
        return None
    return _CHARACTERS_BY_KEY.get(name.strip().lower())


def list_characters() -> List[Character]:
    return list(CHARACTERS)


def apply_power(kind: PowerKind, state: SessionState, time_boost_seconds: int = 15) -> Tuple[SessionState, str]:
    """
    Apply one power effect to the session.

    Does not touch the power-used flag; see activate_power.

    Args:
        kind: The power to apply
        state: Current session state
        time_boost_seconds: Seconds added by Time Boost

    Returns:
        Tuple of (new state, confirmation message)

    Raises:
        ValidationError: If Fifty-Fifty is used on a non multiple-choice question
    """
    if kind is PowerKind.TIME_BOOST:
        new_state = replace(state, remaining_seconds=state.remaining_seconds + time_boost_seconds)
        return new_state, f"Added {time_boost_seconds} seconds to the timer!"

    if kind is PowerKind.REVEAL_ANSWER:
        return replace(state, hint_shown=True), "The correct answer has been revealed!"

    if kind is PowerKind.SECOND_CHANCE:
        changes = {'selected_answer': "", 'wrong_answer': None}
        # A wrong answer may be retried; a correct one keeps its credit
        if state.phase is SessionPhase.REVEALED and state.wrong_answer is not None:
            changes['answer_revealed'] = False
        return replace(state, **changes), "You can try this question again!"

    if kind is PowerKind.DRAGON_SHIELD:
        return replace(state, timer_frozen=True), "Dragon Shield activated! Timer frozen for this question."

    if kind is PowerKind.FIFTY_FIFTY:
        question = state.current_question
        if question is None or not question.is_multiple_choice:
            raise ValidationError(MULTIPLE_CHOICE_ONLY_MESSAGE)
        wrong_options = [option for option in question.options if option != question.correct_answer]
        return replace(state, eliminated_options=tuple(wrong_options[:2])), "Two wrong answers have been eliminated!"

    raise ValueError(f"Unknown power: {kind}")


def activate_power(state: SessionState, time_boost_seconds: int = 15) -> Tuple[SessionState, str]:
    """
    Use the character's power once for this session.

    Returns:
        Tuple of (new state with power_used set, confirmation message)

    Raises:
        ValidationError: If the session is complete, the character has no
            power, the power was already used, or the effect does not apply
    """
    if state.completed:
        raise ValidationError(COMPLETED_MESSAGE)
    if state.character is None or state.character.power is None:
        raise ValidationError(NO_POWER_MESSAGE)
    if state.power_used:
        raise ValidationError(POWER_ALREADY_USED_MESSAGE)

    new_state, message = apply_power(state.character.power, state, time_boost_seconds)
    return replace(new_state, power_used=True), message
