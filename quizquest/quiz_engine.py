"""
Quiz engine runtime for QuizQuest.
Owns one session, its countdown timer, and the delays between transitions.
"""
import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from .clock import Scheduler, ScheduledCall, cancel_call
from .errors import StorageError, ValidationError
from .models import AttemptRecord, Character, Question, QuizSettings
from .powers import activate_power, get_character
from .session import (
    COMPLETED_MESSAGE, SessionPhase, SessionState,
    evaluate_answer, new_session, proceed, select_answer, tick
)

# Set up logger for session operations
logger = logging.getLogger(__name__)

NO_SESSION_MESSAGE = "No quiz in progress"


class SessionEvent(Enum):
    """Events published to listeners after a transition."""
    STARTED = "started"
    TICK = "tick"
    ANSWER_SELECTED = "answer_selected"
    ANSWER_REVEALED = "answer_revealed"
    TIMED_OUT = "timed_out"
    ADVANCED = "advanced"
    POWER_USED = "power_used"
    ALERT = "alert"
    MESSAGE_CLEARED = "message_cleared"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a user-invoked engine operation."""
    success: bool
    message: str = ""


Listener = Callable[[SessionEvent, SessionState], Awaitable[None]]


class SessionLifecycleLogger:
    """Structured logging for session lifecycle events."""

    @staticmethod
    def log_session_started(session_id: str, participant: str, character: str, question_count: int) -> None:
        logger.info(
            f"Session lifecycle: STARTED - Session {session_id}, {participant} as {character}, {question_count} questions",
            extra={
                'event_type': 'session_started',
                'session_id': session_id,
                'participant': participant,
                'character': character,
                'question_count': question_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer updates (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            logger.debug(
                f"Session lifecycle: TICK - Session {session_id}, Remaining {remaining_time}s of {total_duration}s",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        logger.info(
            f"Session lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'session_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_power_used(session_id: str, power: str, message: str) -> None:
        logger.info(
            f"Session lifecycle: POWER_USED - Session {session_id}, Power {power}: {message}",
            extra={
                'event_type': 'power_used',
                'session_id': session_id,
                'power': power,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_completion(session_id: str, score: int, total: int) -> None:
        logger.info(
            f"Session lifecycle: COMPLETED - Session {session_id}, Score {score}/{total}",
            extra={
                'event_type': 'session_completed',
                'session_id': session_id,
                'score': score,
                'total_questions': total,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_persistence_error(session_id: str, error_type: str, error_message: str) -> None:
        logger.error(
            f"Session lifecycle: ERROR - Session {session_id}, Operation save_attempt, Type {error_type}: {error_message}",
            extra={
                'event_type': 'session_persistence_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """Delivers one tick per second to the engine while running."""

    def __init__(self, scheduler: Scheduler, on_tick: Callable[[], Awaitable[None]], session_id: str = None):
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._session_id = session_id
        self._handle: Optional[ScheduledCall] = None
        self._running = False

    def start(self) -> None:
        """Start ticking; restarting an active timer is a no-op."""
        if self._running:
            return
        self._running = True
        self._schedule_next()
        logger.debug(f"Timer started for session {self._session_id}")

    def stop(self) -> None:
        """Stop ticking and drop the pending tick."""
        if not self._running:
            return
        self._running = False
        cancel_call(self._handle)
        self._handle = None
        logger.debug(f"Timer stopped for session {self._session_id}")

    def _schedule_next(self) -> None:
        self._handle = self._scheduler.call_later(1, self._fire)

    async def _fire(self) -> None:
        self._handle = None
        if not self._running:
            return
        await self._on_tick()
        if self._running:
            self._schedule_next()

    @property
    def is_running(self) -> bool:
        return self._running


class QuizEngine:
    """
    Runs a single quiz session.

    All transitions are serialized through one asyncio.Lock so that timer
    ticks, delayed advances and user actions never interleave. Listeners are
    notified after the lock is released.
    """

    def __init__(
        self,
        store=None,
        settings: Optional[QuizSettings] = None,
        scheduler: Optional[Scheduler] = None,
        listener: Optional[Listener] = None,
        session_id: Optional[str] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the quiz engine.

        Args:
            store: Attempt store receiving the completed attempt
            settings: Timing configuration, defaults if None
            scheduler: Source of ticks and delays
            listener: Optional coroutine notified after each transition
            session_id: Identifier used in logs
            rng: Random source for shuffling
        """
        self.store = store
        self.settings = settings or QuizSettings()
        self.scheduler = scheduler or Scheduler()
        self.listener = listener
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._rng = rng

        self._state: Optional[SessionState] = None
        self._lock = asyncio.Lock()
        self._timer = QuizTimer(self.scheduler, self.tick, self.session_id)
        self._question_generation = 0
        self._advance_call: Optional[ScheduledCall] = None
        self._feedback_call: Optional[ScheduledCall] = None
        self._alert_call: Optional[ScheduledCall] = None

        self.saved_record: Optional[AttemptRecord] = None
        self.save_error: Optional[str] = None

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    def snapshot(self) -> Optional[SessionState]:
        """Current immutable session state for rendering."""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is not None and not self._state.completed

    async def start_session(
        self,
        questions: Sequence[Question],
        participant_name: str,
        character: Union[Character, str, None]
    ) -> ActionResult:
        """
        Start a new session, replacing any previous one.

        Args:
            questions: The question bank; shuffled copy is used
            participant_name: Name shown on the leaderboard
            character: Character or its name/label

        Returns:
            ActionResult describing the outcome
        """
        if isinstance(character, str):
            character = get_character(character)

        async with self._lock:
            try:
                state = new_session(
                    questions, participant_name, character,
                    self.settings.timer_duration, self._rng
                )
            except ValidationError as e:
                logger.info(f"Session {self.session_id} not started: {e}")
                return ActionResult(False, str(e))

            self._cancel_pending()
            self._timer.stop()
            self._question_generation = 0
            self.saved_record = None
            self.save_error = None
            self._state = state
            self._timer.start()

            SessionLifecycleLogger.log_session_started(
                self.session_id, state.participant_name, state.character.label, state.question_count
            )
            snapshot = self._state

        await self._notify(SessionEvent.STARTED, snapshot)
        return ActionResult(True, f"Quiz started with {snapshot.question_count} questions")

    async def select_answer(self, value) -> ActionResult:
        """Record the participant's current selection without evaluating it."""
        async with self._lock:
            if self._state is None:
                return ActionResult(False, NO_SESSION_MESSAGE)
            if self._state.phase is not SessionPhase.ANSWERING:
                return ActionResult(False, "This question can no longer be answered")
            self._state = select_answer(self._state, value)
            snapshot = self._state

        await self._notify(SessionEvent.ANSWER_SELECTED, snapshot)
        return ActionResult(True)

    async def submit_answer(self, value=None) -> ActionResult:
        """Select value (when given) and advance."""
        if value is not None and self._state is not None and self._state.phase is SessionPhase.ANSWERING:
            await self.select_answer(value)
        return await self.advance()

    async def advance(self) -> ActionResult:
        """
        Evaluate the selected answer, or move on once it has been revealed.

        The first call on a question evaluates and reveals; an automatic
        advance follows after the reveal delay. A call after the reveal moves
        on immediately and the pending automatic advance becomes a no-op.
        """
        events: List[SessionEvent] = []
        async with self._lock:
            if self._state is None:
                return ActionResult(False, NO_SESSION_MESSAGE)
            if self._state.completed:
                return ActionResult(False, COMPLETED_MESSAGE)

            if self._state.phase in (SessionPhase.REVEALED, SessionPhase.TIMED_OUT):
                result = self._proceed(events, reason="manual advance")
            else:
                try:
                    self._state, correct = evaluate_answer(self._state)
                except ValidationError as e:
                    self._show_alert(str(e))
                    events.append(SessionEvent.ALERT)
                    result = ActionResult(False, str(e))
                else:
                    SessionLifecycleLogger.log_state_transition(
                        self.session_id, SessionPhase.ANSWERING.value, SessionPhase.REVEALED.value,
                        "correct answer" if correct else "wrong answer"
                    )
                    self._schedule_advance(self.settings.reveal_delay)
                    events.append(SessionEvent.ANSWER_REVEALED)
                    result = ActionResult(True, "Correct!" if correct else "Wrong answer!")
            snapshot = self._state

        await self._after_transition(events, snapshot)
        return result

    async def skip(self) -> ActionResult:
        """Move on without evaluating; no score credit."""
        events: List[SessionEvent] = []
        async with self._lock:
            if self._state is None:
                return ActionResult(False, NO_SESSION_MESSAGE)
            if self._state.completed:
                return ActionResult(False, COMPLETED_MESSAGE)
            result = self._proceed(events, reason="skipped")
            snapshot = self._state

        await self._after_transition(events, snapshot)
        return result

    async def use_power(self) -> ActionResult:
        """Use the character's single-use power."""
        events: List[SessionEvent] = []
        async with self._lock:
            if self._state is None:
                return ActionResult(False, NO_SESSION_MESSAGE)

            previous = self._state
            try:
                self._state, message = activate_power(previous, self.settings.time_boost_seconds)
            except ValidationError as e:
                self._show_alert(str(e))
                events.append(SessionEvent.ALERT)
                result = ActionResult(False, str(e))
            else:
                if previous.answer_revealed and not self._state.answer_revealed:
                    # Second Chance reopened the question
                    cancel_call(self._advance_call)
                    self._advance_call = None
                self._show_feedback(message)
                SessionLifecycleLogger.log_power_used(
                    self.session_id, previous.character.power.value, message
                )
                events.append(SessionEvent.POWER_USED)
                result = ActionResult(True, message)
            snapshot = self._state

        await self._after_transition(events, snapshot)
        return result

    async def tick(self) -> None:
        """Apply one elapsed second of the countdown."""
        events: List[SessionEvent] = []
        async with self._lock:
            if self._state is None or not self._state.is_counting_down:
                return
            self._state = tick(self._state)
            SessionLifecycleLogger.log_timer_update(
                self.session_id, self._state.remaining_seconds, self._state.seconds_per_question
            )
            if self._state.timed_out:
                SessionLifecycleLogger.log_state_transition(
                    self.session_id, SessionPhase.ANSWERING.value, SessionPhase.TIMED_OUT.value, "timer expired"
                )
                self._schedule_advance(self.settings.timeout_grace)
                events.append(SessionEvent.TIMED_OUT)
            else:
                events.append(SessionEvent.TICK)
            snapshot = self._state

        await self._after_transition(events, snapshot)

    async def stop(self) -> None:
        """Stop the timer and drop every pending delay; the state is kept."""
        async with self._lock:
            self._timer.stop()
            self._cancel_pending()
            snapshot = self._state
        if snapshot is not None:
            await self._notify(SessionEvent.STOPPED, snapshot)

    def _proceed(self, events: List[SessionEvent], reason: str) -> ActionResult:
        """Advance to the next question or complete. Caller holds the lock."""
        cancel_call(self._advance_call)
        self._advance_call = None

        from_phase = self._state.phase.value
        self._state = proceed(self._state)
        self._question_generation += 1
        SessionLifecycleLogger.log_state_transition(self.session_id, from_phase, self._state.phase.value, reason)

        if self._state.completed:
            self._timer.stop()
            SessionLifecycleLogger.log_completion(self.session_id, self._state.score, self._state.question_count)
            events.append(SessionEvent.COMPLETED)
            return ActionResult(True, f"Quiz complete! Final score: {self._state.score}/{self._state.question_count}")

        events.append(SessionEvent.ADVANCED)
        return ActionResult(True, f"Question {self._state.current_index + 1}/{self._state.question_count}")

    def _schedule_advance(self, delay: float) -> None:
        """Advance automatically after delay unless the question changes first."""
        cancel_call(self._advance_call)
        generation = self._question_generation

        async def delayed_advance():
            events: List[SessionEvent] = []
            async with self._lock:
                if generation != self._question_generation or self._state is None:
                    return
                if self._state.phase not in (SessionPhase.REVEALED, SessionPhase.TIMED_OUT):
                    return
                self._advance_call = None
                self._proceed(events, reason="automatic advance")
                snapshot = self._state
            await self._after_transition(events, snapshot)

        self._advance_call = self.scheduler.call_later(delay, delayed_advance)

    def _show_feedback(self, message: str) -> None:
        self._state = replace(self._state, feedback_message=message)
        cancel_call(self._feedback_call)
        self._feedback_call = self.scheduler.call_later(
            self.settings.feedback_duration, lambda: self._clear_message('feedback_message', message)
        )

    def _show_alert(self, message: str) -> None:
        self._state = replace(self._state, alert_message=message)
        cancel_call(self._alert_call)
        self._alert_call = self.scheduler.call_later(
            self.settings.alert_duration, lambda: self._clear_message('alert_message', message)
        )

    async def _clear_message(self, field_name: str, message: str) -> None:
        async with self._lock:
            if self._state is None or getattr(self._state, field_name) != message:
                return
            self._state = replace(self._state, **{field_name: ""})
            snapshot = self._state
        await self._notify(SessionEvent.MESSAGE_CLEARED, snapshot)

    def _cancel_pending(self) -> None:
        for call in (self._advance_call, self._feedback_call, self._alert_call):
            cancel_call(call)
        self._advance_call = None
        self._feedback_call = None
        self._alert_call = None

    async def _after_transition(self, events: List[SessionEvent], snapshot: Optional[SessionState]) -> None:
        for event in events:
            if event is SessionEvent.COMPLETED:
                await self._save_attempt(snapshot)
            await self._notify(event, snapshot)

    async def _save_attempt(self, state: SessionState) -> None:
        """Hand the finished attempt to the store once; failures are reported, not retried."""
        record = AttemptRecord(
            participant_name=state.participant_name,
            character_label=state.character.label if state.character else "None",
            score=state.score,
            total_questions=state.question_count,
            completed_at=self.scheduler.now()
        )
        if self.store is None:
            logger.warning(f"No attempt store configured; attempt for session {self.session_id} not saved")
            return

        try:
            self.saved_record = await self.store.create(record)
            logger.info(f"Saved attempt {self.saved_record.id} for session {self.session_id}")
        except StorageError as e:
            self.save_error = str(e)
            SessionLifecycleLogger.log_persistence_error(self.session_id, type(e).__name__, str(e))

    async def _notify(self, event: SessionEvent, snapshot: SessionState) -> None:
        if self.listener is None:
            return
        try:
            await self.listener(event, snapshot)
        except Exception as e:
            logger.error(f"Session listener failed on {event.value} for session {self.session_id}: {e}")
