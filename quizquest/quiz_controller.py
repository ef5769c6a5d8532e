"""
Quiz session controller for QuizQuest.
Manages one quiz engine per channel and exposes result dictionaries to the UI.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .attempt_store import AttemptStore
from .clock import Scheduler
from .config_manager import ConfigManager
from .data_manager import DataManager
from .errors import StorageError, ValidationError
from .powers import list_characters
from .quiz_engine import ActionResult, Listener, QuizEngine
from .session import SessionState


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class QuizController:
    """
    Orchestrates quiz sessions across channels.

    Each channel can have at most one active session. Completed sessions are
    kept until the next start in any channel so their final state can still
    be shown.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        store: AttemptStore,
        scheduler: Optional[Scheduler] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Source of the question bank
            config_manager: Source of timing settings
            store: Attempt store shared by every session
            scheduler: Tick and delay scheduler shared by every engine
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.store = store
        self.scheduler = scheduler or Scheduler()

        # Engines mapped by channel ID
        self._engines: Dict[int, QuizEngine] = {}

        self.logger.info("QuizController initialized")

    def get_engine(self, channel_id: int) -> Optional[QuizEngine]:
        return self._engines.get(channel_id)

    def get_session(self, channel_id: int) -> Optional[SessionState]:
        """Snapshot of the channel's session, active or completed."""
        engine = self._engines.get(channel_id)
        return engine.snapshot() if engine else None

    def has_active_session(self, channel_id: int) -> bool:
        engine = self._engines.get(channel_id)
        return engine is not None and engine.is_active

    def get_characters(self) -> List[Dict[str, str]]:
        return [
            {
                'label': character.label,
                'name': character.name,
                'power': character.power_name,
                'description': character.power_description
            }
            for character in list_characters()
        ]

    async def start_quiz(
        self,
        channel_id: int,
        participant_name: str,
        character_name: str,
        listener: Optional[Listener] = None
    ) -> Dict[str, Any]:
        """
        Start a quiz for a participant in a channel.

        Args:
            channel_id: Channel identifier
            participant_name: Name shown on the leaderboard
            character_name: Character name or label
            listener: Optional coroutine notified after each transition

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")

            questions = self.data_manager.get_questions()
            if not questions:
                raise ValueError("No questions loaded. Please check the question bank.")

            engine = QuizEngine(
                store=self.store,
                settings=self.config_manager.get_quiz_settings(),
                scheduler=self.scheduler,
                listener=listener,
                session_id=str(channel_id)
            )
            result = await engine.start_session(questions, participant_name, character_name)
            if not result.success:
                return {
                    'success': False,
                    'error': result.message,
                    'user_message': f"❌ {result.message}"
                }

            previous = self._engines.get(channel_id)
            if previous is not None:
                await previous.stop()
            self._engines[channel_id] = engine
            self.cleanup_completed_sessions()

            return {
                'success': True,
                'message': result.message,
                'session_info': self.get_session_progress(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

    async def _run_action(
        self,
        channel_id: int,
        operation: str,
        action: Callable[[QuizEngine], Awaitable[ActionResult]]
    ) -> Dict[str, Any]:
        try:
            engine = self._engines.get(channel_id)
            if engine is None or engine.snapshot() is None:
                raise SessionNotFoundError(f"No quiz session in channel {channel_id}")

            result = await action(engine)
            state = engine.snapshot()
            response = {
                'success': result.success,
                'message': result.message,
                'user_message': f"{'✅' if result.success else '⚠️'} {result.message}",
                'state': state,
                'completed': state.completed
            }
            if state.completed:
                response['saved'] = engine.saved_record is not None
                response['save_error'] = engine.save_error
            return response

        except Exception as e:
            return self._handle_session_error(channel_id, e, operation)

    async def answer(self, channel_id: int, value) -> Dict[str, Any]:
        """Submit an answer for the current question."""
        return await self._run_action(channel_id, "answer", lambda engine: engine.submit_answer(value))

    async def select_answer(self, channel_id: int, value) -> Dict[str, Any]:
        return await self._run_action(channel_id, "select_answer", lambda engine: engine.select_answer(value))

    async def next_question(self, channel_id: int) -> Dict[str, Any]:
        """Evaluate the selection, or move on after a reveal."""
        return await self._run_action(channel_id, "next_question", lambda engine: engine.advance())

    async def skip_question(self, channel_id: int) -> Dict[str, Any]:
        return await self._run_action(channel_id, "skip_question", lambda engine: engine.skip())

    async def use_power(self, channel_id: int) -> Dict[str, Any]:
        return await self._run_action(channel_id, "use_power", lambda engine: engine.use_power())

    async def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop and remove the channel's session. Unfinished attempts are not saved.

        Args:
            channel_id: Channel identifier

        Returns:
            Dictionary with operation results
        """
        engine = self._engines.pop(channel_id, None)
        if engine is None:
            return self._handle_session_error(
                channel_id, SessionNotFoundError(f"No quiz session in channel {channel_id}"), "stop_quiz"
            )

        await engine.stop()
        state = engine.snapshot()
        self.logger.info(
            f"Stopped session for channel {channel_id}",
            extra={
                'event_type': 'session_stopped',
                'channel_id': channel_id,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': "Quiz stopped",
            'user_message': "⏹️ Quiz stopped. This attempt was not saved." if not state.completed
            else "⏹️ Quiz closed.",
            'state': state
        }

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a session.

        Args:
            channel_id: Channel identifier

        Returns:
            Dictionary with progress info, None if no session
        """
        state = self.get_session(channel_id)
        if state is None:
            return None

        return {
            'participant_name': state.participant_name,
            'character': state.character.label if state.character else None,
            'current_question': min(state.current_index + 1, state.question_count),
            'total_questions': state.question_count,
            'score': state.score,
            'remaining_seconds': state.remaining_seconds,
            'phase': state.phase.value,
            'power_used': state.power_used,
            'completed': state.completed
        }

    async def get_leaderboard(self, limit: Optional[int] = 10) -> Dict[str, Any]:
        """
        Read the top attempts by score.

        Returns:
            Dictionary with 'entries' (list of AttemptRecord) on success
        """
        try:
            entries = await self.store.query_all(sort_by="score", descending=True, limit=limit)
            return {'success': True, 'entries': entries}
        except StorageError as e:
            self.logger.error(f"Failed to read leaderboard: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Could not read the leaderboard. Please try again later."
            }

    async def prune_attempts(self) -> Dict[str, Any]:
        """Remove attempts older than the configured retention window."""
        retention = self.config_manager.get_retention()
        try:
            removed = await self.store.prune(retention=retention)
        except StorageError as e:
            self.logger.error(f"Failed to prune attempts: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Could not prune old attempts."
            }
        return {
            'success': True,
            'removed': removed,
            'user_message': f"🧹 Removed {removed} attempts older than {retention.days} days"
        }

    def cleanup_completed_sessions(self) -> int:
        """
        Drop completed sessions.

        Returns:
            Number of sessions removed
        """
        finished = [cid for cid, engine in self._engines.items() if not engine.is_active]
        for channel_id in finished:
            del self._engines[channel_id]
        if finished:
            self.logger.info(f"Cleaned up {len(finished)} completed sessions")
        return len(finished)

    async def shutdown(self) -> None:
        """Stop every session's timer and pending delays."""
        for engine in list(self._engines.values()):
            await engine.stop()
        self._engines.clear()
        self.scheduler.cancel_all()

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log an error and build the failure result.

        Args:
            channel_id: Channel identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        if isinstance(error, (QuizControllerError, ValidationError)):
            self.logger.warning(f"{operation} rejected for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Please stop it first with `/stop`."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No active quiz found in this channel. Start a quiz with `/start`."

        elif isinstance(error, ValidationError):
            return f"⚠️ {error}"

        elif isinstance(error, StorageError):
            return "❌ Storage error. Your progress is kept but could not be saved."

        elif "question" in str(error).lower():
            return "❌ Error loading quiz questions. Please check the question bank."

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."

