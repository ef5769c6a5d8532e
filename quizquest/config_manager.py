"""
Configuration manager for QuizQuest settings and parameters.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from .models import QuizSettings

Number = Union[int, float]


class ConfigManager:
    """Manages quiz timing, storage and question bank settings."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_TIME_BOOST_SECONDS = 15
    DEFAULT_REVEAL_DELAY = 1.5
    DEFAULT_TIMEOUT_GRACE = 1.0
    DEFAULT_FEEDBACK_DURATION = 2.0
    DEFAULT_ALERT_DURATION = 3.0
    DEFAULT_RETENTION_DAYS = 30
    DEFAULT_QUESTION_BANK_PATH = "./questions/bank.json"
    DEFAULT_STORE_PATH = "./data/attempts.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_TIME_BOOST = 1
    MAX_TIME_BOOST = 120
    MAX_DELAY = 10.0
    MAX_MESSAGE_DURATION = 30.0
    MIN_RETENTION_DAYS = 1
    MAX_RETENTION_DAYS = 3650

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self.reset_to_defaults()

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings(
            timer_duration=self.DEFAULT_TIMER_DURATION,
            time_boost_seconds=self.DEFAULT_TIME_BOOST_SECONDS,
            reveal_delay=self.DEFAULT_REVEAL_DELAY,
            timeout_grace=self.DEFAULT_TIMEOUT_GRACE,
            feedback_duration=self.DEFAULT_FEEDBACK_DURATION,
            alert_duration=self.DEFAULT_ALERT_DURATION
        )
        self._retention_days = self.DEFAULT_RETENTION_DAYS
        self._question_bank_path = self.DEFAULT_QUESTION_BANK_PATH
        self._store_path = self.DEFAULT_STORE_PATH
        self.logger.info("All settings reset to default values")

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the QuizSettings with current configuration
        """
        return QuizSettings(
            timer_duration=self._settings.timer_duration,
            time_boost_seconds=self._settings.time_boost_seconds,
            reveal_delay=self._settings.reveal_delay,
            timeout_grace=self._settings.timeout_grace,
            feedback_duration=self._settings.feedback_duration,
            alert_duration=self._settings.alert_duration
        )

    def _validate_number(
        self,
        label: str,
        value: Any,
        minimum: Number,
        maximum: Number,
        integer: bool,
        unit: str
    ) -> Optional[Dict[str, Any]]:
        """
        Check type and range of a numeric setting.

        Returns:
            Failure result dictionary, or None if the value is acceptable
        """
        valid_types = (int,) if integer else (int, float)
        if isinstance(value, bool) or not isinstance(value, valid_types):
            expected = "an integer" if integer else "a number"
            error_msg = f"{label} must be {expected}, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum} {unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too small: Minimum is {minimum} {unit}"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum} {unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too large: Maximum is {maximum} {unit}"
            }

        return None

    def _set_setting(self, attribute: str, label: str, value: Any, minimum: Number, maximum: Number,
                     integer: bool = True, unit: str = "seconds") -> Dict[str, Any]:
        failure = self._validate_number(label, value, minimum, maximum, integer, unit)
        if failure:
            return failure

        setattr(self._settings, attribute, value)
        self.logger.info(f"{label} set to {value} {unit}")
        return {
            'success': True,
            'message': f"{label} set to {value} {unit}",
            'user_message': f"✅ {label} set to {value} {unit}"
        }

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_setting('timer_duration', "Timer duration", duration,
                                 self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION)

    def get_timer_duration(self) -> int:
        return self._settings.timer_duration

    def set_time_boost_seconds(self, seconds: int) -> Dict[str, Any]:
        """Set the seconds added by the Time Boost power."""
        return self._set_setting('time_boost_seconds', "Time boost", seconds,
                                 self.MIN_TIME_BOOST, self.MAX_TIME_BOOST)

    def set_reveal_delay(self, seconds: float) -> Dict[str, Any]:
        """Set how long a revealed answer stays visible before moving on."""
        return self._set_setting('reveal_delay', "Reveal delay", seconds, 0, self.MAX_DELAY, integer=False)

    def set_timeout_grace(self, seconds: float) -> Dict[str, Any]:
        """Set the pause between a timeout and the automatic skip."""
        return self._set_setting('timeout_grace', "Timeout grace", seconds, 0, self.MAX_DELAY, integer=False)

    def set_feedback_duration(self, seconds: float) -> Dict[str, Any]:
        return self._set_setting('feedback_duration', "Feedback duration", seconds,
                                 0, self.MAX_MESSAGE_DURATION, integer=False)

    def set_alert_duration(self, seconds: float) -> Dict[str, Any]:
        return self._set_setting('alert_duration', "Alert duration", seconds,
                                 0, self.MAX_MESSAGE_DURATION, integer=False)

    def set_retention_days(self, days: int) -> Dict[str, Any]:
        """
        Set how long attempts are kept before pruning.

        Args:
            days: Retention window in days

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._validate_number("Retention", days, self.MIN_RETENTION_DAYS,
                                        self.MAX_RETENTION_DAYS, True, "days")
        if failure:
            return failure

        self._retention_days = days
        self.logger.info(f"Retention set to {days} days")
        return {
            'success': True,
            'message': f"Retention set to {days} days",
            'user_message': f"✅ Attempts older than {days} days will be pruned"
        }

    def get_retention(self) -> timedelta:
        return timedelta(days=self._retention_days)

    def _set_path(self, attribute: str, label: str, path: Any) -> Dict[str, Any]:
        if not isinstance(path, str) or not path.strip():
            error_msg = f"{label} must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} cannot be empty"
            }

        setattr(self, attribute, path.strip())
        self.logger.info(f"{label} set to {path.strip()}")
        return {
            'success': True,
            'message': f"{label} set to {path.strip()}",
            'user_message': f"✅ {label} set to {path.strip()}"
        }

    def set_question_bank_path(self, path: str) -> Dict[str, Any]:
        return self._set_path('_question_bank_path', "Question bank path", path)

    def get_question_bank_path(self) -> str:
        return self._question_bank_path

    def set_store_path(self, path: str) -> Dict[str, Any]:
        return self._set_path('_store_path', "Store path", path)

    def get_store_path(self) -> str:
        return self._store_path

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' and 'storage' sections of a loaded config.json.

        Invalid values are skipped and keep their previous setting.

        Args:
            config: Parsed configuration dictionary

        Returns:
            List of user-facing messages for settings that were rejected
        """
        setters = {
            'timer_duration': self.set_timer_duration,
            'time_boost_seconds': self.set_time_boost_seconds,
            'reveal_delay': self.set_reveal_delay,
            'timeout_grace': self.set_timeout_grace,
            'feedback_duration': self.set_feedback_duration,
            'alert_duration': self.set_alert_duration,
            'question_bank_path': self.set_question_bank_path,
            'store_path': self.set_store_path,
            'retention_days': self.set_retention_days,
        }

        rejected = []
        for section in ('quiz', 'storage'):
            for key, value in (config.get(section) or {}).items():
                setter = setters.get(key)
                if setter is None:
                    self.logger.warning(f"Ignoring unknown setting '{section}.{key}'")
                    continue
                result = setter(value)
                if not result['success']:
                    rejected.append(result['user_message'])
        return rejected

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        checks = [
            ("timer duration", self._settings.timer_duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION),
            ("time boost", self._settings.time_boost_seconds, self.MIN_TIME_BOOST, self.MAX_TIME_BOOST),
            ("reveal delay", self._settings.reveal_delay, 0, self.MAX_DELAY),
            ("timeout grace", self._settings.timeout_grace, 0, self.MAX_DELAY),
            ("feedback duration", self._settings.feedback_duration, 0, self.MAX_MESSAGE_DURATION),
            ("alert duration", self._settings.alert_duration, 0, self.MAX_MESSAGE_DURATION),
            ("retention days", self._retention_days, self.MIN_RETENTION_DAYS, self.MAX_RETENTION_DAYS),
        ]
        for label, value, minimum, maximum in checks:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not minimum <= value <= maximum:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {label}: {value}")

        for label, path in (("question bank path", self._question_bank_path), ("store path", self._store_path)):
            if not isinstance(path, str) or not path.strip():
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {label}: {path}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Timer: {self._settings.timer_duration} seconds per question\n"
            f"• Time Boost: +{self._settings.time_boost_seconds} seconds\n"
            f"• Reveal delay: {self._settings.reveal_delay} seconds\n"
            f"• Retention: {self._retention_days} days\n"
            f"• Question bank: {self._question_bank_path}\n"
            f"• Attempt store: {self._store_path}"
        )
