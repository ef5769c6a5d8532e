"""
Unit tests for ConfigManager class.
"""
import logging
import unittest
from datetime import timedelta

from quizquest.config_manager import ConfigManager


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        """Test that ConfigManager initializes with correct default values."""
        settings = self.config_manager.get_quiz_settings()

        self.assertEqual(settings.timer_duration, 30)
        self.assertEqual(settings.time_boost_seconds, 15)
        self.assertEqual(settings.reveal_delay, 1.5)
        self.assertEqual(settings.timeout_grace, 1.0)
        self.assertEqual(settings.feedback_duration, 2.0)
        self.assertEqual(settings.alert_duration, 3.0)
        self.assertEqual(self.config_manager.get_retention(), timedelta(days=30))
        self.assertEqual(self.config_manager.get_question_bank_path(), "./questions/bank.json")
        self.assertEqual(self.config_manager.get_store_path(), "./data/attempts.json")

    def test_set_timer_duration_valid_values(self):
        for value in (5, 45, 300):
            result = self.config_manager.set_timer_duration(value)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_timer_duration(), value)

    def test_set_timer_duration_invalid_values(self):
        """Test that out-of-range and non-integer durations are rejected."""
        for value in (4, 301, 0, -10, 12.5, "30", None, True):
            with self.subTest(value=value):
                result = self.config_manager.set_timer_duration(value)
                self.assertFalse(result['success'])
                self.assertTrue(result['user_message'].startswith("❌"))
        self.assertEqual(self.config_manager.get_timer_duration(), 30)

    def test_error_messages_name_the_limit(self):
        result = self.config_manager.set_timer_duration(1)
        self.assertIn("Minimum is 5", result['user_message'])

        result = self.config_manager.set_time_boost_seconds(500)
        self.assertIn("Maximum is 120", result['user_message'])

    def test_delays_accept_floats(self):
        self.assertTrue(self.config_manager.set_reveal_delay(0.5)['success'])
        self.assertTrue(self.config_manager.set_timeout_grace(0)['success'])
        self.assertTrue(self.config_manager.set_feedback_duration(2.5)['success'])
        self.assertTrue(self.config_manager.set_alert_duration(10)['success'])
        self.assertFalse(self.config_manager.set_reveal_delay(-1)['success'])
        self.assertFalse(self.config_manager.set_alert_duration(31)['success'])

        settings = self.config_manager.get_quiz_settings()
        self.assertEqual(settings.reveal_delay, 0.5)
        self.assertEqual(settings.timeout_grace, 0)

    def test_quiz_settings_is_a_copy(self):
        settings = self.config_manager.get_quiz_settings()
        settings.timer_duration = 99
        self.assertEqual(self.config_manager.get_timer_duration(), 30)

    def test_retention_days(self):
        self.assertTrue(self.config_manager.set_retention_days(7)['success'])
        self.assertEqual(self.config_manager.get_retention(), timedelta(days=7))

        self.assertFalse(self.config_manager.set_retention_days(0)['success'])
        self.assertFalse(self.config_manager.set_retention_days(4000)['success'])
        self.assertEqual(self.config_manager.get_retention(), timedelta(days=7))

    def test_paths(self):
        self.assertTrue(self.config_manager.set_store_path(" /tmp/attempts.json ")['success'])
        self.assertEqual(self.config_manager.get_store_path(), "/tmp/attempts.json")

        self.assertFalse(self.config_manager.set_question_bank_path("")['success'])
        self.assertFalse(self.config_manager.set_question_bank_path(None)['success'])
        self.assertEqual(self.config_manager.get_question_bank_path(), "./questions/bank.json")

    def test_apply_config(self):
        rejected = self.config_manager.apply_config({
            'bot': {'token': 'ignored'},
            'quiz': {'timer_duration': 20, 'time_boost_seconds': 0, 'unknown_key': 1},
            'storage': {'retention_days': 14, 'store_path': './scores.json'}
        })

        self.assertEqual(len(rejected), 1)
        self.assertIn("Time boost", rejected[0])
        self.assertEqual(self.config_manager.get_timer_duration(), 20)
        self.assertEqual(self.config_manager.get_quiz_settings().time_boost_seconds, 15)
        self.assertEqual(self.config_manager.get_retention(), timedelta(days=14))
        self.assertEqual(self.config_manager.get_store_path(), "./scores.json")

    def test_apply_empty_config(self):
        self.assertEqual(self.config_manager.apply_config({}), [])
        self.assertEqual(self.config_manager.get_timer_duration(), 30)

    def test_reset_to_defaults(self):
        self.config_manager.set_timer_duration(60)
        self.config_manager.set_retention_days(3)
        self.config_manager.reset_to_defaults()

        self.assertEqual(self.config_manager.get_timer_duration(), 30)
        self.assertEqual(self.config_manager.get_retention(), timedelta(days=30))

    def test_validate_settings(self):
        self.assertEqual(self.config_manager.validate_settings(), {"valid": True, "issues": []})

        self.config_manager._settings.timer_duration = 1
        validation = self.config_manager.validate_settings()
        self.assertFalse(validation["valid"])
        self.assertIn("Invalid timer duration: 1", validation["issues"])

    def test_settings_summary(self):
        summary = self.config_manager.get_settings_summary()
        self.assertIn("30 seconds per question", summary)
        self.assertIn("+15 seconds", summary)
        self.assertIn("30 days", summary)


if __name__ == '__main__':
    unittest.main()
