"""
Data manager for loading and validating the question bank.
"""
import json
import os
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

from .models import Question, QuestionType

MAX_BANK_SIZE = 10 * 1024 * 1024  # 10MB

DEFAULT_QUESTION_BANK: List[Dict[str, Any]] = [
    {"id": 1, "type": "mc", "question": "Which planet is closest to the Sun?",
     "options": ["Venus", "Mercury", "Earth", "Mars"], "answer": "Mercury"},
    {"id": 2, "type": "mc", "question": "Which data structure organizes items in a First-In, First-Out (FIFO) manner?",
     "options": ["Stack", "Queue", "Tree", "Graph"], "answer": "Queue"},
    {"id": 3, "type": "mc", "question": "Which of the following is primarily used for structuring web pages?",
     "options": ["Python", "Java", "HTML", "C++"], "answer": "HTML"},
    {"id": 4, "type": "mc", "question": "Which chemical symbol stands for Gold?",
     "options": ["Au", "Gd", "Ag", "Pt"], "answer": "Au"},
    {"id": 5, "type": "mc", "question": "Which of these processes is not typically involved in refining petroleum?",
     "options": ["Fractional distillation", "Cracking", "Polymerization", "Filtration"], "answer": "Filtration"},
    {"id": 6, "type": "integer", "question": "What is the value of 12 + 28?", "answer": 40},
    {"id": 7, "type": "integer", "question": "How many states are there in the United States?", "answer": 50},
    {"id": 8, "type": "integer", "question": "In which year was the Declaration of Independence signed?", "answer": 1776},
    {"id": 9, "type": "integer", "question": "What is the value of pi rounded to the nearest integer?", "answer": 3},
    {"id": 10, "type": "integer", "question": "If a car travels at 60 mph for 2 hours, how many miles does it travel?",
     "answer": 120},
]


class DataManager:
    """Manages loading and validation of the JSON question bank."""

    def __init__(self, bank_path: str = "./questions/bank.json"):
        """
        Initialize DataManager with the question bank path.

        Args:
            bank_path: Path to the JSON question bank
        """
        self.bank_path = Path(bank_path)
        self.questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_bank_active = False

    def load_question_bank(self) -> List[Question]:
        """
        Load the question bank, falling back to the built-in bank on any error.

        Returns:
            List of Question objects
        """
        self.questions = []
        self.load_errors.clear()
        self.fallback_bank_active = False

        data = self._load_bank_file(self.bank_path)
        if data is None:
            return self._use_fallback_bank()

        self.questions = self._parse_questions(data)
        self.logger.info(f"Loaded {len(self.questions)} questions from {self.bank_path}")
        return list(self.questions)

    def _load_bank_file(self, file_path: Path) -> Optional[dict]:
        """
        Load and validate a bank file.

        Args:
            file_path: Path to the JSON file

        Returns:
            Parsed JSON data or None if loading failed
        """
        try:
            if not file_path.exists():
                self.load_errors.append(f"Question bank not found: {file_path}")
                self.logger.warning(f"Question bank not found: {file_path}")
                return None

            if not os.access(file_path, os.R_OK):
                self.load_errors.append(f"Permission denied: Cannot read {file_path}")
                return None

            file_size = file_path.stat().st_size
            if file_size > MAX_BANK_SIZE:
                self.load_errors.append(
                    f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum size is {MAX_BANK_SIZE / 1024 / 1024}MB"
                )
                return None

            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {file_path}: {e}")
            self.load_errors.append(f"{file_path.name}: Invalid JSON: {e}")
            return None
        except OSError as e:
            self.logger.error(f"Failed to read question bank {file_path}: {e}")
            self.load_errors.append(f"{file_path.name}: {e}")
            return None

        if not self.validate_bank_structure(data):
            self.load_errors.append(f"{file_path.name}: Invalid question bank structure")
            return None
        return data

    def validate_bank_structure(self, data: dict) -> bool:
        """
        Validate that JSON data has the correct question bank structure.

        Expected structure:
        {
            "questions": [
                {
                    "id": int,
                    "type": "mc" | "integer",
                    "question": str,
                    "options": list,   # mc only
                    "answer": str | int
                }
            ]
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Question bank must be a JSON object")
            return False

        question_list = data.get("questions")
        if not isinstance(question_list, list):
            self.logger.error("Question bank must contain a 'questions' array")
            return False

        if not question_list:
            self.logger.error("Questions array cannot be empty")
            return False

        seen_ids = set()
        for i, entry in enumerate(question_list):
            if not isinstance(entry, dict):
                self.logger.error(f"Question {i} must be an object")
                return False

            for required in ("id", "type", "question", "answer"):
                if required not in entry:
                    self.logger.error(f"Question {i} missing '{required}' field")
                    return False

            if isinstance(entry["id"], bool) or not isinstance(entry["id"], (int, str)):
                self.logger.error(f"Question {i} 'id' must be an integer or string")
                return False

            if entry["id"] in seen_ids:
                self.logger.error(f"Question {i} has duplicate id {entry['id']}")
                return False
            seen_ids.add(entry["id"])

            if not isinstance(entry["question"], str) or not entry["question"].strip():
                self.logger.error(f"Question {i} 'question' field must be a non-empty string")
                return False

            if entry["type"] == QuestionType.MULTIPLE_CHOICE.value:
                options = entry.get("options")
                if not isinstance(options, list) or len(options) < 2:
                    self.logger.error(f"Question {i} needs at least two options")
                    return False
                if not all(isinstance(option, str) for option in options):
                    self.logger.error(f"Question {i} options must be strings")
                    return False
                if entry["answer"] not in options:
                    self.logger.error(f"Question {i} answer must be one of its options")
                    return False

            elif entry["type"] == QuestionType.INTEGER.value:
                answer = entry["answer"]
                if isinstance(answer, bool) or not isinstance(answer, int):
                    self.logger.error(f"Question {i} 'answer' must be an integer")
                    return False

            else:
                self.logger.error(f"Question {i} has unknown type '{entry['type']}'")
                return False

        return True

    def _parse_questions(self, data: dict) -> List[Question]:
        """Parse validated bank data into Question objects."""
        return [
            Question(
                id=entry["id"],
                type=QuestionType(entry["type"]),
                prompt=entry["question"],
                correct_answer=entry["answer"],
                options=tuple(entry.get("options", ()))
            )
            for entry in data["questions"]
        ]

    def _use_fallback_bank(self) -> List[Question]:
        """Fall back to the built-in question bank."""
        self.questions = self._parse_questions({"questions": DEFAULT_QUESTION_BANK})
        self.fallback_bank_active = True
        self.logger.warning(f"Using built-in question bank ({len(self.questions)} questions)")
        return list(self.questions)

    def get_questions(self) -> List[Question]:
        """Return the loaded questions (a copy; the bank itself is never reordered)."""
        return list(self.questions)

    def get_question_count(self) -> int:
        return len(self.questions)

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last load operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_questions': len(self.questions),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.fallback_bank_active,
            'bank_path': str(self.bank_path)
        }
