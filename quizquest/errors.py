"""
Exception hierarchy shared by the quiz engine and the attempt store.
"""


class QuizError(Exception):
    """Base exception for QuizQuest errors."""
    pass


class ValidationError(QuizError):
    """Raised when a user action is not valid in the current state.

    Always recovered locally and surfaced as a transient message.
    """
    pass


class NotFoundError(QuizError):
    """Raised when a stored record does not exist."""
    pass


class StorageError(QuizError):
    """Base exception for persistence failures."""
    pass


class StorageInitError(StorageError):
    """Raised when the underlying store cannot be opened."""
    pass


class StorageIOError(StorageError):
    """Raised when a read or write against the store fails."""
    pass
