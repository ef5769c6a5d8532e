"""
QuizQuest - a character-driven quiz game with a local leaderboard.
"""

__version__ = "1.0.0"
