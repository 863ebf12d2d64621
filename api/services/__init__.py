"""Business logic services for the Class Mentor training API."""

from .practice_calls import PracticeCallEngine, get_engine

__all__ = [
    "PracticeCallEngine",
    "get_engine",
]
