"""SQLAlchemy ORM models for the Class Mentor training API.

All models are imported here to ensure they're registered with Base.metadata
before any database operations.
"""

# Import base first
from api.config.database import Base

from .practice_calls import CallOutcome, PracticeCall

__all__ = [
    "Base",
    "CallOutcome",
    "PracticeCall",
]
