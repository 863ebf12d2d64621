"""Practice call model: one role-play call by a trainee."""

from enum import Enum

from sqlalchemy import Column, DateTime, Float, Integer, String, Text

from api.models.base import BaseModel, utc_now


class CallOutcome(str, Enum):
    """Outcome recorded by the trainee or coach when a call is completed."""

    PASSED = "PASSED"
    IMPROVE = "IMPROVE"
    NOT_APPLICABLE = "N/A"


class PracticeCall(BaseModel):
    """
    A practice call and everything learned about it.

    Recording fields are filled in by the background poller as the provider
    produces them; evaluation fields are written once by the orchestrator.
    """

    __tablename__ = "practice_calls"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_call_id = Column(String(128), nullable=True, index=True)  # Ringg call ID
    user_id = Column(String(64), nullable=False, index=True)
    scenario = Column(String(255), nullable=True)
    participant_name = Column(String(255), nullable=True)

    # Lifecycle
    started_at = Column(DateTime, nullable=False, default=utc_now)
    ended_at = Column(DateTime, nullable=True)
    outcome = Column(String(20), nullable=True)  # PASSED, IMPROVE, N/A
    notes = Column(Text, nullable=True)

    # Provider data
    call_duration = Column(Integer, nullable=True)  # Seconds
    call_cost = Column(Float, nullable=True)
    call_status = Column(String(50), nullable=True)
    transcript = Column(Text, nullable=True)
    audio_recording_url = Column(String(1024), nullable=True)

    # Polling
    poll_state = Column(String(20), nullable=True)  # POLLING, then the final state
    poll_attempts = Column(Integer, nullable=True)
    poll_started_at = Column(DateTime, nullable=True)  # When the current poll was launched

    # Evaluation (0-100)
    overall_score = Column(Integer, nullable=True)
    tone_of_voice_score = Column(Integer, nullable=True)
    building_rapport_score = Column(Integer, nullable=True)
    showing_empathy_score = Column(Integer, nullable=True)
    handling_skills_score = Column(Integer, nullable=True)
    knowledge_score = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)  # Markdown
    evaluation_source = Column(String(20), nullable=True)  # claude, heuristic
    evaluated_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<PracticeCall(id={self.id}, external_call_id={self.external_call_id})>"
