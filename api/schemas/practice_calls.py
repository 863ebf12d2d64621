"""Pydantic schemas for practice call endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from api.models.practice_calls import CallOutcome
from processor.integrations.ringg import CALL_ID_PATTERN

from .base import CamelModel


def _check_external_call_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not CALL_ID_PATTERN.match(value):
        raise ValueError("externalCallId must be 1-128 characters of letters, digits, '_', '.', ':' or '-'")
    return value


class PracticeCallStart(CamelModel):
    """Schema for starting a practice call."""

    user_id: str = Field(..., min_length=1, max_length=64)
    scenario: Optional[str] = Field(None, max_length=255)
    participant_name: Optional[str] = Field(None, max_length=255)
    external_call_id: Optional[str] = None  # Starts polling when present

    @field_validator("external_call_id")
    @classmethod
    def validate_external_call_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_external_call_id(v)


class ExternalCallAttach(CamelModel):
    """Schema for attaching a provider call ID to an existing practice call."""

    external_call_id: str

    @field_validator("external_call_id")
    @classmethod
    def validate_external_call_id(cls, v: str) -> str:
        return _check_external_call_id(v)


class PracticeCallComplete(CamelModel):
    """Schema for completing a practice call."""

    outcome: CallOutcome
    notes: Optional[str] = None


class PracticeCallResponse(CamelModel):
    """Schema for a full practice call."""

    id: int
    external_call_id: Optional[str] = None
    user_id: str
    scenario: Optional[str] = None
    participant_name: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    outcome: Optional[str] = None
    notes: Optional[str] = None
    call_duration: Optional[int] = None
    call_cost: Optional[float] = None
    call_status: Optional[str] = None
    transcript: Optional[str] = None
    audio_recording_url: Optional[str] = None
    poll_state: Optional[str] = None
    poll_attempts: Optional[int] = None
    poll_started_at: Optional[datetime] = None
    overall_score: Optional[int] = None
    tone_of_voice_score: Optional[int] = None
    building_rapport_score: Optional[int] = None
    showing_empathy_score: Optional[int] = None
    handling_skills_score: Optional[int] = None
    knowledge_score: Optional[int] = None
    feedback: Optional[str] = None
    evaluation_source: Optional[str] = None
    evaluated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class PracticeCallListItem(CamelModel):
    """Schema for a practice call in list responses."""

    id: int
    external_call_id: Optional[str] = None
    user_id: str
    scenario: Optional[str] = None
    participant_name: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    outcome: Optional[str] = None
    poll_state: Optional[str] = None
    overall_score: Optional[int] = None
    evaluated_at: Optional[datetime] = None


class PollStatusResponse(CamelModel):
    """On-demand snapshot of a provider call."""

    external_call_id: str
    status: Optional[str] = None
    has_transcript: bool = False
    has_recording: bool = False
    is_ready: bool = False
    call_duration: Optional[int] = None
    audio_recording_url: Optional[str] = None
    polling_active: bool = False


class EvaluationResponse(CamelModel):
    """Scores and feedback for one practice call."""

    call_id: int
    overall_score: int
    tone_of_voice_score: int
    building_rapport_score: int
    showing_empathy_score: int
    handling_skills_score: int
    knowledge_score: int
    feedback: str
    strengths: List[str] = []
    improvements: List[str] = []
    source: Optional[str] = None
    evaluated_at: Optional[datetime] = None


class BatchEvaluateRequest(CamelModel):
    """Batch evaluation request. Without call IDs, pending calls are evaluated."""

    call_ids: Optional[List[int]] = None


class BatchItemResponse(CamelModel):
    """Outcome for one call in a batch."""

    call_id: int
    status: str  # evaluated, skipped, error
    overall_score: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class BatchEvaluationResponse(CamelModel):
    """Batch evaluation results with counts."""

    results: List[BatchItemResponse]
    total: int
    evaluated: int
    skipped: int
    errors: int
