"""Pydantic schemas for API request/response validation.

All schemas use CamelCase for JSON field names (via alias_generator).
"""

from .base import CamelModel, PaginatedResponse, PaginationMeta, ErrorResponse
from .practice_calls import (
    PracticeCallStart,
    ExternalCallAttach,
    PracticeCallComplete,
    PracticeCallResponse,
    PracticeCallListItem,
    PollStatusResponse,
    EvaluationResponse,
    BatchEvaluateRequest,
    BatchItemResponse,
    BatchEvaluationResponse,
)

__all__ = [
    # Base
    "CamelModel",
    "PaginatedResponse",
    "PaginationMeta",
    "ErrorResponse",
    # Practice calls
    "PracticeCallStart",
    "ExternalCallAttach",
    "PracticeCallComplete",
    "PracticeCallResponse",
    "PracticeCallListItem",
    "PollStatusResponse",
    "EvaluationResponse",
    "BatchEvaluateRequest",
    "BatchItemResponse",
    "BatchEvaluationResponse",
]
