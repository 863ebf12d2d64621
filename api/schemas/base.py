"""Base Pydantic schemas: camelCase JSON, pagination and the error envelope."""

from typing import Any, Generic, TypeVar

from humps import camelize
from pydantic import BaseModel, ConfigDict


class CamelModel(BaseModel):
    """Reads snake_case attributes, speaks camelCase JSON (externalCallId, overallScore)."""

    model_config = ConfigDict(
        alias_generator=camelize,
        populate_by_name=True,
        from_attributes=True,
    )


T = TypeVar("T")


class PaginationMeta(CamelModel):
    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def for_page(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=(total + per_page - 1) // per_page,
        )


class PaginatedResponse(CamelModel, Generic[T]):
    """One page of results, e.g. PaginatedResponse[PracticeCallListItem]."""

    data: list[T]
    meta: PaginationMeta


class ErrorBody(CamelModel):
    code: str  # NOT_FOUND, NO_TRANSCRIPT, ALREADY_EVALUATED, SCORING_FAILED, PROVIDER_ERROR, ...
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(CamelModel):
    """Envelope every error handler renders: {"error": {...}}."""

    error: ErrorBody
