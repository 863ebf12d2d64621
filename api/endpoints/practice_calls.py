"""Practice call endpoints: lifecycle, recording status and evaluation."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.config.database import get_db
from api.config.settings import settings
from api.middleware.error_handler import NotFoundError, ProviderError
from api.models import PracticeCall
from api.models.base import utc_now
from api.schemas.base import ErrorResponse, PaginatedResponse, PaginationMeta
from api.schemas.practice_calls import (
    BatchEvaluateRequest,
    BatchEvaluationResponse,
    BatchItemResponse,
    EvaluationResponse,
    ExternalCallAttach,
    PollStatusResponse,
    PracticeCallComplete,
    PracticeCallListItem,
    PracticeCallResponse,
    PracticeCallStart,
)
from api.services.practice_calls import PracticeCallEngine, get_engine, stored_evaluation_lists
from processor.config import settings as processor_settings
from processor.integrations.ringg import RinggError, RinggNotFoundError
from processor.recording_poller import check_recording_status

logger = structlog.get_logger()
router = APIRouter()


def _get_call(db: Session, call_id: int) -> PracticeCall:
    call = db.query(PracticeCall).filter(PracticeCall.id == call_id).first()
    if not call:
        raise NotFoundError("Practice call", call_id)
    return call


@router.post("/start", response_model=PracticeCallResponse, status_code=status.HTTP_201_CREATED)
async def start_practice_call(
    data: PracticeCallStart,
    db: Session = Depends(get_db),
    engine: PracticeCallEngine = Depends(get_engine),
):
    """Create a practice call; begins polling when an external call ID is given."""
    call = PracticeCall(
        user_id=data.user_id,
        scenario=data.scenario,
        participant_name=data.participant_name,
        external_call_id=data.external_call_id,
        started_at=utc_now(),
    )
    if call.external_call_id:
        call.poll_started_at = call.started_at
    db.add(call)
    db.commit()
    db.refresh(call)

    logger.info(
        "Practice call started",
        call_id=call.id,
        user_id=call.user_id,
        scenario=call.scenario,
        external_call_id=call.external_call_id,
    )

    if call.external_call_id:
        engine.start_polling(call.external_call_id, call.id)

    return PracticeCallResponse.model_validate(call)


@router.get("", response_model=PaginatedResponse[PracticeCallListItem])
async def list_practice_calls(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = Query(None, alias="userId"),
    evaluated: Optional[bool] = Query(None),
):
    """List practice calls, newest first."""
    query = db.query(PracticeCall)

    if user_id:
        query = query.filter(PracticeCall.user_id == user_id)
    if evaluated is True:
        query = query.filter(PracticeCall.evaluated_at.isnot(None))
    elif evaluated is False:
        query = query.filter(PracticeCall.evaluated_at.is_(None))

    total = query.count()

    calls = (
        query.order_by(PracticeCall.started_at.desc(), PracticeCall.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return PaginatedResponse(
        data=[PracticeCallListItem.model_validate(c) for c in calls],
        meta=PaginationMeta.for_page(page, per_page, total),
    )


@router.get("/poll-status/{external_call_id}", response_model=PollStatusResponse)
async def get_poll_status(
    external_call_id: str,
    engine: PracticeCallEngine = Depends(get_engine),
):
    """Fetch the provider's current view of a call without writing anything."""
    try:
        snapshot = await check_recording_status(engine.client, external_call_id)
    except RinggNotFoundError:
        raise NotFoundError("Provider call", external_call_id)
    except RinggError as e:
        raise ProviderError(str(e), e.status_code)

    return PollStatusResponse(
        external_call_id=external_call_id,
        status=snapshot.status,
        has_transcript=snapshot.has_transcript,
        has_recording=snapshot.has_recording,
        is_ready=snapshot.is_ready,
        call_duration=snapshot.duration,
        audio_recording_url=snapshot.recording_url,
        polling_active=engine.registry.is_active(external_call_id),
    )


@router.post("/evaluate/batch", response_model=BatchEvaluationResponse)
async def batch_evaluate(
    data: BatchEvaluateRequest,
    engine: PracticeCallEngine = Depends(get_engine),
):
    """Evaluate several calls. Failures are reported per call, never raised."""
    call_ids = data.call_ids
    if call_ids is None:
        call_ids = engine.orchestrator.pending_call_ids(limit=settings.BATCH_EVALUATION_LIMIT)

    summary = await engine.orchestrator.batch_evaluate(call_ids)

    return BatchEvaluationResponse(
        results=[
            BatchItemResponse(
                call_id=r.call_id,
                status=r.status,
                overall_score=r.overall_score,
                reason=r.reason,
                error=r.error,
            )
            for r in summary.results
        ],
        total=summary.total,
        evaluated=summary.evaluated,
        skipped=summary.skipped,
        errors=summary.errors,
    )


@router.get("/{call_id}", response_model=PracticeCallResponse)
async def get_practice_call(
    call_id: int,
    db: Session = Depends(get_db),
):
    """Get a practice call by ID."""
    call = _get_call(db, call_id)
    return PracticeCallResponse.model_validate(call)


@router.post("/{call_id}/external-call", response_model=PracticeCallResponse)
async def attach_external_call(
    call_id: int,
    data: ExternalCallAttach,
    db: Session = Depends(get_db),
    engine: PracticeCallEngine = Depends(get_engine),
):
    """Attach the provider call ID once the call is placed, and start polling."""
    call = _get_call(db, call_id)

    call.external_call_id = data.external_call_id
    call.poll_state = None
    call.poll_attempts = None
    call.poll_started_at = utc_now()
    db.commit()
    db.refresh(call)

    logger.info("External call attached", call_id=call.id, external_call_id=call.external_call_id)
    engine.start_polling(call.external_call_id, call.id)

    return PracticeCallResponse.model_validate(call)


@router.post("/{call_id}/complete", response_model=PracticeCallResponse)
async def complete_practice_call(
    call_id: int,
    data: PracticeCallComplete,
    db: Session = Depends(get_db),
):
    """Record the end of a call with its outcome and notes."""
    call = _get_call(db, call_id)

    call.ended_at = utc_now()
    call.outcome = data.outcome.value
    call.notes = data.notes
    db.commit()
    db.refresh(call)

    logger.info("Practice call completed", call_id=call.id, outcome=call.outcome)
    return PracticeCallResponse.model_validate(call)


@router.post(
    "/{call_id}/evaluate",
    response_model=EvaluationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def evaluate_practice_call(
    call_id: int,
    force: bool = Query(False),
    engine: PracticeCallEngine = Depends(get_engine),
):
    """Score a call's transcript and store the evaluation."""
    result = await engine.orchestrator.evaluate(call_id, force=force)

    return EvaluationResponse(
        call_id=call_id,
        overall_score=result.overall_score,
        tone_of_voice_score=result.tone_of_voice_score,
        building_rapport_score=result.building_rapport_score,
        showing_empathy_score=result.showing_empathy_score,
        handling_skills_score=result.handling_skills_score,
        knowledge_score=result.knowledge_score,
        feedback=result.feedback,
        strengths=result.strengths,
        improvements=result.improvements,
        source=result.source,
        evaluated_at=result.evaluated_at,
    )


@router.get("/{call_id}/evaluation", response_model=EvaluationResponse)
async def get_evaluation(
    call_id: int,
    db: Session = Depends(get_db),
):
    """Get the stored evaluation for a call."""
    call = _get_call(db, call_id)
    if call.evaluated_at is None:
        raise NotFoundError("Evaluation", call_id)

    lists = stored_evaluation_lists(
        call,
        processor_settings.STRENGTH_THRESHOLD,
        processor_settings.IMPROVEMENT_THRESHOLD,
    )

    return EvaluationResponse(
        call_id=call.id,
        overall_score=call.overall_score,
        tone_of_voice_score=call.tone_of_voice_score,
        building_rapport_score=call.building_rapport_score,
        showing_empathy_score=call.showing_empathy_score,
        handling_skills_score=call.handling_skills_score,
        knowledge_score=call.knowledge_score,
        feedback=call.feedback or "",
        strengths=lists["strengths"],
        improvements=lists["improvements"],
        source=call.evaluation_source,
        evaluated_at=call.evaluated_at,
    )
