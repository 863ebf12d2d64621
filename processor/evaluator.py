"""Evaluation orchestrator for practice calls.

Loads a call, scores its transcript and writes the evaluation exactly once.
The write is a compare-and-set on evaluated_at, so two concurrent requests
for the same call cannot both store feedback.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import structlog

from processor.call_store import PracticeCallStore
from processor.config import settings
from processor.database import SessionFactory, SessionLocal, get_db, utcnow
from processor.scoring import EvaluationResult, RubricScorer

logger = structlog.get_logger()

EVALUATED = "evaluated"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class BatchItemOutcome:
    """Result for one call in a batch."""

    call_id: int
    status: str  # evaluated | skipped | error
    overall_score: Optional[int] = None
    reason: Optional[str] = None  # Error code (skips and missing calls)
    error: Optional[str] = None


@dataclass
class BatchEvaluationSummary:
    """Per-call outcomes plus aggregate counts."""

    results: List[BatchItemOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def evaluated(self) -> int:
        return sum(1 for r in self.results if r.status == EVALUATED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == SKIPPED)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.status == ERROR)


class EvaluationOrchestrator:
    """Evaluates practice calls one at a time or in bounded batches."""

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        scorer: Optional[RubricScorer] = None,
        concurrency: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.scorer = scorer or RubricScorer()
        self.concurrency = max(1, concurrency or settings.EVALUATION_BATCH_CONCURRENCY)

    async def evaluate(self, call_id: int, force: bool = False) -> EvaluationResult:
        """Score a call and store the evaluation.

        Args:
            call_id: Practice call ID
            force: Re-evaluate a call that already has an evaluation

        Raises:
            CallNotFoundError: No such call
            NoTranscriptError: Transcript missing or blank
            AlreadyEvaluatedError: Evaluated before (or by a concurrent writer)
            ScoringFailedError: The scorer raised; nothing was written
        """
        log = logger.bind(call_id=call_id)

        with get_db(self.session_factory) as db:
            call = PracticeCallStore(db).get(call_id)

        if call is None:
            raise CallNotFoundError(f"Practice call {call_id} not found")

        transcript = call.get("transcript")
        if not transcript or not transcript.strip():
            raise NoTranscriptError(f"Practice call {call_id} has no transcript")

        previous_evaluated_at = call.get("evaluated_at")
        if previous_evaluated_at is not None and not force:
            raise AlreadyEvaluatedError(f"Practice call {call_id} is already evaluated")

        log.info("Evaluating practice call", scenario=call.get("scenario"), force=force)

        try:
            result = await self.scorer.score(
                transcript,
                scenario=call.get("scenario"),
                audio_url=call.get("audio_recording_url"),
                duration_seconds=call.get("call_duration"),
                participant_name=call.get("participant_name"),
            )
        except Exception as e:
            log.error("Scoring failed", error=str(e), error_type=type(e).__name__)
            raise ScoringFailedError(f"Scoring failed for practice call {call_id}: {e}") from e

        evaluated_at = utcnow()
        with get_db(self.session_factory) as db:
            saved = PracticeCallStore(db).save_evaluation(
                call_id,
                result.to_record_fields(),
                evaluated_at,
                previous_evaluated_at=previous_evaluated_at,
            )

        if not saved:
            with get_db(self.session_factory) as db:
                still_exists = PracticeCallStore(db).exists(call_id)
            if not still_exists:
                log.warning("Practice call deleted during evaluation")
                raise CallNotFoundError(f"Practice call {call_id} not found")
            log.warning("Lost evaluation race, keeping existing evaluation")
            raise AlreadyEvaluatedError(f"Practice call {call_id} was evaluated concurrently")

        result.evaluated_at = evaluated_at
        log.info(
            "Practice call evaluated",
            overall_score=result.overall_score,
            source=result.source,
        )
        return result

    async def batch_evaluate(self, call_ids: Iterable[int]) -> BatchEvaluationSummary:
        """Evaluate several calls; one failure never aborts the others."""
        unique_ids = list(dict.fromkeys(call_ids))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_one(call_id: int) -> BatchItemOutcome:
            async with semaphore:
                return await self._evaluate_item(call_id)

        results = await asyncio.gather(*(run_one(call_id) for call_id in unique_ids))
        summary = BatchEvaluationSummary(results=list(results))

        logger.info(
            "Batch evaluation complete",
            total=summary.total,
            evaluated=summary.evaluated,
            skipped=summary.skipped,
            errors=summary.errors,
        )
        return summary

    async def _evaluate_item(self, call_id: int) -> BatchItemOutcome:
        try:
            result = await self.evaluate(call_id)
        except ScoringFailedError as e:
            return BatchItemOutcome(call_id=call_id, status=ERROR, error=e.message)
        except CallNotFoundError as e:
            return BatchItemOutcome(call_id=call_id, status=ERROR, reason=e.code, error=e.message)
        except EvaluationError as e:
            return BatchItemOutcome(call_id=call_id, status=SKIPPED, reason=e.code)
        except Exception as e:
            logger.error("Batch item failed", call_id=call_id, error=str(e))
            return BatchItemOutcome(call_id=call_id, status=ERROR, error=str(e))

        return BatchItemOutcome(
            call_id=call_id,
            status=EVALUATED,
            overall_score=result.overall_score,
        )

    def pending_call_ids(self, limit: int = 50) -> List[int]:
        """Calls with a transcript and no evaluation, oldest first."""
        with get_db(self.session_factory) as db:
            return PracticeCallStore(db).list_unevaluated(limit=limit)


class EvaluationError(Exception):
    """Base error for evaluation requests, carrying a stable error code."""

    code = "EVALUATION_FAILED"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class CallNotFoundError(EvaluationError):
    code = "NOT_FOUND"


class NoTranscriptError(EvaluationError):
    code = "NO_TRANSCRIPT"


class AlreadyEvaluatedError(EvaluationError):
    code = "ALREADY_EVALUATED"


class ScoringFailedError(EvaluationError):
    code = "SCORING_FAILED"
