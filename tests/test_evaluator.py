"""Tests for the evaluation orchestrator."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import text

from conftest import SAMPLE_TRANSCRIPT
from api.models.base import utc_now
from processor.evaluator import (
    AlreadyEvaluatedError,
    CallNotFoundError,
    EvaluationOrchestrator,
    NoTranscriptError,
    ScoringFailedError,
)
from processor.scoring import EvaluationResult, HeuristicScorer, RubricScorer


class TrackingScorer:
    """Heuristic scoring that yields to the loop and records peak concurrency."""

    def __init__(self):
        self.heuristic = HeuristicScorer(70, 60)
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def score(self, transcript, **context):
        self.calls += 1
        if "FAIL" in transcript:
            raise RuntimeError("model exploded")
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.active -= 1
        return self.heuristic.score(transcript, scenario=context.get("scenario"))


class LabelledScorer:
    """Returns a result whose feedback names the order it was requested in."""

    def __init__(self):
        self.count = 0

    async def score(self, transcript, **context):
        self.count += 1
        label = f"evaluation #{self.count}"
        await asyncio.sleep(0)
        return EvaluationResult.from_scores(
            {"tone_of_voice": 70, "building_rapport": 70, "showing_empathy": 70,
             "handling_skills": 70, "knowledge": 70},
            feedback=label,
        )



class DeletingScorer:
    """Deletes the call while scoring, as if a user removed it mid-request."""

    def __init__(self, session_factory, call_id):
        self.session_factory = session_factory
        self.call_id = call_id
        self.heuristic = HeuristicScorer(70, 60)

    async def score(self, transcript, **context):
        db = self.session_factory()
        try:
            db.execute(text("DELETE FROM practice_calls WHERE id = :id"), {"id": self.call_id})
            db.commit()
        finally:
            db.close()
        return self.heuristic.score(transcript)

@pytest.fixture
def orchestrator(session_factory):
    scorer = RubricScorer(heuristic=HeuristicScorer(70, 60), use_claude=False)
    return EvaluationOrchestrator(session_factory, scorer=scorer, concurrency=3)


def test_evaluate_writes_all_fields(orchestrator, make_call, load_call):
    call_id = make_call(transcript=SAMPLE_TRANSCRIPT, scenario="Low Class Consumption")

    result = asyncio.run(orchestrator.evaluate(call_id))

    record = load_call(call_id)
    assert record["overall_score"] == result.overall_score
    assert record["showing_empathy_score"] == result.showing_empathy_score
    assert record["knowledge_score"] == result.knowledge_score
    assert record["tone_of_voice_score"] == result.tone_of_voice_score
    assert record["building_rapport_score"] == result.building_rapport_score
    assert record["handling_skills_score"] == result.handling_skills_score
    assert record["feedback"] == result.feedback
    assert record["evaluation_source"] == "heuristic"
    assert record["evaluated_at"] is not None
    assert result.evaluated_at is not None
    assert "Showing Empathy" in result.strengths


def test_missing_call(orchestrator):
    with pytest.raises(CallNotFoundError) as exc_info:
        asyncio.run(orchestrator.evaluate(9999))

    assert exc_info.value.code == "NOT_FOUND"


@pytest.mark.parametrize("transcript", [None, "", "   "])
def test_no_transcript(orchestrator, make_call, load_call, transcript):
    call_id = make_call(transcript=transcript)

    with pytest.raises(NoTranscriptError) as exc_info:
        asyncio.run(orchestrator.evaluate(call_id))

    assert exc_info.value.code == "NO_TRANSCRIPT"
    assert load_call(call_id)["evaluated_at"] is None


def test_already_evaluated_without_force(orchestrator, make_call, load_call):
    call_id = make_call(
        transcript=SAMPLE_TRANSCRIPT,
        overall_score=12,
        feedback="first feedback",
        evaluated_at=utc_now(),
    )

    with pytest.raises(AlreadyEvaluatedError) as exc_info:
        asyncio.run(orchestrator.evaluate(call_id))

    assert exc_info.value.code == "ALREADY_EVALUATED"
    record = load_call(call_id)
    assert record["feedback"] == "first feedback"
    assert record["overall_score"] == 12


def test_force_re_evaluates(orchestrator, make_call, load_call):
    call_id = make_call(
        transcript=SAMPLE_TRANSCRIPT,
        overall_score=12,
        feedback="first feedback",
        evaluated_at=utc_now(),
    )

    result = asyncio.run(orchestrator.evaluate(call_id, force=True))

    record = load_call(call_id)
    assert record["overall_score"] == result.overall_score == 66
    assert record["feedback"] == result.feedback


def test_scoring_failure_writes_nothing(session_factory, make_call, load_call):
    orchestrator = EvaluationOrchestrator(session_factory, scorer=TrackingScorer())
    call_id = make_call(transcript="FAIL on purpose")

    with pytest.raises(ScoringFailedError) as exc_info:
        asyncio.run(orchestrator.evaluate(call_id))

    assert exc_info.value.code == "SCORING_FAILED"
    record = load_call(call_id)
    assert record["evaluated_at"] is None
    assert record["feedback"] is None


def test_concurrent_evaluations_keep_first_feedback(session_factory, make_call, load_call):
    orchestrator = EvaluationOrchestrator(session_factory, scorer=LabelledScorer())
    call_id = make_call(transcript=SAMPLE_TRANSCRIPT)

    async def race():
        return await asyncio.gather(
            orchestrator.evaluate(call_id),
            orchestrator.evaluate(call_id),
            return_exceptions=True,
        )

    outcomes = asyncio.run(race())

    winners = [o for o in outcomes if isinstance(o, EvaluationResult)]
    losers = [o for o in outcomes if isinstance(o, AlreadyEvaluatedError)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert load_call(call_id)["feedback"] == winners[0].feedback


def test_batch_isolates_failures(session_factory, make_call, load_call):
    scorer = TrackingScorer()
    orchestrator = EvaluationOrchestrator(session_factory, scorer=scorer, concurrency=2)
    good = make_call(transcript=SAMPLE_TRANSCRIPT)
    empty = make_call(transcript=None)
    done = make_call(transcript=SAMPLE_TRANSCRIPT, evaluated_at=utc_now(), feedback="kept")
    failing = make_call(transcript="FAIL please")
    other = make_call(transcript="Thank you for calling, I understand your concern.")

    summary = asyncio.run(orchestrator.batch_evaluate([good, empty, 424242, done, failing, other]))

    by_id = {r.call_id: r for r in summary.results}
    assert [r.call_id for r in summary.results] == [good, empty, 424242, done, failing, other]
    assert by_id[good].status == "evaluated"
    assert by_id[good].overall_score == 66
    assert by_id[empty].status == "skipped" and by_id[empty].reason == "NO_TRANSCRIPT"
    assert by_id[424242].status == "error" and by_id[424242].reason == "NOT_FOUND"
    assert "not found" in by_id[424242].error
    assert by_id[done].status == "skipped" and by_id[done].reason == "ALREADY_EVALUATED"
    assert by_id[failing].status == "error" and "model exploded" in by_id[failing].error
    assert by_id[other].status == "evaluated"

    assert (summary.total, summary.evaluated, summary.skipped, summary.errors) == (6, 2, 2, 2)
    assert load_call(done)["feedback"] == "kept"
    assert load_call(failing)["evaluated_at"] is None
    assert scorer.peak <= 2


def test_batch_ignores_duplicate_ids(session_factory, make_call):
    scorer = TrackingScorer()
    orchestrator = EvaluationOrchestrator(session_factory, scorer=scorer)
    call_id = make_call(transcript=SAMPLE_TRANSCRIPT)

    summary = asyncio.run(orchestrator.batch_evaluate([call_id, call_id]))

    assert summary.total == 1
    assert summary.evaluated == 1
    assert scorer.calls == 1


def test_empty_batch(orchestrator):
    summary = asyncio.run(orchestrator.batch_evaluate([]))

    assert summary.results == []
    assert summary.total == 0


def test_pending_call_ids(orchestrator, make_call):
    now = utc_now()
    newer = make_call(transcript="Agent: newer", started_at=now)
    older = make_call(transcript="Agent: older", started_at=now - timedelta(hours=2))
    make_call(transcript=None, started_at=now - timedelta(hours=3))
    make_call(transcript="   ", started_at=now - timedelta(hours=3))
    make_call(transcript="Agent: done", evaluated_at=now, started_at=now - timedelta(hours=4))

    assert orchestrator.pending_call_ids() == [older, newer]
    assert orchestrator.pending_call_ids(limit=1) == [older]


def test_call_deleted_during_scoring_is_not_found(session_factory, make_call):
    call_id = make_call(transcript=SAMPLE_TRANSCRIPT)
    orchestrator = EvaluationOrchestrator(session_factory, scorer=DeletingScorer(session_factory, call_id))

    with pytest.raises(CallNotFoundError):
        asyncio.run(orchestrator.evaluate(call_id))
