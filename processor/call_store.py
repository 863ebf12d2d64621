"""Field-level persistence for practice_calls rows.

Every write is a targeted UPDATE of named columns, so the poller, the
evaluator and the completion flow never clobber each other's fields.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.orm import Session

from processor.database import utcnow

logger = structlog.get_logger()

RECORDING_FIELDS = {
    "transcript",
    "audio_recording_url",
    "call_duration",
    "call_cost",
    "call_status",
    "participant_name",
}
COMPLETION_FIELDS = {"ended_at", "outcome", "notes"}
POLL_FIELDS = {"external_call_id", "poll_state", "poll_attempts", "poll_started_at"}
EVALUATION_FIELDS = {
    "tone_of_voice_score",
    "building_rapport_score",
    "showing_empathy_score",
    "handling_skills_score",
    "knowledge_score",
    "overall_score",
    "feedback",
    "evaluation_source",
    "evaluated_at",
}

# Columns update_fields may touch; evaluation fields only go through save_evaluation
PATCHABLE_FIELDS = RECORDING_FIELDS | COMPLETION_FIELDS | POLL_FIELDS

SELECT_COLUMNS = """
    id, external_call_id, user_id, scenario, participant_name,
    started_at, ended_at, outcome, notes,
    call_duration, call_cost, call_status,
    transcript, audio_recording_url, poll_state, poll_attempts, poll_started_at,
    overall_score, tone_of_voice_score, building_rapport_score,
    showing_empathy_score, handling_skills_score, knowledge_score,
    feedback, evaluation_source, evaluated_at
"""

DATETIME_PARAMS = {
    "started_at",
    "ended_at",
    "evaluated_at",
    "updated_at",
    "previous_evaluated_at",
    "poll_started_at",
    "stale_before",
    "window_start",
}


def _query(sql: str, params: Dict[str, Any]):
    """text() with DateTime binds, so every dialect stores one timestamp format."""
    stmt = text(sql)
    typed = [bindparam(name, type_=DateTime) for name in params if name in DATETIME_PARAMS]
    return stmt.bindparams(*typed) if typed else stmt


class PracticeCallStore:
    """Reads and patches practice_calls rows with raw SQL."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, call_id: int) -> Optional[Dict[str, Any]]:
        """Read one practice call as a dict, or None if it does not exist."""
        query = text(f"SELECT {SELECT_COLUMNS} FROM practice_calls WHERE id = :id").columns(
            started_at=DateTime,
            ended_at=DateTime,
            poll_started_at=DateTime,
            evaluated_at=DateTime,
        )
        result = self.db.execute(query, {"id": call_id})
        row = result.fetchone()
        result.close()
        return dict(row._mapping) if row else None

    def update_fields(self, call_id: int, **fields: Any) -> bool:
        """Patch the given columns only.

        Returns:
            False if the row no longer exists

        Raises:
            ValueError: If a column is not patchable
        """
        if not fields:
            return self.exists(call_id)

        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not patchable: {sorted(unknown)}")

        assignments = ", ".join(f"{name} = :{name}" for name in sorted(fields))
        params = {**fields, "updated_at": utcnow(), "id": call_id}
        query = _query(f"""
            UPDATE practice_calls
            SET {assignments}, updated_at = :updated_at
            WHERE id = :id
        """, params)
        result = self.db.execute(query, params)
        self.db.commit()
        return result.rowcount > 0

    def exists(self, call_id: int) -> bool:
        result = self.db.execute(
            text("SELECT 1 FROM practice_calls WHERE id = :id"),
            {"id": call_id},
        )
        found = result.fetchone() is not None
        result.close()
        return found

    def mark_poll_started(self, call_id: int, started_at: datetime) -> bool:
        """Claim the call for a running poll so recovery leaves it alone."""
        return self.update_fields(
            call_id,
            poll_state="POLLING",
            poll_attempts=0,
            poll_started_at=started_at,
        )

    def mark_poll_finished(self, call_id: int, state: str, attempts: int) -> bool:
        """Record how the last recording poll ended."""
        return self.update_fields(call_id, poll_state=state, poll_attempts=attempts)

    def save_evaluation(
        self,
        call_id: int,
        fields: Dict[str, Any],
        evaluated_at: datetime,
        previous_evaluated_at: Optional[datetime] = None,
    ) -> bool:
        """Write all evaluation columns in one statement.

        Compare-and-set on evaluated_at: the write only lands if evaluated_at
        still holds the value the caller read (NULL for a first evaluation).

        Returns:
            False if another writer got there first (or the row is gone)
        """
        values = {**fields, "evaluated_at": evaluated_at}
        missing = EVALUATION_FIELDS - set(values)
        if missing:
            raise ValueError(f"Evaluation fields missing: {sorted(missing)}")

        assignments = ", ".join(f"{name} = :{name}" for name in sorted(EVALUATION_FIELDS))
        params = {name: values[name] for name in EVALUATION_FIELDS}
        params.update({"id": call_id, "updated_at": utcnow()})

        if previous_evaluated_at is None:
            guard = "evaluated_at IS NULL"
        else:
            guard = "evaluated_at = :previous_evaluated_at"
            params["previous_evaluated_at"] = previous_evaluated_at

        query = _query(f"""
            UPDATE practice_calls
            SET {assignments}, updated_at = :updated_at
            WHERE id = :id AND {guard}
        """, params)
        result = self.db.execute(query, params)
        self.db.commit()

        if result.rowcount == 0:
            logger.info("Evaluation write rejected by evaluated_at guard", call_id=call_id)
            return False
        return True

    def list_unevaluated(self, limit: int = 50) -> List[int]:
        """IDs of calls with a transcript and no evaluation, oldest first."""
        query = text("""
            SELECT id FROM practice_calls
            WHERE evaluated_at IS NULL
              AND transcript IS NOT NULL
              AND TRIM(transcript) <> ''
            ORDER BY started_at ASC, id ASC
            LIMIT :limit
        """)
        result = self.db.execute(query, {"limit": limit})
        ids = [row.id for row in result.fetchall()]
        return ids

    def list_unfinished_polls(
        self,
        stale_before: datetime,
        window_start: datetime,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Calls with an external ID whose recording poll never finished.

        A poll counts as lost when it was launched (or, with no launch
        recorded, the call was started) between window_start and
        stale_before. Attaching an external ID resets poll_started_at.
        """
        params = {"stale_before": stale_before, "window_start": window_start, "limit": limit}
        query = _query("""
            SELECT id, external_call_id FROM practice_calls
            WHERE external_call_id IS NOT NULL
              AND (poll_state IS NULL OR poll_state = 'POLLING')
              AND COALESCE(poll_started_at, started_at) < :stale_before
              AND COALESCE(poll_started_at, started_at) > :window_start
            ORDER BY COALESCE(poll_started_at, started_at) ASC
            LIMIT :limit
        """, params)
        result = self.db.execute(query, params)
        return [{"id": row.id, "external_call_id": row.external_call_id} for row in result.fetchall()]

