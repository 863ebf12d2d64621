"""Background polling for practice-call transcripts and recordings.

After a call is placed the provider needs a while to produce the transcript
and the recording. A RecordingPoller fetches snapshots with bounded,
growing waits and writes each newly available field to the practice call as
soon as it appears.

States: PENDING -> POLLING -> READY | PARTIAL | EXHAUSTED | NOT_FOUND
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from processor.call_store import PracticeCallStore
from processor.config import settings
from processor.database import SessionFactory, SessionLocal, get_db, utcnow
from processor.integrations.ringg import (
    CallSnapshot,
    RinggClient,
    RinggError,
    RinggNotFoundError,
)

logger = structlog.get_logger()


class PollState(str, Enum):
    PENDING = "PENDING"
    POLLING = "POLLING"
    READY = "READY"  # Transcript and recording both captured
    PARTIAL = "PARTIAL"  # Stopped early (error streak or record deleted)
    EXHAUSTED = "EXHAUSTED"  # Attempt budget spent
    NOT_FOUND = "NOT_FOUND"  # Provider does not know the call


@dataclass
class PollOutcome:
    """How a poll ended."""

    external_call_id: str
    practice_call_id: int
    state: PollState
    attempts: int
    has_transcript: bool = False
    has_recording: bool = False
    snapshot: Optional[CallSnapshot] = None  # Last successful fetch
    errors: int = 0


class RecordingPoller:
    """Polls one provider call until its recording data is complete.

    Attempts are strictly sequential. Waits use the injected coroutine
    (asyncio.sleep by default) so other polls and requests keep running.
    """

    def __init__(
        self,
        external_call_id: str,
        practice_call_id: int,
        client: RinggClient,
        session_factory: SessionFactory = SessionLocal,
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
        backoff_factor: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_consecutive_errors: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.external_call_id = external_call_id
        self.practice_call_id = practice_call_id
        self.client = client
        self.session_factory = session_factory
        self.max_attempts = max_attempts if max_attempts is not None else settings.POLL_MAX_ATTEMPTS
        self.initial_delay = initial_delay if initial_delay is not None else settings.POLL_INITIAL_DELAY
        self.backoff_factor = backoff_factor if backoff_factor is not None else settings.POLL_BACKOFF_FACTOR
        self.max_delay = max_delay if max_delay is not None else settings.POLL_MAX_DELAY
        self.max_consecutive_errors = (
            max_consecutive_errors
            if max_consecutive_errors is not None
            else settings.POLL_MAX_CONSECUTIVE_ERRORS
        )
        self.sleep = sleep

        self.state = PollState.PENDING
        self.attempts = 0
        self.errors = 0
        self.last_snapshot: Optional[CallSnapshot] = None
        self._written: Dict[str, Any] = {}
        self.logger = logger.bind(
            external_call_id=external_call_id,
            practice_call_id=practice_call_id,
        )

    def delays(self):
        """Waits between attempts: initial, then x factor, capped."""
        delay = self.initial_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            yield delay
            delay = min(delay * self.backoff_factor, self.max_delay)

    async def run(self) -> PollOutcome:
        """Poll until a terminal state is reached."""
        self.state = PollState.POLLING
        self.logger.info("Recording poll started", max_attempts=self.max_attempts)

        if not self._claim():
            self.logger.warning("Practice call missing, not polling")
            return self._finish(PollState.PARTIAL)

        waits = self.delays()
        consecutive_errors = 0

        while self.attempts < self.max_attempts:
            self.attempts += 1

            try:
                snapshot = await self.client.fetch_call_details(self.external_call_id)
                record_exists = self._persist(snapshot)
            except RinggNotFoundError:
                self.logger.info("Call not found, stopping poll", attempt=self.attempts)
                return self._finish(PollState.NOT_FOUND)
            except Exception as e:
                self.errors += 1
                consecutive_errors += 1
                self.logger.warning(
                    "Poll attempt failed",
                    attempt=self.attempts,
                    consecutive_errors=consecutive_errors,
                    error=str(e),
                    retryable=isinstance(e, RinggError),
                )
                if consecutive_errors >= self.max_consecutive_errors:
                    return self._finish(PollState.PARTIAL)
            else:
                consecutive_errors = 0
                self.last_snapshot = snapshot

                if not record_exists:
                    self.logger.warning("Practice call deleted mid-poll, stopping")
                    return self._finish(PollState.PARTIAL)

                if self.has_transcript and self.has_recording:
                    return self._finish(PollState.READY)

                if self.has_transcript:
                    self.logger.info("Transcript ready, recording still processing", attempt=self.attempts)

            if self.attempts < self.max_attempts:
                delay = next(waits)
                self.logger.debug("Waiting before next poll", delay_seconds=round(delay, 1))
                await self.sleep(delay)

        self.logger.info("Poll attempts exhausted", attempts=self.attempts)
        return self._finish(PollState.EXHAUSTED)

    @property
    def has_transcript(self) -> bool:
        """A transcript has been saved during this poll."""
        return "transcript" in self._written

    @property
    def has_recording(self) -> bool:
        return "audio_recording_url" in self._written

    def _claim(self) -> bool:
        """Store POLLING and the launch time. False if the call is gone."""
        try:
            with get_db(self.session_factory) as db:
                return PracticeCallStore(db).mark_poll_started(self.practice_call_id, utcnow())
        except Exception as e:
            self.logger.error("Failed to record poll start", error=str(e))
            return True

    def _persist(self, snapshot: CallSnapshot) -> bool:
        """Write fields that are new since the last write.

        Returns:
            False if the practice call no longer exists
        """
        fields = snapshot.to_record_fields()
        changed = {key: value for key, value in fields.items() if self._written.get(key) != value}

        with get_db(self.session_factory) as db:
            store = PracticeCallStore(db)
            if not changed:
                return store.exists(self.practice_call_id)
            exists = store.update_fields(self.practice_call_id, **changed)

        if exists:
            self._written.update(changed)
            self.logger.info("Saved recording fields", fields=sorted(changed))
        return exists

    def _finish(self, state: PollState) -> PollOutcome:
        self.state = state

        try:
            with get_db(self.session_factory) as db:
                PracticeCallStore(db).mark_poll_finished(self.practice_call_id, state.value, self.attempts)
        except Exception as e:
            self.logger.error("Failed to record poll result", state=state.value, error=str(e))

        outcome = PollOutcome(
            external_call_id=self.external_call_id,
            practice_call_id=self.practice_call_id,
            state=state,
            attempts=self.attempts,
            has_transcript=self.has_transcript,
            has_recording=self.has_recording,
            snapshot=self.last_snapshot,
            errors=self.errors,
        )
        self.logger.info(
            "Recording poll finished",
            state=state.value,
            attempts=self.attempts,
            has_transcript=outcome.has_transcript,
            has_recording=outcome.has_recording,
        )
        return outcome


class PollRegistry:
    """Launches detached polls, at most one active poll per external call ID.

    Holds a reference to each task until it finishes so fire-and-forget
    polls are not garbage collected.
    """

    def __init__(
        self,
        client: RinggClient,
        session_factory: SessionFactory = SessionLocal,
        **poller_options: Any,
    ):
        self.client = client
        self.session_factory = session_factory
        self.poller_options = poller_options
        self.active: Dict[str, asyncio.Task] = {}

    def is_active(self, external_call_id: str) -> bool:
        task = self.active.get(external_call_id)
        return task is not None and not task.done()

    def start(self, external_call_id: str, practice_call_id: int) -> Optional[asyncio.Task]:
        """Start polling in the background and return immediately.

        Must be called from a running event loop.

        Returns:
            The poll task, or None if a poll for this call is already active
        """
        if self.is_active(external_call_id):
            logger.info(
                "Recording poll already active",
                external_call_id=external_call_id,
                practice_call_id=practice_call_id,
            )
            return None

        poller = RecordingPoller(
            external_call_id,
            practice_call_id,
            client=self.client,
            session_factory=self.session_factory,
            **self.poller_options,
        )
        task = asyncio.create_task(poller.run(), name=f"poll-{external_call_id}")
        self.active[external_call_id] = task
        task.add_done_callback(lambda t: self._on_done(external_call_id, t))

        logger.info(
            "Started background recording poll",
            external_call_id=external_call_id,
            practice_call_id=practice_call_id,
        )
        return task

    def _on_done(self, external_call_id: str, task: asyncio.Task) -> None:
        if self.active.get(external_call_id) is task:
            del self.active[external_call_id]

        if task.cancelled():
            logger.info("Recording poll cancelled", external_call_id=external_call_id)
        elif task.exception() is not None:
            logger.error(
                "Background polling failed",
                external_call_id=external_call_id,
                error=str(task.exception()),
            )

    async def wait_all(self) -> None:
        """Wait for every active poll to finish."""
        if self.active:
            await asyncio.gather(*self.active.values(), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel active polls."""
        for task in list(self.active.values()):
            task.cancel()
        await self.wait_all()

    def get_status(self) -> dict:
        return {"active_polls": len(self.active)}


async def check_recording_status(client: RinggClient, external_call_id: str) -> CallSnapshot:
    """Single on-demand fetch for diagnostics. Writes nothing.

    Raises:
        RinggNotFoundError: Unknown call
        RinggError: Transient failure
    """
    snapshot = await client.fetch_call_details(external_call_id)
    logger.info(
        "Recording status checked",
        external_call_id=external_call_id,
        status=snapshot.status,
        has_transcript=snapshot.has_transcript,
        has_recording=snapshot.has_recording,
    )
    return snapshot
