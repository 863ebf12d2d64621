"""Scheduler for periodic poll recovery and evaluation."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from processor.call_store import PracticeCallStore
from processor.config import settings
from processor.database import SessionFactory, SessionLocal, get_db, utcnow
from processor.evaluator import EvaluationOrchestrator
from processor.recording_poller import PollRegistry

logger = structlog.get_logger()


class Scheduler:
    """Periodically resumes lost recording polls and evaluates pending calls."""

    def __init__(
        self,
        registry: PollRegistry,
        orchestrator: EvaluationOrchestrator,
        session_factory: SessionFactory = SessionLocal,
    ):
        """Initialize scheduler.

        Args:
            registry: Poll registry used to relaunch polls
            orchestrator: Evaluation orchestrator for auto-evaluation
            session_factory: Creates a session per check
        """
        self.registry = registry
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.running = False
        self.interval = settings.SCHEDULER_INTERVAL
        self.last_run: Optional[datetime] = None

    async def run(self) -> None:
        """Main scheduler loop."""
        self.running = True
        logger.info(
            "Scheduler started",
            interval=self.interval,
            auto_evaluate=settings.AUTO_EVALUATE_ENABLED,
        )

        while self.running:
            try:
                await self.check_for_work()
                self.last_run = datetime.now(timezone.utc)
            except Exception as e:
                logger.error("Scheduler error", error=str(e), exc_info=True)

            await asyncio.sleep(self.interval)

        logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Stop the scheduler."""
        self.running = False

    async def check_for_work(self) -> None:
        """Check for work that needs to be done."""
        logger.debug("Checking for work")

        # 1. Relaunch polls lost to a restart
        await self._resume_unfinished_polls()

        # 2. Score calls whose transcript arrived but were never evaluated
        if settings.AUTO_EVALUATE_ENABLED:
            await self._evaluate_pending_calls()

    async def _resume_unfinished_polls(self) -> int:
        """Start polls for calls whose poll never recorded a final state.

        Only polls launched longer ago than the normal poll lifetime are
        considered, so a poll running in another process is not duplicated.
        """
        now = utcnow()
        stale_before = now - timedelta(minutes=settings.POLL_RECOVERY_AFTER_MINUTES)
        window_start = now - timedelta(hours=settings.POLL_RECOVERY_WINDOW_HOURS)

        with get_db(self.session_factory) as db:
            rows = PracticeCallStore(db).list_unfinished_polls(stale_before, window_start)

        resumed = 0
        for row in rows:
            if self.registry.start(row["external_call_id"], row["id"]) is not None:
                resumed += 1
                logger.info(
                    "Resumed recording poll",
                    practice_call_id=row["id"],
                    external_call_id=row["external_call_id"],
                )
        return resumed

    async def _evaluate_pending_calls(self) -> None:
        call_ids = self.orchestrator.pending_call_ids(limit=settings.AUTO_EVALUATE_BATCH_SIZE)
        if not call_ids:
            return

        logger.info("Auto-evaluating pending calls", count=len(call_ids))
        await self.orchestrator.batch_evaluate(call_ids)

    def get_status(self) -> dict:
        """Get scheduler status."""
        return {
            "running": self.running,
            "interval": self.interval,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            **self.registry.get_status(),
        }
