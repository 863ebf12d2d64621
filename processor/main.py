"""Main entry point for the processor service."""

import asyncio
import logging
import signal
import sys
from typing import List

import structlog

from processor.config import settings
from processor.database import SessionLocal
from processor.evaluator import EvaluationOrchestrator
from processor.integrations.ringg import RinggClient
from processor.recording_poller import PollRegistry
from processor.scheduler import Scheduler

# Configure stdlib logging level (required for structlog.stdlib.filter_by_level)
logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.LOG_FORMAT == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


class ProcessorService:
    """Runs the scheduler and owns the polls it launches."""

    def __init__(self):
        self.client = RinggClient()
        self.registry = PollRegistry(self.client, SessionLocal)  # Pass factory, not instance
        self.orchestrator = EvaluationOrchestrator(SessionLocal)
        self.scheduler = Scheduler(self.registry, self.orchestrator, SessionLocal)
        self.running = False
        self.tasks: List[asyncio.Task] = []

    def get_status(self) -> dict:
        return {"scheduler": self.scheduler.get_status()}

    async def start(self) -> None:
        """Start all processor components."""
        self.running = True
        logger.info("Starting processor service")

        if settings.SCHEDULER_ENABLED:
            self.tasks.append(
                asyncio.create_task(self.scheduler.run(), name="scheduler")
            )
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(
            "Processor service started",
            components=[t.get_name() for t in self.tasks],
        )

        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            logger.info("Tasks cancelled")

    async def stop(self) -> None:
        """Stop the scheduler, let active polls finish, then release the client."""
        logger.info("Stopping processor service", **self.registry.get_status())
        self.running = False

        await self.scheduler.stop()

        for task in self.tasks:
            if not task.done():
                task.cancel()

        await self.registry.wait_all()
        await self.client.close()

        logger.info("Processor service stopped")


async def main() -> None:
    """Main entry point."""
    service = ProcessorService()

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        await service.stop()
    except Exception as e:
        logger.error("Processor service error", error=str(e), exc_info=True)
        await service.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
