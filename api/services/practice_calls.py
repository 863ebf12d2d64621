"""Practice call engine shared by the API endpoints.

Owns one provider client, one poll registry and one evaluation orchestrator
for the lifetime of the app. Endpoints receive it through get_engine.
"""

from typing import Dict, List, Optional

import structlog
from fastapi import Request

from api.config.database import SessionLocal
from processor.database import SessionFactory
from processor.evaluator import EvaluationOrchestrator
from processor.integrations.ringg import RinggClient
from processor.recording_poller import PollRegistry
from processor.scoring.feedback import identify_improvements, identify_strengths
from processor.scoring.rubric import CRITERION_KEYS

logger = structlog.get_logger()


class PracticeCallEngine:
    """Bundles the async collaborators behind the practice call endpoints."""

    def __init__(
        self,
        client: Optional[RinggClient] = None,
        registry: Optional[PollRegistry] = None,
        orchestrator: Optional[EvaluationOrchestrator] = None,
        session_factory: SessionFactory = SessionLocal,
    ):
        self.client = client or RinggClient()
        self.registry = registry or PollRegistry(self.client, session_factory)
        self.orchestrator = orchestrator or EvaluationOrchestrator(session_factory)

    def start_polling(self, external_call_id: str, practice_call_id: int) -> bool:
        """Launch a detached poll. Returns False if one is already running."""
        return self.registry.start(external_call_id, practice_call_id) is not None

    async def close(self) -> None:
        await self.registry.shutdown()
        await self.client.close()


def stored_evaluation_lists(call, strength_threshold: int, improvement_threshold: int) -> Dict[str, List[str]]:
    """Rebuild strengths and improvements from a call's stored sub-scores."""
    scores = {key: getattr(call, f"{key}_score") or 0 for key in CRITERION_KEYS}
    return {
        "strengths": identify_strengths(scores, strength_threshold),
        "improvements": identify_improvements(scores, improvement_threshold),
    }


def get_engine(request: Request) -> PracticeCallEngine:
    """Dependency returning the app-wide engine created at startup."""
    return request.app.state.engine
