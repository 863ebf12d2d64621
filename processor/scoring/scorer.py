"""Rubric scorer choosing between Claude and the heuristic path."""

from typing import Optional

import structlog

from processor.config import settings
from processor.integrations.claude import ClaudeClient, ClaudeError
from processor.scoring.feedback import compose_feedback
from processor.scoring.heuristic import HeuristicScorer
from processor.scoring.rubric import EvaluationResult, ScoringError, clamp_score

logger = structlog.get_logger()


class RubricScorer:
    """Scores transcripts, preferring Claude when enabled.

    Claude failures of any kind fall back to the heuristic scorer, so callers
    always get an EvaluationResult of the same shape.
    """

    def __init__(
        self,
        claude: Optional[ClaudeClient] = None,
        heuristic: Optional[HeuristicScorer] = None,
        use_claude: Optional[bool] = None,
    ):
        self.heuristic = heuristic or HeuristicScorer()
        if use_claude is None:
            use_claude = settings.SCORING_USE_CLAUDE and ClaudeClient.is_configured()
        if use_claude and claude is None:
            claude = ClaudeClient()
        self.claude = claude if use_claude else None

    async def score(
        self,
        transcript: str,
        scenario: Optional[str] = None,
        audio_url: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        participant_name: Optional[str] = None,
    ) -> EvaluationResult:
        """Score a transcript.

        Raises:
            ScoringError: If the transcript is empty or the heuristic path fails
        """
        if not transcript or not transcript.strip():
            raise ScoringError("Transcript is empty")

        if self.claude is not None:
            try:
                return await self._score_with_claude(
                    transcript, scenario, audio_url, duration_seconds, participant_name
                )
            except ClaudeError as e:
                logger.warning("Claude scoring failed, using heuristic scorer", error=str(e))
            except Exception as e:
                logger.error(
                    "Unexpected Claude scoring error, using heuristic scorer",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return self.heuristic.score(
            transcript,
            scenario=scenario,
            audio_url=audio_url,
            duration_seconds=duration_seconds,
        )

    async def _score_with_claude(
        self,
        transcript: str,
        scenario: Optional[str],
        audio_url: Optional[str],
        duration_seconds: Optional[int],
        participant_name: Optional[str],
    ) -> EvaluationResult:
        proposal = await self.claude.score_call(
            transcript,
            scenario=scenario,
            participant_name=participant_name,
            duration_seconds=duration_seconds,
            audio_url=audio_url,
        )
        scores = {key: clamp_score(value) for key, value in proposal.scores.items()}

        report = compose_feedback(
            scores,
            scenario,
            transcript,
            self.heuristic.strength_threshold,
            self.heuristic.improvement_threshold,
            coach_notes=proposal.coach_notes,
        )

        return EvaluationResult.from_scores(
            scores,
            feedback=report.text,
            strengths=report.strengths,
            improvements=report.improvements,
            source="claude",
        )
