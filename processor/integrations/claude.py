"""Claude AI integration for qualitative practice-call scoring.

Claude proposes per-criterion scores and a short coaching narrative. Scores are
clamped and the feedback structure is composed locally, so the output shape is
identical to the heuristic scorer.
"""

import json
import re
from dataclasses import dataclass, field
from string import Template
from typing import Dict, Optional

import structlog
from anthropic import AsyncAnthropic, APIError

from processor.config import settings

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are an expert call evaluation specialist for a Class Mentor (CM) training program. "
    "Provide accurate, fair, and constructive evaluations based on the provided criteria. "
    "Always respond with valid JSON."
)

EVALUATION_PROMPT = """Analyze the following practice call transcript and score each criterion from 0 to 100.

SCENARIO: {scenario}
PARTICIPANT: {participant_name}
CALL DURATION: {duration} seconds
RECORDING AVAILABLE: {has_recording}

TRANSCRIPT:
{transcript}

CRITERIA (each weighted 20%):
1. TONE OF VOICE: professional and appropriate tone, clear communication, confidence, pace.
2. BUILDING RAPPORT: connection with the parent or student, active listening, personalization.
3. SHOWING EMPATHY: understanding concerns, acknowledging feelings, compassionate responses.
4. HANDLING SKILLS: problem resolution, objection handling, conflict management.
5. KNOWLEDGE: curriculum, company policies and procedures, accurate information.

Respond with JSON only:
{{
    "tone_of_voice_score": <0-100>,
    "building_rapport_score": <0-100>,
    "showing_empathy_score": <0-100>,
    "handling_skills_score": <0-100>,
    "knowledge_score": <0-100>,
    "coach_notes": "<2-4 sentences of specific, actionable coaching with examples from the transcript>"
}}
"""


def safe_template_substitute(template: str, **kwargs) -> str:
    """Substitute {name} placeholders without tripping on braces in transcripts.

    {{ and }} stay literal braces.
    """
    converted = template.replace("{{", "__DOUBLE_OPEN__").replace("}}", "__DOUBLE_CLOSE__")
    converted = re.sub(r"\{(\w+)\}", r"${\1}", converted)
    converted = converted.replace("__DOUBLE_OPEN__", "{").replace("__DOUBLE_CLOSE__", "}")
    return Template(converted).safe_substitute(**kwargs)


@dataclass
class CallScoringResult:
    """Claude's proposed scores for one call, before clamping."""

    scores: Dict[str, float] = field(default_factory=dict)
    coach_notes: str = ""
    raw_response: str = ""


class ClaudeClient:
    """Client for Claude AI call scoring."""

    SCORE_FIELDS = [
        "tone_of_voice_score",
        "building_rapport_score",
        "showing_empathy_score",
        "handling_skills_score",
        "knowledge_score",
    ]

    def __init__(self, api_key: Optional[str] = None):
        """Initialize Claude client with async support."""
        self.client = AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)
        self.model = settings.CLAUDE_MODEL
        self.max_tokens = settings.CLAUDE_MAX_TOKENS

    @staticmethod
    def is_configured() -> bool:
        """Whether an API key is available."""
        return bool(settings.ANTHROPIC_API_KEY)

    async def score_call(
        self,
        transcript: str,
        scenario: Optional[str] = None,
        participant_name: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        audio_url: Optional[str] = None,
    ) -> CallScoringResult:
        """Ask Claude to score a practice call.

        Args:
            transcript: Full call transcript
            scenario: Scenario title
            participant_name: Trainee display name
            duration_seconds: Call length
            audio_url: Recording URL, if one exists

        Returns:
            CallScoringResult with the five criterion scores

        Raises:
            ClaudeError: On API failure or a reply without usable scores
        """
        logger.info("Scoring practice call with Claude", scenario=scenario)

        prompt = safe_template_substitute(
            EVALUATION_PROMPT,
            transcript=transcript,
            scenario=scenario or "Not specified",
            participant_name=participant_name or "Unknown",
            duration=duration_seconds if duration_seconds is not None else "Unknown",
            has_recording="yes" if audio_url else "no",
        )

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.3,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as e:
            logger.error("Claude API error during call scoring", error=str(e))
            raise ClaudeError(f"Call scoring failed: {str(e)}") from e

        raw_response = response.content[0].text
        result = self._parse_scoring_response(raw_response)

        logger.info("Claude call scoring complete", **result.scores)
        return result

    def _parse_scoring_response(self, response: str) -> CallScoringResult:
        """Parse the scoring JSON; every score field must be numeric."""
        try:
            data = json.loads(self._extract_json(response))
            scores = {}
            for name in self.SCORE_FIELDS:
                value = data[name]
                if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                    raise ValueError(f"{name} is not numeric")
                scores[name[: -len("_score")]] = float(value)
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.warning("Failed to parse call scoring response", error=str(e))
            raise ClaudeError(f"Unparseable scoring response: {e}") from e

        return CallScoringResult(
            scores=scores,
            coach_notes=str(data.get("coach_notes") or ""),
            raw_response=response,
        )

    def _extract_json(self, text: str) -> str:
        """Extract a JSON object from a response that may contain other text."""
        start = text.find("{")
        end = text.rfind("}") + 1

        if start != -1 and end > start:
            return text[start:end]

        raise ValueError("No JSON found in response")


class ClaudeError(Exception):
    """Raised when Claude API calls fail."""

    pass
