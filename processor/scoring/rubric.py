"""Rubric definition and the evaluation result shared by all scoring paths."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

# (column key, display label), in feedback order
CRITERIA = [
    ("tone_of_voice", "Tone of Voice"),
    ("building_rapport", "Building Rapport"),
    ("showing_empathy", "Showing Empathy"),
    ("handling_skills", "Handling Skills"),
    ("knowledge", "Knowledge"),
]

CRITERION_KEYS = [key for key, _ in CRITERIA]
CRITERION_LABELS = dict(CRITERIA)

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: float) -> int:
    """Round and clamp a raw score into the 0-100 range."""
    return int(max(MIN_SCORE, min(MAX_SCORE, round(value))))


def overall_from(scores: Dict[str, int]) -> int:
    """Unweighted mean of the five criteria, each contributing 20%."""
    return int(round(sum(scores[key] for key in CRITERION_KEYS) / len(CRITERION_KEYS)))


@dataclass
class EvaluationResult:
    """Scores and feedback for one practice call.

    Sub-scores are 0-100. overall_score is always the rounded mean of the five.
    """

    tone_of_voice_score: int
    building_rapport_score: int
    showing_empathy_score: int
    handling_skills_score: int
    knowledge_score: int
    overall_score: int
    feedback: str
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    source: str = "heuristic"
    evaluated_at: Optional[datetime] = None

    @property
    def scores(self) -> Dict[str, int]:
        """Sub-scores keyed by criterion."""
        return {key: getattr(self, f"{key}_score") for key in CRITERION_KEYS}

    def to_record_fields(self) -> Dict[str, object]:
        """Flatten onto practice_calls evaluation columns."""
        fields: Dict[str, object] = {f"{key}_score": value for key, value in self.scores.items()}
        fields["overall_score"] = self.overall_score
        fields["feedback"] = self.feedback
        fields["evaluation_source"] = self.source
        return fields

    @classmethod
    def from_scores(
        cls,
        raw_scores: Dict[str, float],
        feedback: str,
        strengths: Optional[List[str]] = None,
        improvements: Optional[List[str]] = None,
        source: str = "heuristic",
    ) -> "EvaluationResult":
        """Clamp raw per-criterion scores and derive the overall score."""
        scores = {key: clamp_score(raw_scores.get(key, 0)) for key in CRITERION_KEYS}
        return cls(
            **{f"{key}_score": value for key, value in scores.items()},
            overall_score=overall_from(scores),
            feedback=feedback,
            strengths=list(strengths or []),
            improvements=list(improvements or []),
            source=source,
        )


class ScoringError(Exception):
    """Raised when a transcript cannot be scored."""

    pass
