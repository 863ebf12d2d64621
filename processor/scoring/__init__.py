"""Rubric scoring for practice-call transcripts.

Five criteria, each 0-100 and weighted equally:

1. Tone of Voice
2. Building Rapport
3. Showing Empathy
4. Handling Skills
5. Knowledge
"""

from .rubric import CRITERIA, EvaluationResult, ScoringError
from .heuristic import HeuristicScorer
from .feedback import compose_feedback
from .scorer import RubricScorer

__all__ = [
    "CRITERIA",
    "EvaluationResult",
    "ScoringError",
    "HeuristicScorer",
    "compose_feedback",
    "RubricScorer",
]
