"""Deterministic lexical scorer for practice-call transcripts."""

import re
from typing import Dict, Iterable, List, Optional

import structlog

from processor.config import settings
from processor.scoring.feedback import compose_feedback
from processor.scoring.rubric import EvaluationResult, ScoringError, clamp_score

logger = structlog.get_logger()

COURTEOUS_TERMS = [
    "please", "thank you", "thanks", "certainly", "absolutely", "appreciate",
    "welcome", "glad", "happy to", "assist", "of course",
]
CASUAL_TERMS = ["yeah", "yep", "nah", "nope", "whatever", "gonna", "wanna", "dunno"]
FILLER_TERMS = ["um", "uh", "er", "erm", "hmm", "you know", "i mean", "kind of", "sort of", "basically"]

LISTENING_CUES = [
    "you mentioned", "you said", "what you said", "you told me", "you explained",
    "from what i understand", "if i heard correctly", "let me make sure",
    "just to confirm", "confirm", "clarify", "you mean",
]
CONNECTION_TERMS = [
    "together", "we can", "let's", "thank you for calling", "thanks for calling",
    "your son", "your daughter", "how are you", "nice to", "great question",
]

EMPATHY_PHRASES = [
    "i understand", "i completely understand", "your concern", "i hear you",
    "i can see", "i can imagine", "that must be", "i appreciate", "thank you for your patience",
    "that sounds", "makes sense", "i know how", "sorry to hear", "your perspective",
]

SOLUTION_STEMS = [
    "solution", "solv", "resolv", "fix", "option", "alternativ", "recommend",
    "suggest", "propos", "schedul", "arrang", "address", "handl",
]
SOLUTION_PHRASES = ["next step", "follow up", "set up", "what if we"]

POLICY_STEMS = ["polic", "rule", "guideline", "procedure", "protocol", "standard"]
DOMAIN_TERMS = [
    "12 class", "ebbinghaus", "forgetting curve", "curriculum", "consumption",
    "learning momentum", "same teacher", "fixed schedule", "progress report", "research",
]

# Speaking pace band (words per minute) when a recording is available
PACE_BAND = (110, 170)
PACE_EXTREMES = (80, 200)

WORD_PATTERN = re.compile(r"[a-z0-9']+")


def normalize(transcript: str) -> str:
    """Lowercase and treat hyphens as spaces ("12-class" -> "12 class")."""
    return transcript.lower().replace("-", " ")


def tokenize(text: str) -> List[str]:
    return WORD_PATTERN.findall(text)


def phrase_present(text: str, phrase: str) -> bool:
    return re.search(r"\b" + re.escape(phrase) + r"\b", text) is not None


def count_phrases(text: str, phrases: Iterable[str]) -> int:
    """Number of distinct phrases that occur at least once."""
    return sum(1 for phrase in phrases if phrase_present(text, phrase))


def count_occurrences(text: str, phrases: Iterable[str]) -> int:
    """Total occurrences of all phrases."""
    return sum(len(re.findall(r"\b" + re.escape(phrase) + r"\b", text)) for phrase in phrases)


def count_stems(words: List[str], stems: Iterable[str]) -> int:
    """Number of distinct stems that start at least one word."""
    return sum(1 for stem in stems if any(word.startswith(stem) for word in words))


class HeuristicScorer:
    """Scores transcripts from keyword and phrase presence.

    Pure and deterministic: the same input always yields the same result.
    """

    def __init__(
        self,
        strength_threshold: Optional[int] = None,
        improvement_threshold: Optional[int] = None,
    ):
        self.strength_threshold = (
            strength_threshold if strength_threshold is not None else settings.STRENGTH_THRESHOLD
        )
        self.improvement_threshold = (
            improvement_threshold if improvement_threshold is not None else settings.IMPROVEMENT_THRESHOLD
        )

    def score(
        self,
        transcript: str,
        scenario: Optional[str] = None,
        audio_url: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> EvaluationResult:
        """Score a transcript on all five criteria.

        Args:
            transcript: Full call transcript
            scenario: Scenario title, used for scenario-specific adjustments
            audio_url: Recording URL; enables the speaking-pace signal
            duration_seconds: Call length, needed for the speaking-pace signal

        Returns:
            EvaluationResult with clamped 0-100 scores and composed feedback

        Raises:
            ScoringError: If the transcript is empty
        """
        if not transcript or not transcript.strip():
            raise ScoringError("Transcript is empty")

        raw = self.score_criteria(transcript, scenario, audio_url, duration_seconds)
        scores = {key: clamp_score(value) for key, value in raw.items()}

        report = compose_feedback(
            scores,
            scenario,
            transcript,
            self.strength_threshold,
            self.improvement_threshold,
        )

        result = EvaluationResult.from_scores(
            scores,
            feedback=report.text,
            strengths=report.strengths,
            improvements=report.improvements,
            source="heuristic",
        )

        logger.debug(
            "Heuristic evaluation",
            overall_score=result.overall_score,
            scenario=scenario,
            **scores,
        )
        return result

    def score_criteria(
        self,
        transcript: str,
        scenario: Optional[str] = None,
        audio_url: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> Dict[str, float]:
        """Raw (unclamped) per-criterion scores."""
        text = normalize(transcript)
        words = tokenize(text)

        scores = {
            "tone_of_voice": self._tone_of_voice(text, words, audio_url, duration_seconds),
            "building_rapport": self._building_rapport(text),
            "showing_empathy": self._showing_empathy(text),
            "handling_skills": self._handling_skills(text, words),
            "knowledge": self._knowledge(text, words),
        }

        title = (scenario or "").lower()
        if "low class consumption" in title:
            self._adjust_low_consumption(scores, text)
        if "4th call" in title:
            self._adjust_fourth_call(scores, text)

        return scores

    def _tone_of_voice(
        self,
        text: str,
        words: List[str],
        audio_url: Optional[str],
        duration_seconds: Optional[int],
    ) -> float:
        courteous = count_occurrences(text, COURTEOUS_TERMS)
        casual = sum(1 for word in words if word in CASUAL_TERMS)
        fillers = count_occurrences(text, FILLER_TERMS)

        # Fillers per 100 words
        filler_ratio = fillers * 100 / max(len(words), 1)

        score = 65.0
        score += min(25, courteous * 5)
        score -= min(25, casual * 5)
        score -= min(30, filler_ratio * 5)

        if audio_url and duration_seconds and duration_seconds > 0:
            score += self._pace_adjustment(len(words), duration_seconds)

        return score

    def _pace_adjustment(self, word_count: int, duration_seconds: int) -> float:
        words_per_minute = word_count / (duration_seconds / 60)
        if PACE_BAND[0] <= words_per_minute <= PACE_BAND[1]:
            return 5
        if words_per_minute < PACE_EXTREMES[0] or words_per_minute > PACE_EXTREMES[1]:
            return -10
        return 0

    def _building_rapport(self, text: str) -> float:
        listening = count_phrases(text, LISTENING_CUES)
        connection = count_phrases(text, CONNECTION_TERMS)
        return 45.0 + listening * 10 + connection * 8

    def _showing_empathy(self, text: str) -> float:
        return 50.0 + count_phrases(text, EMPATHY_PHRASES) * 12

    def _handling_skills(self, text: str, words: List[str]) -> float:
        solutions = count_stems(words, SOLUTION_STEMS) + count_phrases(text, SOLUTION_PHRASES)
        return 40.0 + min(50, solutions * 9)

    def _knowledge(self, text: str, words: List[str]) -> float:
        policy = count_stems(words, POLICY_STEMS)
        domain = count_phrases(text, DOMAIN_TERMS)
        return 45.0 + policy * 8 + domain * 10

    def _adjust_low_consumption(self, scores: Dict[str, float], text: str) -> None:
        if phrase_present(text, "ebbinghaus") or phrase_present(text, "forgetting curve"):
            scores["knowledge"] += 10
        if phrase_present(text, "12 class") or phrase_present(text, "consumption policy"):
            scores["knowledge"] += 10
            scores["handling_skills"] += 10

    def _adjust_fourth_call(self, scores: Dict[str, float], text: str) -> None:
        if phrase_present(text, "progress") or phrase_present(text, "improvement"):
            scores["showing_empathy"] += 10
        if phrase_present(text, "continue") or phrase_present(text, "keep going"):
            scores["handling_skills"] += 10
