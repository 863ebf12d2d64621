"""Tests for the heuristic rubric scorer."""

import pytest

from conftest import SAMPLE_TRANSCRIPT
from processor.scoring import HeuristicScorer, ScoringError


@pytest.fixture
def scorer():
    return HeuristicScorer(strength_threshold=70, improvement_threshold=60)


def test_empathy_and_knowledge_are_strengths(scorer):
    result = scorer.score(SAMPLE_TRANSCRIPT)

    assert result.showing_empathy_score == 74
    assert result.knowledge_score == 83
    assert result.showing_empathy_score >= 70
    assert result.knowledge_score >= 70
    assert "Showing Empathy" in result.strengths
    assert "Knowledge" in result.strengths
    assert "**Strengths:** Showing Empathy, Knowledge" in result.feedback
    assert result.source == "heuristic"


def test_overall_is_mean_of_criteria(scorer):
    result = scorer.score(SAMPLE_TRANSCRIPT)

    expected = round(sum(result.scores.values()) / 5)
    assert result.overall_score == expected
    assert all(0 <= value <= 100 for value in result.scores.values())


def test_scoring_is_deterministic(scorer):
    first = scorer.score(SAMPLE_TRANSCRIPT, scenario="Low Class Consumption")
    second = scorer.score(SAMPLE_TRANSCRIPT, scenario="Low Class Consumption")

    assert first == second


@pytest.mark.parametrize("transcript", ["", "   \n\t", None])
def test_empty_transcript_rejected(scorer, transcript):
    with pytest.raises(ScoringError):
        scorer.score(transcript)


def test_low_class_consumption_rewards_policy_explanation(scorer):
    plain = scorer.score_criteria(SAMPLE_TRANSCRIPT)
    adjusted = scorer.score_criteria(SAMPLE_TRANSCRIPT, scenario="Parent Call - Low Class Consumption")

    # Ebbinghaus plus the 12-class policy
    assert adjusted["knowledge"] == plain["knowledge"] + 20
    assert adjusted["handling_skills"] == plain["handling_skills"] + 10
    assert adjusted["showing_empathy"] == plain["showing_empathy"]


def test_fourth_call_rewards_progress_and_continuation(scorer):
    transcript = "Your daughter has made real progress. I recommend we continue with the same plan."
    plain = scorer.score_criteria(transcript)
    adjusted = scorer.score_criteria(transcript, scenario="4th Call Follow-up")

    assert adjusted["showing_empathy"] == plain["showing_empathy"] + 10
    assert adjusted["handling_skills"] == plain["handling_skills"] + 10


def test_casual_language_and_fillers_lower_tone(scorer):
    polished = scorer.score_criteria("Thank you for calling, I am happy to assist you with the schedule.")
    sloppy = scorer.score_criteria("Yeah um so uh whatever, we're gonna like, um, see.")

    assert polished["tone_of_voice"] > 65
    assert sloppy["tone_of_voice"] < 65


def test_speaking_pace_only_counts_with_recording(scorer):
    # 18 words
    baseline = scorer.score_criteria(SAMPLE_TRANSCRIPT)
    no_audio = scorer.score_criteria(SAMPLE_TRANSCRIPT, duration_seconds=8)
    steady = scorer.score_criteria(SAMPLE_TRANSCRIPT, audio_url="https://cdn.test/a.mp3", duration_seconds=8)
    slow = scorer.score_criteria(SAMPLE_TRANSCRIPT, audio_url="https://cdn.test/a.mp3", duration_seconds=60)

    assert no_audio["tone_of_voice"] == baseline["tone_of_voice"]
    assert steady["tone_of_voice"] == baseline["tone_of_voice"] + 5
    assert slow["tone_of_voice"] == baseline["tone_of_voice"] - 10


def test_scores_are_clamped(scorer):
    transcript = " ".join([
        "I understand. I completely understand. I hear you. I can see that.",
        "I can imagine. That must be hard. I appreciate it. That sounds difficult.",
        "That makes sense. I know how it feels. Sorry to hear. Your perspective matters.",
        "Your concern is valid. Thank you for your patience.",
    ])

    result = scorer.score(transcript)

    assert scorer.score_criteria(transcript)["showing_empathy"] > 100
    assert result.showing_empathy_score == 100


def test_weak_call_lists_improvements(scorer):
    result = scorer.score("Okay. Bye.")

    assert result.strengths == []
    assert "Handling Skills" in result.improvements
    assert "Development Opportunity" in result.feedback


def test_zero_thresholds_are_honoured():
    scorer = HeuristicScorer(strength_threshold=0, improvement_threshold=0)

    result = scorer.score(SAMPLE_TRANSCRIPT)

    assert scorer.strength_threshold == 0
    assert scorer.improvement_threshold == 0
    assert result.strengths == [
        "Tone of Voice",
        "Building Rapport",
        "Showing Empathy",
        "Handling Skills",
        "Knowledge",
    ]
    assert result.improvements == []
