"""Rule-based feedback composition.

The same scores always produce the same sections, in the same order, flagging
the same criteria. Only the optional coach notes come from a model.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from processor.scoring.rubric import CRITERIA, overall_from

EXCELLENT_TIER = 80
GOOD_TIER = 60

# criterion -> (strong, adequate, weak)
CRITERION_NOTES = {
    "tone_of_voice": (
        "Your tone was professional and courteous throughout the call.",
        "Your tone was generally professional; cut filler words and casual phrasing to sound more confident.",
        "Work on a steady, courteous tone. Avoid filler words and casual phrasing, and keep a calm pace.",
    ),
    "building_rapport": (
        "You built a genuine connection and showed you were listening.",
        "You connected with the parent; reflect back what they say more often to show active listening.",
        "Build rapport by using the parent's and student's names, confirming what you heard, and working on the problem together.",
    ),
    "showing_empathy": (
        "You acknowledged the parent's feelings and concerns with care.",
        "You showed some understanding; name the parent's concern explicitly before moving to solutions.",
        "Acknowledge the parent's feelings first (for example, \"I understand your concern\") before explaining policy.",
    ),
    "handling_skills": (
        "You handled objections well and offered concrete solutions.",
        "You addressed the main concern; propose specific options and agree on a next step.",
        "Focus on resolving the concern: offer concrete options, handle objections calmly and close with a clear next step.",
    ),
    "knowledge": (
        "You explained policy and curriculum accurately and with confidence.",
        "Your product knowledge was adequate; back your explanations with the policy and the reasoning behind it.",
        "Review the class policies and the learning research behind them so you can explain them with confidence.",
    ),
}


@dataclass
class FeedbackReport:
    """Composed feedback text plus the criteria it flagged."""

    text: str
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)


def assessment_tier(overall: int) -> str:
    """Heading line for the overall assessment."""
    if overall >= EXCELLENT_TIER:
        return "**Excellent Performance!** Your call demonstrated strong skills across the evaluation criteria."
    if overall >= GOOD_TIER:
        return "**Good Performance!** Your call showed solid competency with some areas for enhancement."
    return "**Development Opportunity** Your call shows promise, with several key areas to focus on for improvement."


def identify_strengths(scores: Dict[str, int], threshold: int) -> List[str]:
    return [label for key, label in CRITERIA if scores[key] >= threshold]


def identify_improvements(scores: Dict[str, int], threshold: int) -> List[str]:
    return [label for key, label in CRITERIA if scores[key] < threshold]


def scenario_notes(scenario: Optional[str], transcript: str) -> List[str]:
    """Notes keyed off recognised scenario titles."""
    title = (scenario or "").lower()
    text = transcript.lower().replace("-", " ")
    notes = []

    if "low class consumption" in title:
        if "ebbinghaus" in text or "forgetting curve" in text or "12 class" in text:
            notes.append("Great job referencing the 12-class policy and the learning research behind it.")
        else:
            notes.append(
                "Remember to explain the 12-class consumption policy and the Ebbinghaus forgetting curve research."
            )

    if "4th call" in title:
        if "progress" in text or "improvement" in text:
            notes.append("Good use of concrete progress evidence to reassure a returning parent.")
        else:
            notes.append(
                "On a fourth call, share specific progress the student has made and offer a progress review."
            )

    return notes


def compose_feedback(
    scores: Dict[str, int],
    scenario: Optional[str],
    transcript: str,
    strength_threshold: int,
    improvement_threshold: int,
    coach_notes: Optional[str] = None,
) -> FeedbackReport:
    """Compose structured feedback from clamped 0-100 scores.

    Sections, in order: assessment tier, strengths, improvement areas,
    per-criterion notes, scenario notes, coach notes (optional), next steps.
    """
    strengths = identify_strengths(scores, strength_threshold)
    improvements = identify_improvements(scores, improvement_threshold)

    sections = [assessment_tier(overall_from(scores))]

    if strengths:
        sections.append("**Strengths:** " + ", ".join(strengths))
    else:
        sections.append("**Strengths:** None of the criteria reached the strength level on this call yet.")

    if improvements:
        sections.append("**Areas for Improvement:** " + ", ".join(improvements))
    else:
        sections.append("**Areas for Improvement:** No criteria fell below the expected level.")

    lines = []
    for key, label in CRITERIA:
        strong, adequate, weak = CRITERION_NOTES[key]
        if scores[key] >= strength_threshold:
            note = strong
        elif scores[key] >= improvement_threshold:
            note = adequate
        else:
            note = weak
        lines.append(f"- **{label} ({scores[key]}/100):** {note}")
    sections.append("\n".join(lines))

    notes = scenario_notes(scenario, transcript)
    if notes:
        sections.append("**Scenario Notes:** " + " ".join(notes))

    if coach_notes and coach_notes.strip():
        sections.append("**Coach Notes:** " + coach_notes.strip())

    if improvements:
        focus = ", ".join(improvements)
        sections.append(f"**Next Steps:** Focus your next practice call on {focus}.")
    else:
        sections.append("**Next Steps:** Keep practicing to stay consistent across every criterion.")

    return FeedbackReport(
        text="\n\n".join(sections),
        strengths=strengths,
        improvements=improvements,
    )
