"""
Screener Question Catalogue

The six fixed Columbia (C-SSRS) screener questions with their badges
and subtitles.

CLINICAL_VALIDATION_REQUIRED: Wording is taken from the validated
screener and must not be edited without clinical review.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class QuestionSpec:
    """A single screener question as presented to the user."""

    number: int
    badge: str
    text: str
    subtitle: str


SCREENER_QUESTIONS: tuple[QuestionSpec, ...] = (
    QuestionSpec(
        number=1,
        badge="C-SSRS PROTOCOL",
        text=(
            "In the past 24 hours, have you wished you were dead or wished you "
            "could go to sleep and not wake up?"
        ),
        subtitle="This includes any fleeting thoughts or passive wishes about not being here.",
    ),
    QuestionSpec(
        number=2,
        badge="C-SSRS PROTOCOL",
        text="In the past 24 hours, have you had any actual thoughts of killing yourself?",
        subtitle="This would include any thoughts you've had about ending your life.",
    ),
    QuestionSpec(
        number=3,
        badge="METHOD ASSESSMENT",
        text="Have you been thinking about how you might kill yourself?",
        subtitle="Describe any thoughts or plans you've had regarding specific methods...",
    ),
    QuestionSpec(
        number=4,
        badge="INTENT ASSESSMENT",
        text="Have you had these thoughts and had some intention of acting on them?",
        subtitle="Describe any thoughts regarding intent...",
    ),
    QuestionSpec(
        number=5,
        badge="PLAN ASSESSMENT",
        text=(
            "Have you started to work out or worked out the details of how to kill "
            "yourself? Do you intend to carry out this plan?"
        ),
        subtitle="Describe any details regarding the plan...",
    ),
    QuestionSpec(
        number=6,
        badge="BEHAVIOR ASSESSMENT",
        text=(
            "Have you done anything, started to do anything, or prepared to do "
            "anything to end your life?"
        ),
        subtitle="Describe any actions or preparations...",
    ),
)


def get_question(number: int) -> QuestionSpec:
    """Look up a question by its 1-based number."""
    if not 1 <= number <= len(SCREENER_QUESTIONS):
        raise ValueError(f"Unknown screener question: {number}")
    return SCREENER_QUESTIONS[number - 1]
