"""Screener questionnaire services."""

from sentinel.services.questionnaire.questionnaire_engine import (
    QuestionnaireEngine,
    QuestionnaireError,
    floor_tier_for,
)
from sentinel.services.questionnaire.questions import QuestionSpec, SCREENER_QUESTIONS

__all__ = [
    "QuestionnaireEngine",
    "QuestionnaireError",
    "floor_tier_for",
    "QuestionSpec",
    "SCREENER_QUESTIONS",
]
