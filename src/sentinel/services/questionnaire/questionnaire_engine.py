"""
Questionnaire Engine

Deterministic state machine over the six-question screener.
Computes the floor risk tier that the model can never undercut.

SAFETY-CRITICAL: The tier rule below is the hard lower bound for every
check-in. Changes require clinical review.

Branching:
- Question 2 answered "no" skips questions 3-5 (recorded as "no")
  and jumps straight to question 6.
- Going back from question 6 returns to question 5 when question 2 was
  answered "yes", otherwise to question 2.
"""

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.signals import QuestionnaireAnswers
from sentinel.services.questionnaire.questions import QuestionSpec, get_question

logger = get_logger(__name__)


# Question numbers by clinical meaning
PASSIVE_WISH = 1
IDEATION = 2
METHOD = 3
INTENT = 4
PLAN = 5
RECENT_ATTEMPT = 6


def floor_tier_for(answers: QuestionnaireAnswers) -> RiskTier:
    """
    Apply the screener tier rule, highest priority first.

    - Intent or plan -> CRISIS
    - Recent attempt -> HIGH_MONITORING
    - Method, ideation or passive wish -> MODERATE
    - Otherwise -> LOW
    """
    if answers.is_positive(INTENT) or answers.is_positive(PLAN):
        return RiskTier.CRISIS
    if answers.is_positive(RECENT_ATTEMPT):
        return RiskTier.HIGH_MONITORING
    if any(answers.is_positive(q) for q in (METHOD, IDEATION, PASSIVE_WISH)):
        return RiskTier.MODERATE
    return RiskTier.LOW


class QuestionnaireError(Exception):
    """Raised when an answer is submitted to a completed questionnaire."""


class QuestionnaireEngine:
    """
    In-memory screener state machine.

    Pure: no I/O and no side effects beyond its own answer map.

    Usage:
        engine = QuestionnaireEngine()
        while engine.submit_answer(ask(engine.current_question())):
            pass
        floor = engine.compute_floor_tier()
    """

    FIRST_QUESTION = PASSIVE_WISH
    LAST_QUESTION = RECENT_ATTEMPT
    SKIPPED_ON_NEGATIVE_IDEATION = (METHOD, INTENT, PLAN)

    def __init__(self) -> None:
        self._current = self.FIRST_QUESTION
        self._answers: dict[int, bool] = {}
        self._complete = False

    def reset(self) -> None:
        """Return to question 1 with no answers."""
        self._current = self.FIRST_QUESTION
        self._answers = {}
        self._complete = False

    @property
    def current_number(self) -> int:
        return self._current

    @property
    def is_complete(self) -> bool:
        return self._complete

    def current_question(self) -> QuestionSpec:
        """Question currently presented to the user."""
        return get_question(self._current)

    def submit_answer(self, answer: bool) -> bool:
        """
        Record an answer for the current question and advance.

        Args:
            answer: True for "yes"

        Returns:
            True if another question follows, False when complete

        Raises:
            QuestionnaireError: If the questionnaire is already complete
        """
        if self._complete:
            raise QuestionnaireError("Questionnaire already complete; call go_back() or reset()")

        self._answers[self._current] = answer

        if self._current == IDEATION and not answer:
            for skipped in self.SKIPPED_ON_NEGATIVE_IDEATION:
                self._answers[skipped] = False
            self._current = RECENT_ATTEMPT
            return True

        if self._current == self.LAST_QUESTION:
            self._complete = True
            logger.info(
                "Screener completed",
                positive_count=len(self.answers().positive_questions),
            )
            return False

        self._current += 1
        return True

    def go_back(self) -> None:
        """
        Step back one question, restoring the branch point.

        From a completed questionnaire this reopens question 6.
        """
        if self._complete:
            self._complete = False
            return

        if self._current == self.FIRST_QUESTION:
            return

        if self._current == RECENT_ATTEMPT:
            self._current = PLAN if self._answers.get(IDEATION) else IDEATION
        else:
            self._current -= 1

    def answers(self) -> QuestionnaireAnswers:
        """Snapshot of the answers; unanswered questions count as "no"."""
        return QuestionnaireAnswers(responses={
            number: self._answers.get(number, False)
            for number in range(self.FIRST_QUESTION, self.LAST_QUESTION + 1)
        })

    def compute_floor_tier(self) -> RiskTier:
        """Floor tier from the current answers."""
        return floor_tier_for(self.answers())
