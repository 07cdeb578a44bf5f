"""
Fallback Generator

Deterministic, rule-based substitute for every model task.

SAFETY-CRITICAL: This is what the engine shows when the model is
unavailable, slow, or produces output no parser strategy can decode.
The risk rule here must never be more permissive than the
questionnaire floor.

ARCHITECTURE:
- Pure and offline: no I/O, no clock reads except through arguments
- Every task returns a ModelTaskResult of the same shape the model path
  returns, with provenance FALLBACK
- CLINICAL_VALIDATION_REQUIRED: rule weights and template text
"""

from datetime import datetime
from typing import Optional

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.clinical_enums import (
    PrimaryDriver,
    RecipientType,
    ResultProvenance,
    TaskType,
)
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.longitudinal_state import utc_now
from sentinel.domain.models.signals import (
    HealthDeviations,
    HealthSnapshot,
    QuestionnaireAnswers,
    SessionSignals,
)
from sentinel.domain.models.task_results import ModelTaskResult, RiskTriagePayload
from sentinel.infrastructure.metrics import track_fallback
from sentinel.services.questionnaire.questionnaire_engine import floor_tier_for

logger = get_logger(__name__)


OFFLINE_EXPLANATION = (
    "Unable to generate explanation (AI model offline). "
    "Risk level is based on your most recent check-in protocol."
)


class FallbackGenerator:
    """
    Rule-based results for all six tasks.

    Usage:
        payload = fallback_generator.risk_triage(signals)
        order = fallback_generator.rerank(PrimaryDriver.SLEEP)
    """

    CONFIDENCE = 0.5

    # Highest-priority positive question supplies the rationale lead
    QUESTION_REASONS: tuple[tuple[int, str], ...] = (
        (4, "Active suicidal intent reported - immediate safety protocol required"),
        (5, "Specific suicide plan disclosed - crisis intervention needed"),
        (6, "Recent suicide attempt indicates elevated ongoing risk"),
        (3, "Suicidal ideation with method consideration present"),
        (2, "Active suicidal thoughts reported"),
        (1, "Passive death wish indicated"),
    )

    STABLE_REASON = "No acute risk indicators. Veteran appears stable with consistent baseline metrics."

    QUESTION_WEIGHTS: dict[int, float] = {
        5: 4.0,
        4: 3.5,
        6: 2.5,
        3: 2.0,
        2: 1.5,
        1: 1.0,
    }

    ACTIONS: dict[RiskTier, str] = {
        RiskTier.CRISIS: "Contact 988 Veterans Crisis Line immediately. Do not leave veteran alone.",
        RiskTier.HIGH_MONITORING: (
            "Activate Safety Plan Item 4 (Professional Contact). Schedule same-day follow-up."
        ),
        RiskTier.MODERATE: "Review Safety Plan. Consider connecting with a trusted support contact.",
        RiskTier.LOW: "Continue daily check-ins. Maintain current wellness routines.",
    }
    HRV_ACTION = "Practice 4-7-8 breathing exercise. Consider reaching out to a support contact today."
    SLEEP_ACTION = (
        "Review sleep hygiene. Limit screen time before bed. Contact support if symptoms persist."
    )

    # Safety plan order by primary driver (section numbers 1-7)
    RERANK_ORDERS: dict[PrimaryDriver, list[int]] = {
        PrimaryDriver.SLEEP: [2, 7, 3, 4, 6, 5, 1],
        PrimaryDriver.HRV: [2, 7, 3, 4, 6, 5, 1],
        PrimaryDriver.ACTIVITY: [3, 4, 2, 7, 6, 5, 1],
        PrimaryDriver.MOOD: [7, 2, 3, 4, 6, 5, 1],
        PrimaryDriver.CSSRS: [5, 6, 4, 7, 2, 3, 1],
        PrimaryDriver.COMBINED: [6, 5, 4, 2, 3, 7, 1],
    }

    SITUATIONS: dict[RiskTier, str] = {
        RiskTier.CRISIS: "Patient {name} is presenting with CRISIS-level risk indicators requiring immediate intervention.",
        RiskTier.HIGH_MONITORING: "Patient {name} is presenting with HIGH MONITORING risk indicators requiring close follow-up.",
        RiskTier.MODERATE: "Patient {name} is presenting with ELEVATED risk indicators warranting clinical attention.",
        RiskTier.LOW: "Patient {name} completed routine wellness check-in with stable indicators.",
    }

    ASSESSMENTS: dict[RiskTier, str] = {
        RiskTier.CRISIS: (
            "Clinical assessment indicates immediate safety concerns. "
            "Active suicidal ideation with intent or plan reported."
        ),
        RiskTier.HIGH_MONITORING: (
            "Clinical assessment indicates significant risk factors. "
            "Enhanced monitoring and follow-up recommended."
        ),
        RiskTier.MODERATE: (
            "Clinical assessment indicates mild-to-moderate distress. "
            "Patient may benefit from supportive intervention."
        ),
        RiskTier.LOW: (
            "Clinical assessment indicates stable mental health status. "
            "No acute concerns identified."
        ),
    }

    RECOMMENDATIONS: dict[RiskTier, str] = {
        RiskTier.CRISIS: (
            "Requesting URGENT follow-up with {recipient}. "
            "Patient has been advised to contact 988 Veterans Crisis Line."
        ),
        RiskTier.HIGH_MONITORING: (
            "Requesting priority follow-up with {recipient} within 24-48 hours "
            "to reassess risk and adjust care plan."
        ),
        RiskTier.MODERATE: (
            "Requesting routine follow-up with {recipient} at next available "
            "appointment to discuss current stressors."
        ),
        RiskTier.LOW: "No immediate action required. Recommend continued routine monitoring.",
    }

    # -------------------------------------------------------------------------
    # Risk triage
    # -------------------------------------------------------------------------

    def risk_tier(self, answers: QuestionnaireAnswers, deviations: HealthDeviations) -> RiskTier:
        """
        Rule-based tier.

        Questionnaire rule first, then biometrics: any significant
        deviation or two concerning deviations is Moderate.
        """
        floor = floor_tier_for(answers)
        if floor > RiskTier.LOW:
            return floor
        if deviations.has_significant_deviation or deviations.concerning_deviation_count >= 2:
            return RiskTier.MODERATE
        return RiskTier.LOW

    def risk_triage(self, signals: SessionSignals) -> RiskTriagePayload:
        """
        Build a complete triage payload from questionnaire and biometrics.

        Args:
            signals: Session input

        Returns:
            RiskTriagePayload with confidence 0.5
        """
        answers = signals.answers
        deviations = signals.deviations
        tier = self.risk_tier(answers, deviations)
        key_deviations = deviations.concerning_sources()

        return RiskTriagePayload(
            tier=tier,
            rationale=self._rationale(answers, deviations),
            confidence=self.CONFIDENCE,
            risk_score=self.risk_score(answers, deviations),
            key_deviations=key_deviations,
            action=self._action(tier, key_deviations),
        )

    def risk_score(self, answers: QuestionnaireAnswers, deviations: HealthDeviations) -> float:
        """0-10 score weighted by questionnaire answers, then deviations."""
        score = sum(w for q, w in self.QUESTION_WEIGHTS.items() if answers.is_positive(q))

        score += self._deviation_weight(deviations.hrv_z, significant=1.0, concerning=0.5)
        score += self._deviation_weight(deviations.sleep_z, significant=0.75, concerning=0.5)
        score += self._deviation_weight(deviations.steps_z, significant=0.5, concerning=0.0)

        return min(10.0, max(0.0, score))

    @staticmethod
    def _deviation_weight(z: Optional[float], significant: float, concerning: float) -> float:
        if z is None:
            return 0.0
        if z < HealthDeviations.SIGNIFICANT_THRESHOLD:
            return significant
        if z < HealthDeviations.CONCERNING_THRESHOLD:
            return concerning
        return 0.0

    def _rationale(self, answers: QuestionnaireAnswers, deviations: HealthDeviations) -> str:
        reasons: list[str] = []

        for question, reason in self.QUESTION_REASONS:
            if answers.is_positive(question):
                reasons.append(reason)
                break

        threshold = HealthDeviations.CONCERNING_THRESHOLD
        if deviations.hrv_z is not None and deviations.hrv_z < threshold:
            reasons.append(
                f"HRV shows autonomic dysregulation (z={deviations.hrv_z:.1f}), suggesting elevated stress"
            )
        if deviations.sleep_z is not None and deviations.sleep_z < threshold:
            reasons.append(f"Sleep disruption detected (z={deviations.sleep_z:.1f}), a known risk factor")
        if deviations.steps_z is not None and deviations.steps_z < threshold:
            reasons.append("Decreased activity levels may indicate withdrawal or anhedonia")

        if not reasons:
            return self.STABLE_REASON
        return ". ".join(reasons) + "."

    def _action(self, tier: RiskTier, key_deviations: list[str]) -> str:
        if tier == RiskTier.MODERATE:
            if "hrv" in key_deviations:
                return self.HRV_ACTION
            if "sleep" in key_deviations:
                return self.SLEEP_ACTION
        return self.ACTIONS[tier]

    # -------------------------------------------------------------------------
    # Safety plan reranking
    # -------------------------------------------------------------------------

    def rerank(self, driver: Optional[PrimaryDriver]) -> list[int]:
        """Static section order for the driver; None means combined."""
        return list(self.RERANK_ORDERS[driver or PrimaryDriver.COMBINED])

    # -------------------------------------------------------------------------
    # SBAR report
    # -------------------------------------------------------------------------

    def report(
        self,
        tier: RiskTier,
        answers: Optional[QuestionnaireAnswers] = None,
        health: Optional[HealthSnapshot] = None,
        recipient: RecipientType = RecipientType.PRIMARY_CARE,
        patient_name: str = "Veteran",
        now: Optional[datetime] = None,
    ) -> str:
        """
        Fixed SBAR handoff report.

        Args:
            tier: Final risk tier
            answers: Screener answers, if available
            health: Biometric snapshot, if available
            recipient: Report audience
            patient_name: Name used in the Situation line
            now: Report timestamp

        Returns:
            Four-section SBAR text
        """
        now = now or utc_now()

        background: list[str] = [f"Check-in completed: {now.strftime('%b %d, %Y %H:%M')}"]
        if answers is not None:
            background.extend(f"• {finding}" for finding in answers.findings())
        if health is not None and health.has_data:
            background.extend(f"• {line}" for line in health.report_lines())

        sections = [
            ("SITUATION", self.SITUATIONS[tier].format(name=patient_name)),
            ("BACKGROUND", "\n".join(background)),
            ("ASSESSMENT", self.ASSESSMENTS[tier]),
            ("RECOMMENDATION", self.RECOMMENDATIONS[tier].format(recipient=recipient.value)),
        ]
        return "\n\n".join(f"{title}:\n{body}" for title, body in sections)

    # -------------------------------------------------------------------------
    # Narrative tasks
    # -------------------------------------------------------------------------

    def compression(self, previous_narrative: str) -> str:
        """Keep the previous narrative unchanged."""
        return previous_narrative

    def context_ingestion(self, previous_narrative: str) -> str:
        """Keep the previous narrative unchanged."""
        return previous_narrative

    def explanation(self, tier: RiskTier, source: str, model_attempted: bool = True) -> str:
        """Tier-and-source sentence, or the offline message when the model never ran."""
        if not model_attempted:
            return OFFLINE_EXPLANATION
        return (
            f"Your current risk level is {tier.display_name}, "
            f"based on your most recent {source} data."
        )

    # -------------------------------------------------------------------------
    # Result wrapping
    # -------------------------------------------------------------------------

    def wrap(
        self,
        task: TaskType,
        *,
        failure_reason: str,
        model_attempted: bool = False,
        raw_text: str = "",
        latency_ms: float = 0.0,
        triage: Optional[RiskTriagePayload] = None,
        permutation: Optional[list[int]] = None,
        narrative: Optional[str] = None,
    ) -> ModelTaskResult:
        """
        Package a fallback payload as a task result.

        Args:
            task: Task type
            failure_reason: Why the model result was not used
            model_attempted: Whether the backend produced output
            raw_text: Unparseable model output, if any

        Returns:
            ModelTaskResult with provenance FALLBACK
        """
        track_fallback(task.value, failure_reason)
        logger.warning(
            "Fallback result used",
            task=task.value,
            reason=failure_reason,
            model_attempted=model_attempted,
        )
        return ModelTaskResult(
            task=task,
            provenance=ResultProvenance.FALLBACK,
            raw_text=raw_text,
            latency_ms=latency_ms,
            triage=triage,
            permutation=permutation,
            narrative=narrative,
            model_attempted=model_attempted,
            failure_reason=failure_reason,
        )


# Global instance
fallback_generator = FallbackGenerator()
