"""
Longitudinal State Store

Compressed cross-session clinical memory (Longitudinal Clinical State
Compression). Lets a small on-device model reason about trends without
feeding it weeks of raw logs.

ARCHITECTURE:
- Trajectory and primary driver are deterministic rules, never model output
- The narrative is whatever the caller supplies; on compression failure
  the caller passes the previous narrative
- State older than the staleness window is reset on load

PRIVACY: The narrative is clinical free text and is never logged.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from sentinel.config.logging_config import get_logger
from sentinel.config.settings import LongitudinalSettings
from sentinel.domain.enums.clinical_enums import PrimaryDriver, Trajectory
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.longitudinal_state import LongitudinalState, utc_now
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.signals import HealthDeviations, QuestionnaireAnswers, SessionSignals
from sentinel.infrastructure.storage import (
    LONGITUDINAL_STATE_KEY,
    JsonDocumentStore,
    LongitudinalStateRecord,
)

logger = get_logger(__name__)


NO_PRIOR_HISTORY = "No prior history."

_CSSRS_DRIVER_QUESTIONS = (2, 3, 4, 5, 6)


def compute_trajectory(previous: Optional[RiskTier], new: RiskTier) -> Trajectory:
    """
    Direction of change between consecutive tiers.

    Higher tier is worsening, lower is improving, equal (or no previous
    tier) is stable.
    """
    if previous is None or new == previous:
        return Trajectory.STABLE
    return Trajectory.WORSENING if new > previous else Trajectory.IMPROVING


def identify_primary_driver(answers: QuestionnaireAnswers, deviations: HealthDeviations) -> PrimaryDriver:
    """
    Deterministic primary risk driver.

    Priority:
    1. Any of Q2-Q6 positive: cssrs
    2. First of sleep, hrv, activity with z < -2.0
    3. First of sleep, hrv, activity with z < -1.5
    4. Q1 positive: mood
    5. Otherwise: combined
    """
    if any(answers.is_positive(q) for q in _CSSRS_DRIVER_QUESTIONS):
        return PrimaryDriver.CSSRS

    for sources in (deviations.significant_sources(), deviations.concerning_sources()):
        if sources:
            return PrimaryDriver(sources[0])

    if answers.is_positive(1):
        return PrimaryDriver.MOOD

    return PrimaryDriver.COMBINED


def format_for_prompt(state: Optional[LongitudinalState]) -> str:
    """Compact history block for prompts."""
    if state is None:
        return NO_PRIOR_HISTORY

    lines: list[str] = []
    if state.clinical_narrative.strip():
        lines.append(f"CLINICAL NARRATIVE: {state.clinical_narrative.strip()}")

    lines.append(f"- Trajectory: {state.trajectory.value.upper()}")
    if state.primary_driver is not None:
        lines.append(f"- Primary Driver: {state.primary_driver.value}")
    if state.last_risk_tier is not None:
        lines.append(f"- Last Risk: {state.last_risk_tier.display_name}")
    lines.append(f"- Check-ins: {state.check_in_count}")
    if state.recent_crisis_count > 0:
        lines.append(f"- Recent Crises: {state.recent_crisis_count}")
    if state.days_since_last_crisis is not None:
        lines.append(f"- Days Since Crisis: {state.days_since_last_crisis}")

    return "\n".join(lines)


def risk_modifiers(
    state: Optional[LongitudinalState],
    settings: Optional[LongitudinalSettings] = None,
) -> tuple[bool, Optional[str]]:
    """
    Whether longitudinal history calls for increased vigilance.

    Returns:
        (increase_vigilance, reason)
    """
    if state is None:
        return False, None

    settings = settings or LongitudinalSettings()

    if state.trajectory == Trajectory.WORSENING:
        return True, "Trajectory is worsening"
    if state.recent_crisis_count >= settings.vigilance_crisis_count:
        return True, f"Multiple recent crisis events ({state.recent_crisis_count})"
    if (
        state.days_since_last_crisis is not None
        and state.days_since_last_crisis <= settings.vigilance_days_since_crisis
    ):
        return True, f"Recent crisis {state.days_since_last_crisis} days ago"

    return False, None


class LongitudinalStateStore:
    """
    Load, update and persist the longitudinal state.

    Usage:
        store = LongitudinalStateStore(JsonDocumentStore(data_dir))
        previous = store.load()
        state = store.update(previous, signals, final_tier, patterns, narrative)
        store.save(state)
    """

    def __init__(
        self,
        documents: JsonDocumentStore,
        settings: Optional[LongitudinalSettings] = None,
    ) -> None:
        self._documents = documents
        self._settings = settings or LongitudinalSettings()

    @property
    def settings(self) -> LongitudinalSettings:
        return self._settings

    def load(self, now: Optional[datetime] = None) -> Optional[LongitudinalState]:
        """
        Load the persisted state.

        Stale state (older than the staleness window) is cleared from
        storage and reported as absent.

        Returns:
            LongitudinalState, or None when absent, unreadable or stale
        """
        data = self._documents.read(LONGITUDINAL_STATE_KEY)
        if data is None:
            return None

        try:
            state = LongitudinalStateRecord.model_validate(data).to_domain()
        except ValidationError as e:
            logger.error("Longitudinal state invalid, ignoring", error_count=e.error_count())
            return None

        age = state.age_days(now)
        if age > self._settings.stale_after_days:
            logger.info("Longitudinal state stale, resetting", age_days=round(age, 1))
            self.clear()
            return None

        return state

    def update(
        self,
        previous: Optional[LongitudinalState],
        signals: SessionSignals,
        new_tier: RiskTier,
        new_patterns: list[DetectedPattern],
        narrative: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LongitudinalState:
        """
        Fold one check-in into the state. Pure; does not persist.

        Args:
            previous: Prior state (None on first check-in)
            signals: Session input
            new_tier: Final combined tier for this check-in
            new_patterns: Patterns detected this session
            narrative: New narrative; None keeps the previous one
            now: Update time

        Returns:
            New LongitudinalState
        """
        now = now or utc_now()
        base = previous or LongitudinalState(last_updated=now)

        if new_tier == RiskTier.CRISIS:
            crisis_count = base.recent_crisis_count + 1
            days_since_crisis: Optional[int] = 0
        else:
            crisis_count = base.recent_crisis_count
            days_since_crisis = base.days_since_last_crisis
            if days_since_crisis is not None and previous is not None:
                # Ingestion touches last_updated; only check-ins advance the crisis clock
                since = previous.last_check_in_at or previous.last_updated
                elapsed = max(0, int((now - since).total_seconds() // 86400))
                days_since_crisis += elapsed

        state = replace(
            base,
            last_updated=now,
            last_check_in_at=now,
            check_in_count=base.check_in_count + 1,
            trajectory=compute_trajectory(base.last_risk_tier, new_tier),
            primary_driver=identify_primary_driver(signals.answers, signals.deviations),
            last_risk_tier=new_tier,
            recent_crisis_count=crisis_count,
            days_since_last_crisis=days_since_crisis,
            clinical_narrative=narrative if narrative is not None else base.clinical_narrative,
            detected_patterns=list(new_patterns),
        )

        logger.info("Longitudinal state updated", **state.to_audit_record())
        return state

    def save(self, state: LongitudinalState) -> None:
        """Persist the state atomically."""
        record = LongitudinalStateRecord.from_domain(state)
        self._documents.write(LONGITUDINAL_STATE_KEY, record.model_dump(mode="json"))

    def clear(self) -> None:
        """Remove the persisted state."""
        self._documents.delete(LONGITUDINAL_STATE_KEY)
        logger.info("Longitudinal state cleared")
