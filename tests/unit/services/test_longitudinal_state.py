"""
Unit Tests for Longitudinal State Store

Tests trajectory, primary driver, crisis bookkeeping, persistence and
staleness reset.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from sentinel.config.settings import LongitudinalSettings
from sentinel.domain.enums.clinical_enums import (
    DataSource,
    PatternSeverity,
    PatternType,
    PrimaryDriver,
    Trajectory,
)
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.longitudinal_state import LongitudinalState
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.signals import (
    HealthDeviations,
    HealthSnapshot,
    QuestionnaireAnswers,
    SessionSignals,
)
from sentinel.infrastructure.storage import LONGITUDINAL_STATE_KEY
from sentinel.services.longitudinal import (
    NO_PRIOR_HISTORY,
    LongitudinalStateStore,
    compute_trajectory,
    format_for_prompt,
    identify_primary_driver,
    risk_modifiers,
)


@pytest.fixture
def store(documents):
    return LongitudinalStateStore(documents, LongitudinalSettings())


MASKING = DetectedPattern(PatternType.MASKING, PatternSeverity.MODERATE, DataSource.VOICE, "flat prosody")


class TestTrajectory:
    """Trajectory is a pure function of consecutive tiers."""

    @pytest.mark.parametrize("previous,new,expected", [
        (RiskTier.LOW, RiskTier.HIGH_MONITORING, Trajectory.WORSENING),
        (RiskTier.CRISIS, RiskTier.MODERATE, Trajectory.IMPROVING),
        (RiskTier.MODERATE, RiskTier.MODERATE, Trajectory.STABLE),
        (None, RiskTier.CRISIS, Trajectory.STABLE),
    ])
    def test_examples(self, previous, new, expected):
        assert compute_trajectory(previous, new) == expected


class TestPrimaryDriver:
    """Deterministic driver priority."""

    def test_screener_positive_is_cssrs(self):
        """Q2-Q6 outrank any biometric deviation."""
        driver = identify_primary_driver(
            QuestionnaireAnswers.from_positives(3),
            HealthDeviations(sleep_z=-3.0),
        )

        assert driver == PrimaryDriver.CSSRS

    def test_significant_deviation_before_concerning(self):
        """A significant HRV drop beats a merely concerning sleep drop."""
        driver = identify_primary_driver(
            QuestionnaireAnswers.from_positives(),
            HealthDeviations(sleep_z=-1.7, hrv_z=-2.2),
        )

        assert driver == PrimaryDriver.HRV

    def test_concerning_deviation_in_priority_order(self):
        """Sleep comes before activity among concerning deviations."""
        driver = identify_primary_driver(
            QuestionnaireAnswers.from_positives(),
            HealthDeviations(sleep_z=-1.6, steps_z=-1.9),
        )

        assert driver == PrimaryDriver.SLEEP

    def test_passive_wish_is_mood(self):
        driver = identify_primary_driver(QuestionnaireAnswers.from_positives(1), HealthDeviations())

        assert driver == PrimaryDriver.MOOD

    def test_nothing_is_combined(self):
        driver = identify_primary_driver(QuestionnaireAnswers.from_positives(), HealthDeviations())

        assert driver == PrimaryDriver.COMBINED


class TestPromptHelpers:
    """History block and vigilance."""

    def test_no_state(self):
        assert format_for_prompt(None) == NO_PRIOR_HISTORY

    def test_history_block(self, fixed_now):
        state = LongitudinalState(
            last_updated=fixed_now,
            check_in_count=5,
            trajectory=Trajectory.IMPROVING,
            primary_driver=PrimaryDriver.SLEEP,
            last_risk_tier=RiskTier.MODERATE,
            recent_crisis_count=1,
            days_since_last_crisis=12,
            clinical_narrative="Improving after medication change.",
        )

        assert format_for_prompt(state) == "\n".join([
            "CLINICAL NARRATIVE: Improving after medication change.",
            "- Trajectory: IMPROVING",
            "- Primary Driver: sleep",
            "- Last Risk: ELEVATED",
            "- Check-ins: 5",
            "- Recent Crises: 1",
            "- Days Since Crisis: 12",
        ])

    @pytest.mark.parametrize("fields,reason", [
        ({"trajectory": Trajectory.WORSENING}, "Trajectory is worsening"),
        ({"recent_crisis_count": 2}, "Multiple recent crisis events (2)"),
        ({"days_since_last_crisis": 3}, "Recent crisis 3 days ago"),
    ])
    def test_vigilance(self, fixed_now, fields, reason):
        state = LongitudinalState(last_updated=fixed_now, **fields)

        assert risk_modifiers(state) == (True, reason)

    def test_no_vigilance(self, fixed_now):
        state = LongitudinalState(last_updated=fixed_now, days_since_last_crisis=20)

        assert risk_modifiers(state) == (False, None)
        assert risk_modifiers(None) == (False, None)


class TestUpdate:
    """Folding a check-in into the state."""

    def test_first_checkin(self, store, fixed_now):
        state = store.update(None, SessionSignals(), RiskTier.MODERATE, [MASKING], "First note.", fixed_now)

        assert state.check_in_count == 1
        assert state.trajectory == Trajectory.STABLE
        assert state.last_risk_tier == RiskTier.MODERATE
        assert state.clinical_narrative == "First note."
        assert state.detected_patterns == [MASKING]
        assert state.days_since_last_crisis is None

    def test_crisis_bookkeeping(self, store, fixed_now):
        """Crisis increments the count and zeroes the day counter."""
        first = store.update(None, SessionSignals(), RiskTier.LOW, [], now=fixed_now)
        crisis = store.update(first, SessionSignals(), RiskTier.CRISIS, [], now=fixed_now + timedelta(hours=1))

        assert crisis.recent_crisis_count == 1
        assert crisis.days_since_last_crisis == 0
        assert crisis.trajectory == Trajectory.WORSENING

    def test_days_since_crisis_advance(self, store, fixed_now):
        """Whole days elapsed are added after a crisis."""
        crisis = store.update(None, SessionSignals(), RiskTier.CRISIS, [], now=fixed_now)
        later = store.update(
            crisis, SessionSignals(), RiskTier.MODERATE, [],
            now=fixed_now + timedelta(days=3, hours=5),
        )

        assert later.days_since_last_crisis == 3
        assert later.recent_crisis_count == 1
        assert later.trajectory == Trajectory.IMPROVING

    def test_crisis_days_ignore_narrative_refresh(self, store, fixed_now):
        """Refreshing last_updated outside a check-in does not reset the crisis clock."""
        crisis = store.update(None, SessionSignals(), RiskTier.CRISIS, [], now=fixed_now)
        ingested = replace(crisis, last_updated=fixed_now + timedelta(days=4), clinical_narrative="History.")

        later = store.update(ingested, SessionSignals(), RiskTier.LOW, [], now=fixed_now + timedelta(days=6))

        assert later.days_since_last_crisis == 6
        assert later.last_check_in_at == fixed_now + timedelta(days=6)

    def test_none_narrative_keeps_previous(self, store, fixed_now):
        first = store.update(None, SessionSignals(), RiskTier.LOW, [], "Keep me.", fixed_now)
        second = store.update(first, SessionSignals(), RiskTier.LOW, [], None, fixed_now)

        assert second.clinical_narrative == "Keep me."

    def test_update_is_pure(self, store, fixed_now, documents):
        """update() never persists and never mutates its input."""
        first = store.update(None, SessionSignals(), RiskTier.LOW, [], now=fixed_now)
        store.update(first, SessionSignals(), RiskTier.CRISIS, [], now=fixed_now)

        assert first.check_in_count == 1
        assert documents.read(LONGITUDINAL_STATE_KEY) is None

    def test_primary_driver_from_signals(self, store, fixed_now):
        signals = SessionSignals(health=HealthSnapshot(deviations=HealthDeviations(steps_z=-2.5)))

        state = store.update(None, signals, RiskTier.MODERATE, [], now=fixed_now)

        assert state.primary_driver == PrimaryDriver.ACTIVITY


class TestPersistence:
    """Save, load and staleness."""

    def test_save_and_load(self, store, fixed_now):
        state = store.update(None, SessionSignals(), RiskTier.HIGH_MONITORING, [MASKING], "Narrative.", fixed_now)

        store.save(state)
        loaded = store.load(fixed_now + timedelta(days=1))

        assert loaded == state

    def test_stale_state_reset(self, store, documents, fixed_now):
        """State older than the window is cleared and reported absent."""
        store.save(store.update(None, SessionSignals(), RiskTier.LOW, [], now=fixed_now))

        assert store.load(fixed_now + timedelta(days=31)) is None
        assert documents.read(LONGITUDINAL_STATE_KEY) is None

    def test_invalid_document_ignored(self, store, documents):
        documents.write(LONGITUDINAL_STATE_KEY, {"check_in_count": -4})

        assert store.load() is None

    def test_clear(self, store, documents, fixed_now):
        store.save(store.update(None, SessionSignals(), RiskTier.LOW, [], now=fixed_now))

        store.clear()

        assert documents.read(LONGITUDINAL_STATE_KEY) is None
