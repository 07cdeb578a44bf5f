"""
Unit Tests for Check-In Orchestrator

SAFETY-CRITICAL: Every task must produce a determinate result, from the
model or from the fallback, and a Crisis tier must enter the crisis
lifecycle.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from sentinel.domain.enums.clinical_enums import (
    PatternType,
    PrimaryDriver,
    ResultProvenance,
    RiskSource,
)
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.crisis_session import CrisisStatus
from sentinel.domain.models.longitudinal_state import LongitudinalState, utc_now
from sentinel.domain.models.signals import (
    HealthDeviations,
    HealthSnapshot,
    QuestionnaireAnswers,
    SessionSignals,
    VoiceFeatures,
)
from sentinel.infrastructure.llm.backend import BackendError, BackendErrorReason
from sentinel.services.fallback.fallback_generator import OFFLINE_EXPLANATION
from sentinel.services.ingestion import DocumentIngestionError
from sentinel.services.llm.inference_executor import InferenceExecutor
from sentinel.services.longitudinal import LongitudinalStateStore
from sentinel.services.orchestration import (
    CheckInOrchestrator,
    create_orchestrator,
    fetch_with_timeout,
)
from sentinel.services.prompt import ConfigurationError, PromptTemplateLoader
from sentinel.services.safety import CrisisStateMachine

from fakes import HANG, SILENT, FakeBackend


@pytest.fixture
async def make_orchestrator(test_settings, documents):
    """Build orchestrators around scripted backends; closes each on teardown."""
    created = []

    def factory(backend, **kwargs):
        orchestrator = CheckInOrchestrator(
            InferenceExecutor(backend, test_settings.inference),
            LongitudinalStateStore(documents, test_settings.longitudinal),
            CrisisStateMachine(documents, test_settings.crisis),
            settings=test_settings,
            **kwargs,
        )
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        await orchestrator.close()


@pytest.fixture
def state_store(documents, test_settings):
    return LongitudinalStateStore(documents, test_settings.longitudinal)


def offline_backend():
    """A backend whose lazy load always fails."""
    return FakeBackend(loaded=False, load_fails=True)


MASKED_SIGNALS = SessionSignals(
    transcript="I'm fine",
    voice_features=VoiceFeatures(pitch_variability=8.0, mean_energy=-22.0, energy_variability=10.0),
    answers=QuestionnaireAnswers.from_positives(),
)


class TestProcessCheckin:
    """End-to-end check-in pipeline."""

    async def test_masking_with_model_timeout(self, make_orchestrator, state_store, fixed_now):
        """
        A hung model still yields a determinate tier from the fallback,
        and the masking pattern reaches the prompt and the state.
        """
        backend = FakeBackend(responses=[HANG])
        orchestrator = make_orchestrator(backend)

        outcome = await orchestrator.process_checkin(MASKED_SIGNALS, now=fixed_now)

        assert outcome.triage.provenance == ResultProvenance.FALLBACK
        assert outcome.triage.failure_reason == "timeout"
        assert outcome.final_tier == RiskTier.LOW
        assert outcome.combined.source == RiskSource.QUESTIONNAIRE
        assert [p.pattern_type for p in outcome.patterns] == [PatternType.MASKING]
        assert "SIGNAL DISCREPANCY: MASKING" in backend.prompts[0]
        assert backend.stop_events[0].is_set()

        saved = state_store.load(fixed_now)
        assert saved.check_in_count == 1
        assert saved.detected_patterns[0].pattern_type == PatternType.MASKING

    async def test_model_raises_tier(self, make_orchestrator, state_store, fixed_now):
        """The model may raise the tier above the floor and its rationale is kept."""
        backend = FakeBackend(responses=[
            "ORANGE\nSleep has collapsed alongside hopeless statements.",
            "Veteran reports worsening sleep and hopelessness.",
        ])
        orchestrator = make_orchestrator(backend)

        outcome = await orchestrator.process_checkin(
            SessionSignals(answers=QuestionnaireAnswers.from_positives(1)),
            now=fixed_now,
        )

        assert outcome.triage.used_model is True
        assert outcome.final_tier == RiskTier.HIGH_MONITORING
        assert outcome.combined.source == RiskSource.MODEL
        assert outcome.combined.explanation == "Sleep has collapsed alongside hopeless statements."
        assert outcome.compression.used_model is True
        assert state_store.load(fixed_now).clinical_narrative == (
            "Veteran reports worsening sleep and hopelessness."
        )
        assert outcome.crisis is None

    async def test_model_cannot_lower_floor(self, make_orchestrator, fixed_now):
        backend = FakeBackend(responses=["GREEN\nNo concerns.", "Narrative."])
        orchestrator = make_orchestrator(backend)

        outcome = await orchestrator.process_checkin(
            SessionSignals(answers=QuestionnaireAnswers.from_positives(6)),
            now=fixed_now,
        )

        assert outcome.triage.triage.tier == RiskTier.LOW
        assert outcome.final_tier == RiskTier.HIGH_MONITORING
        assert outcome.combined.source == RiskSource.QUESTIONNAIRE

    async def test_crisis_floor_enters_crisis(self, make_orchestrator, state_store, fixed_now):
        """Active intent is Crisis regardless of the model, and starts the lifecycle."""
        orchestrator = make_orchestrator(FakeBackend(responses=["GREEN\nFine.", "Narrative."]))

        outcome = await orchestrator.process_checkin(
            SessionSignals(answers=QuestionnaireAnswers.from_positives(1, 2, 3, 4)),
            now=fixed_now,
        )

        assert outcome.final_tier == RiskTier.CRISIS
        assert outcome.crisis is not None
        assert outcome.crisis.status == CrisisStatus.ACTIVE
        assert orchestrator.crisis_machine.session.session_id == outcome.crisis.session_id
        state = state_store.load(fixed_now)
        assert state.recent_crisis_count == 1
        assert state.days_since_last_crisis == 0

    async def test_offline_model(self, make_orchestrator, fixed_now):
        """An unloadable model degrades every task to the fallback."""
        orchestrator = make_orchestrator(offline_backend())
        signals = SessionSignals(
            health=HealthSnapshot(sleep_hours=3.0, deviations=HealthDeviations(sleep_z=-2.4)),
        )

        outcome = await orchestrator.process_checkin(signals, now=fixed_now)

        assert outcome.triage.model_attempted is False
        assert outcome.triage.failure_reason == BackendErrorReason.NOT_LOADED.value
        assert outcome.final_tier == RiskTier.MODERATE
        assert outcome.combined.source == RiskSource.MODEL
        assert PatternType.SLEEP_DISRUPTION in [p.pattern_type for p in outcome.patterns]
        assert outcome.compression.provenance == ResultProvenance.FALLBACK

    async def test_compression_failure_keeps_narrative(self, make_orchestrator, state_store, fixed_now):
        state_store.save(LongitudinalState(last_updated=fixed_now, check_in_count=3, clinical_narrative="Earlier."))
        backend = FakeBackend(responses=["YELLOW\nMild strain.", BackendError(BackendErrorReason.INFERENCE_FAILED)])
        orchestrator = make_orchestrator(backend)

        outcome = await orchestrator.process_checkin(SessionSignals(), now=fixed_now)

        assert outcome.compression.provenance == ResultProvenance.FALLBACK
        assert outcome.compression.narrative == "Earlier."
        saved = state_store.load(fixed_now)
        assert saved.clinical_narrative == "Earlier."
        assert saved.check_in_count == 4


class TestExplainRisk:
    async def test_model_explanation(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeBackend(responses=[
            "Your sleep has dropped sharply. That raised your level.",
        ]))

        result = await orchestrator.explain_risk(RiskTier.MODERATE, "biometric")

        assert result.used_model is True
        assert result.narrative == "Your sleep has dropped sharply. That raised your level."

    async def test_offline_explanation(self, make_orchestrator):
        """When the model never ran the user is told it is offline."""
        result = await make_orchestrator(offline_backend()).explain_risk(RiskTier.MODERATE, "questionnaire")

        assert result.model_attempted is False
        assert result.narrative == OFFLINE_EXPLANATION

    async def test_timeout_explanation(self, make_orchestrator):
        result = await make_orchestrator(FakeBackend(responses=[SILENT])).explain_risk(
            RiskTier.HIGH_MONITORING, "questionnaire"
        )

        assert result.failure_reason == "timeout"
        assert result.model_attempted is True
        assert result.narrative == (
            "Your current risk level is HIGH MONITORING, based on your most recent questionnaire data."
        )


class TestRerankSafetyPlan:
    async def test_model_order_repaired(self, make_orchestrator):
        result = await make_orchestrator(FakeBackend(responses=["3, 1, 2"])).rerank_safety_plan()

        assert result.used_model is True
        assert result.permutation == [3, 1, 2, 4, 5, 6, 7]

    async def test_fallback_uses_driver(self, make_orchestrator, state_store, fixed_now):
        """Unparseable output falls back to the static order for the stored driver."""
        state_store.save(LongitudinalState(last_updated=fixed_now, primary_driver=PrimaryDriver.SLEEP))
        orchestrator = make_orchestrator(FakeBackend(responses=["I cannot rank these."]))

        result = await orchestrator.rerank_safety_plan(state=state_store.load(fixed_now))

        assert result.failure_reason == "parse_failed"
        assert result.permutation == [2, 7, 3, 4, 6, 5, 1]

    async def test_fallback_without_state(self, make_orchestrator):
        result = await make_orchestrator(offline_backend()).rerank_safety_plan()

        assert result.permutation == [6, 5, 4, 2, 3, 7, 1]


class TestReport:
    """SBAR handoff report."""

    async def test_generated_report(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeBackend(responses=[" Veteran reports stable mood."]))

        result = await orchestrator.generate_report(RiskTier.LOW)

        assert result.used_model is True
        assert result.narrative.startswith("SITUATION:")
        assert "Veteran reports stable mood." in result.narrative

    async def test_thinking_block_removed_from_report(self, make_orchestrator):
        backend = FakeBackend(responses=["<think>draft the handoff</think> Veteran reports stable mood."])
        orchestrator = make_orchestrator(backend)

        result = await orchestrator.generate_report(RiskTier.LOW)

        assert result.used_model is True
        assert result.narrative == "SITUATION: Veteran reports stable mood."

    async def test_first_token_timeout_uses_template(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeBackend(responses=[SILENT]))

        result = await orchestrator.generate_report(
            RiskTier.CRISIS,
            SessionSignals(answers=QuestionnaireAnswers.from_positives(4)),
        )

        assert result.failure_reason == "timeout"
        assert result.narrative.startswith("SITUATION:\n")
        assert "Reports active suicidal intent" in result.narrative
        assert "RECOMMENDATION:" in result.narrative

    async def test_seed_only_is_empty_output(self, make_orchestrator):
        result = await make_orchestrator(FakeBackend()).generate_report(RiskTier.MODERATE)

        assert result.failure_reason == "empty_output"
        assert "ASSESSMENT:" in result.narrative

    async def test_stream_falls_back_before_first_chunk(self, make_orchestrator):
        orchestrator = make_orchestrator(offline_backend())

        chunks = [chunk async for chunk in orchestrator.stream_report(RiskTier.MODERATE)]

        assert len(chunks) == 1
        assert chunks[0].startswith("SITUATION:\n")

    async def test_stream_delivers_model_text(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeBackend(responses=[" All stable."]))

        chunks = [chunk async for chunk in orchestrator.stream_report(RiskTier.LOW)]

        assert "".join(chunks).startswith("SITUATION:")
        assert "All stable." in "".join(chunks)


class TestIngestDocument:
    async def test_model_narrative_saved(self, make_orchestrator, state_store, tmp_path):
        document = tmp_path / "inbox" / "history.json"
        document.parent.mkdir()
        document.write_text(json.dumps({"text": {"div": "<p>Two prior admissions for MDD.</p>"}}))
        backend = FakeBackend(responses=["History of two MDD admissions."])
        orchestrator = make_orchestrator(backend)

        result = await orchestrator.ingest_document(document)

        assert result.used_model is True
        assert "Two prior admissions for MDD." in backend.prompts[0]
        assert state_store.load().clinical_narrative == "History of two MDD admissions."
        assert not document.exists()

    async def test_ingestion_refreshes_state_age(self, make_orchestrator, state_store, tmp_path):
        """A freshly ingested narrative is not wiped by the staleness reset."""
        aged = utc_now() - timedelta(days=20)
        state_store.save(LongitudinalState(last_updated=aged, last_check_in_at=aged, check_in_count=3))
        document = tmp_path / "notes.txt"
        document.write_text("Prior admission for PTSD.")
        orchestrator = make_orchestrator(FakeBackend(responses=["History of PTSD admission."]))

        await orchestrator.ingest_document(document)
        loaded = state_store.load(utc_now() + timedelta(days=15))

        assert loaded is not None
        assert loaded.clinical_narrative == "History of PTSD admission."
        assert loaded.check_in_count == 3
        assert loaded.last_check_in_at == aged

    async def test_fallback_leaves_state(self, make_orchestrator, state_store, tmp_path):
        document = tmp_path / "notes.txt"
        document.write_text("Prior admission.")

        result = await make_orchestrator(offline_backend()).ingest_document(document)

        assert result.provenance == ResultProvenance.FALLBACK
        assert state_store.load() is None

    async def test_missing_document(self, make_orchestrator, tmp_path):
        assert await make_orchestrator(FakeBackend()).ingest_document(tmp_path / "none.json") is None

    async def test_invalid_document_raises(self, make_orchestrator, tmp_path):
        document = tmp_path / "broken.json"
        document.write_text("{")

        with pytest.raises(DocumentIngestionError):
            await make_orchestrator(FakeBackend()).ingest_document(document)


class TestExternalFetch:
    async def test_slow_fetch_returns_default(self):
        async def slow():
            await asyncio.sleep(1.0)
            return "late"

        assert await fetch_with_timeout(slow, 0.05, "default") == "default"

    async def test_failing_fetch_returns_default(self):
        async def failing():
            raise ConnectionError("platform unavailable")

        assert await fetch_with_timeout(failing, 1.0, 0) == 0

    async def test_health_fetch(self, make_orchestrator):
        snapshot = HealthSnapshot(sleep_hours=7.0, step_count=9000, hrv_ms=50.0)

        async def fetch():
            return snapshot

        orchestrator = make_orchestrator(FakeBackend())

        assert await orchestrator.fetch_health(fetch) == snapshot

    async def test_health_fetch_timeout(self, make_orchestrator):
        async def hang():
            await asyncio.sleep(5.0)

        result = await make_orchestrator(FakeBackend()).fetch_health(hang)

        assert result == HealthSnapshot.empty()


class TestStartup:
    async def test_incomplete_templates_rejected(self, make_orchestrator, tmp_path):
        path = tmp_path / "templates.json"
        path.write_text(json.dumps({"risk_assessment": ["x"]}), encoding="utf-8")
        orchestrator = make_orchestrator(FakeBackend(), templates=PromptTemplateLoader(path))

        with pytest.raises(ConfigurationError):
            orchestrator.startup()

    async def test_default_templates_accepted(self, make_orchestrator):
        make_orchestrator(FakeBackend()).startup()


class TestCreateOrchestrator:
    async def test_wires_components(self, test_settings, fixed_now):
        """The factory shares one store between state and crisis persistence."""
        orchestrator = create_orchestrator(
            test_settings,
            backend=FakeBackend(responses=["GREEN\nStable.", "Narrative."]),
        )
        try:
            outcome = await orchestrator.process_checkin(
                SessionSignals(answers=QuestionnaireAnswers.from_positives(5)),
                now=fixed_now,
            )
        finally:
            await orchestrator.close()

        assert outcome.final_tier == RiskTier.CRISIS
        assert orchestrator.crisis_machine.session.status == CrisisStatus.ACTIVE
        assert (test_settings.storage.data_dir / "crisis_start.json").exists()
