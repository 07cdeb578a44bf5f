"""
Check-In Orchestrator

Coordinates one check-in from session signals to final risk tier and
updated longitudinal memory, plus the explanation, rerank, report and
document-ingestion entry points used by the presentation layer.

ARCHITECTURE: This is the main orchestration layer that connects:
Signals → Prompt → Executor → Parser | Fallback → Combiner → State → Crisis

SAFETY-CRITICAL:
- Every task either yields a parsed model result or a fallback result;
  the pipeline never blocks on, or fails because of, the model
- The final tier always comes from the RiskCombiner, so the
  questionnaire floor is never lowered
- A final tier of Crisis always enters the crisis lifecycle
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar
from uuid import uuid4

from sentinel.config import get_settings
from sentinel.config.logging_config import (
    bind_check_in,
    clear_check_in,
    configure_logging,
    get_logger,
)
from sentinel.config.settings import Settings
from sentinel.domain.enums.clinical_enums import (
    RecipientType,
    ResultProvenance,
    TaskType,
)
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.crisis_session import CrisisSession
from sentinel.domain.models.longitudinal_state import LongitudinalState, utc_now
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.signals import HealthSnapshot, SessionSignals
from sentinel.domain.models.task_results import ModelTaskResult
from sentinel.infrastructure.llm.backend import BackendError, BackendErrorReason, InferenceBackend
from sentinel.infrastructure.storage import JsonDocumentStore
from sentinel.services.analysis.discrepancy_detector import DiscrepancyDetector, discrepancy_detector
from sentinel.services.fallback.fallback_generator import FallbackGenerator, fallback_generator
from sentinel.services.ingestion.clinical_document import ClinicalDocumentIngestor
from sentinel.services.llm.inference_executor import InferenceExecutor, InferenceTimeoutError
from sentinel.services.longitudinal.state_store import LongitudinalStateStore
from sentinel.services.parsing.output_parser import OutputParser, output_parser
from sentinel.services.parsing.text_cleanup import strip_thinking_block
from sentinel.services.prompt.prompt_assembler import PromptAssembler, PromptContext
from sentinel.services.prompt.prompt_templates import PromptTemplateLoader
from sentinel.services.questionnaire.questionnaire_engine import floor_tier_for
from sentinel.services.safety.crisis_state_machine import CrisisStateMachine
from sentinel.services.safety.risk_combiner import CombinedRisk, RiskCombiner, risk_combiner

logger = get_logger(__name__)

T = TypeVar("T")


async def fetch_with_timeout(
    fetch: Callable[[], Awaitable[T]],
    timeout: float,
    default: T,
    *,
    name: str = "fetch",
) -> T:
    """
    Await an external collaborator under a deadline.

    Used for biometric queries: a slow or failing platform call must not
    hold up the check-in, so any failure yields the default.

    Returns:
        The fetched value, or `default` on timeout or error
    """
    try:
        return await asyncio.wait_for(fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("External fetch timed out, using default", source=name, timeout=timeout)
    except Exception as e:
        logger.warning("External fetch failed, using default", source=name, error=type(e).__name__)
    return default


@dataclass
class CheckInOutcome:
    """
    Complete result of one orchestrated check-in.

    Attributes:
        combined: Final tier with its source and explanation
        triage: Risk task result (model or fallback)
        compression: Narrative compression result (model or fallback)
        state: Longitudinal state after this check-in
        patterns: Patterns detected this session
        crisis: Live crisis session when the final tier is Crisis
    """

    combined: CombinedRisk
    triage: ModelTaskResult
    compression: ModelTaskResult
    state: LongitudinalState
    patterns: list[DetectedPattern] = field(default_factory=list)
    crisis: Optional[CrisisSession] = None

    @property
    def final_tier(self) -> RiskTier:
        return self.combined.final_tier

    def to_audit_log(self) -> dict:
        """Audit entry without clinical free text."""
        return {
            "final_tier": self.combined.final_tier.name,
            "source": self.combined.source.value,
            "floor_tier": self.combined.floor_tier.name,
            "model_tier": self.combined.model_tier.name,
            "triage_provenance": self.triage.provenance.value,
            "compression_provenance": self.compression.provenance.value,
            "patterns": [p.pattern_type.value for p in self.patterns],
            "crisis_session_id": str(self.crisis.session_id) if self.crisis else None,
            "check_in_count": self.state.check_in_count,
        }


class CheckInOrchestrator:
    """
    Main orchestrator for the check-in pipeline.

    1. Load longitudinal state
    2. Detect cross-modal discrepancies
    3. Run risk triage (parse, or fall back)
    4. Combine with the questionnaire floor
    5. Compress the narrative (parse, or keep the previous one)
    6. Persist state
    7. Enter crisis when the final tier is Crisis

    Usage:
        orchestrator = create_orchestrator(get_settings())
        orchestrator.startup()
        outcome = await orchestrator.process_checkin(signals)
        await orchestrator.close()
    """

    def __init__(
        self,
        executor: InferenceExecutor,
        state_store: LongitudinalStateStore,
        crisis_machine: Optional[CrisisStateMachine] = None,
        templates: Optional[PromptTemplateLoader] = None,
        assembler: Optional[PromptAssembler] = None,
        parser: Optional[OutputParser] = None,
        fallback: Optional[FallbackGenerator] = None,
        combiner: Optional[RiskCombiner] = None,
        detector: Optional[DiscrepancyDetector] = None,
        ingestor: Optional[ClinicalDocumentIngestor] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._executor = executor
        self._state_store = state_store
        self._crisis = crisis_machine
        self._templates = templates or PromptTemplateLoader(self._settings.storage.prompt_templates_path)
        self._detector = detector or discrepancy_detector
        self._assembler = assembler or PromptAssembler(
            self._templates,
            detector=self._detector,
            longitudinal_settings=state_store.settings,
        )
        self._parser = parser or output_parser
        self._fallback = fallback or fallback_generator
        self._combiner = combiner or risk_combiner
        self._ingestor = ingestor or ClinicalDocumentIngestor(self._settings.storage.processed_documents_dir)

    @property
    def crisis_machine(self) -> Optional[CrisisStateMachine]:
        return self._crisis

    def startup(self) -> None:
        """
        Validate configuration before the first check-in.

        Raises:
            ConfigurationError: If any task template is missing or empty
        """
        self._templates.validate()
        logger.info("Check-in orchestrator ready", tasks=self._templates.tasks())

    async def close(self) -> None:
        """Stop the inference worker."""
        await self._executor.shutdown()
        logger.info("Check-in orchestrator closed")

    async def fetch_health(
        self,
        fetch: Callable[[], Awaitable[HealthSnapshot]],
    ) -> HealthSnapshot:
        """Biometric snapshot under the configured budget, empty on failure."""
        return await fetch_with_timeout(
            fetch,
            self._settings.health_fetch_timeout,
            HealthSnapshot.empty(),
            name="health",
        )

    # -------------------------------------------------------------------------
    # Check-in pipeline
    # -------------------------------------------------------------------------

    async def process_checkin(
        self,
        signals: SessionSignals,
        floor_tier: Optional[RiskTier] = None,
        now: Optional[datetime] = None,
    ) -> CheckInOutcome:
        """
        Run the complete check-in pipeline.

        Args:
            signals: Session input
            floor_tier: Questionnaire floor; computed from the answers if omitted
            now: Check-in time

        Returns:
            CheckInOutcome with a determinate final tier
        """
        bind_check_in(str(uuid4()))
        try:
            return await self._run_checkin(signals, floor_tier, now or utc_now())
        finally:
            clear_check_in()

    async def _run_checkin(
        self,
        signals: SessionSignals,
        floor_tier: Optional[RiskTier],
        now: datetime,
    ) -> CheckInOutcome:
        floor = floor_tier if floor_tier is not None else floor_tier_for(signals.answers)

        previous = self._state_store.load(now)

        discrepancy = self._detector.detect(
            signals.transcript, signals.voice_features, signals.telemetry_summary
        )

        prompt = self._assembler.build(
            TaskType.RISK_ASSESSMENT,
            signals,
            previous,
            PromptContext(discrepancy_note=discrepancy.note() or ""),
        )
        triage = await self.assess_risk(signals, prompt)

        combined = self._combiner.combine(floor, triage.triage.tier, triage.triage.rationale)

        patterns = list(discrepancy.patterns)
        patterns.extend(self._detector.patterns_from_deviations(triage.triage.key_deviations))

        compression = await self.compress_narrative(signals, previous, combined.final_tier, patterns)

        state = self._state_store.update(
            previous,
            signals,
            combined.final_tier,
            patterns,
            narrative=compression.narrative,
            now=now,
        )
        self._state_store.save(state)

        crisis: Optional[CrisisSession] = None
        if combined.final_tier == RiskTier.CRISIS and self._crisis is not None:
            crisis = await self._crisis.enter_crisis(now)

        outcome = CheckInOutcome(
            combined=combined,
            triage=triage,
            compression=compression,
            state=state,
            patterns=patterns,
            crisis=crisis,
        )
        logger.info("Check-in orchestration complete", **outcome.to_audit_log())
        return outcome

    async def assess_risk(self, signals: SessionSignals, prompt: str) -> ModelTaskResult:
        """Risk triage with parse-or-fallback; always returns a triage payload."""
        task = TaskType.RISK_ASSESSMENT
        try:
            output = await self._executor.run_task(task, prompt)
        except (BackendError, InferenceTimeoutError) as e:
            return self._fallback.wrap(
                task,
                failure_reason=self._failure_reason(e),
                model_attempted=self._model_attempted(e),
                triage=self._fallback.risk_triage(signals),
            )

        payload = self._parser.parse_risk(output.text)
        if payload is None:
            return self._fallback.wrap(
                task,
                failure_reason="parse_failed",
                model_attempted=True,
                raw_text=output.text,
                latency_ms=output.latency_ms,
                triage=self._fallback.risk_triage(signals),
            )

        return self._model_result(task, output.text, output.latency_ms, triage=payload)

    async def compress_narrative(
        self,
        signals: SessionSignals,
        previous: Optional[LongitudinalState],
        final_tier: RiskTier,
        patterns: list[DetectedPattern],
    ) -> ModelTaskResult:
        """Fold this check-in into the narrative; the fallback keeps the previous one."""
        task = TaskType.COMPRESSION
        previous_narrative = previous.clinical_narrative if previous is not None else ""
        prompt = self._assembler.build(
            task,
            signals,
            previous,
            PromptContext(risk_tier=final_tier, detected_patterns=patterns),
        )
        return await self._narrative_task(task, prompt, self._fallback.compression(previous_narrative))

    # -------------------------------------------------------------------------
    # Presentation entry points
    # -------------------------------------------------------------------------

    async def explain_risk(
        self,
        tier: RiskTier,
        source: str,
        signals: Optional[SessionSignals] = None,
        time_ago: Optional[str] = None,
    ) -> ModelTaskResult:
        """
        Plain-language explanation of the current tier.

        Args:
            tier: Final tier to explain
            source: What determined it (e.g. "questionnaire")
            signals: Latest session input, if available
            time_ago: Relative age of the latest data
        """
        task = TaskType.EXPLAIN_RISK
        state = self._state_store.load()
        prompt = self._assembler.build(
            task,
            signals,
            state,
            PromptContext(risk_tier=tier, data_source=source, time_ago=time_ago),
        )

        try:
            output = await self._executor.run_task(task, prompt)
        except (BackendError, InferenceTimeoutError) as e:
            attempted = self._model_attempted(e)
            return self._fallback.wrap(
                task,
                failure_reason=self._failure_reason(e),
                model_attempted=attempted,
                narrative=self._fallback.explanation(tier, source, model_attempted=attempted),
            )

        explanation = self._parser.parse_explanation(output.text)
        if explanation is None:
            return self._fallback.wrap(
                task,
                failure_reason="parse_failed",
                model_attempted=True,
                raw_text=output.text,
                latency_ms=output.latency_ms,
                narrative=self._fallback.explanation(tier, source),
            )

        return self._model_result(task, output.text, output.latency_ms, narrative=explanation)

    async def rerank_safety_plan(
        self,
        state: Optional[LongitudinalState] = None,
        patterns: Optional[list[DetectedPattern]] = None,
    ) -> ModelTaskResult:
        """
        Order the seven safety plan sections by relevance.

        The fallback uses the static order for the state's primary driver.
        """
        task = TaskType.RERANK_SAFETY_PLAN
        state = state if state is not None else self._state_store.load()
        driver = state.primary_driver if state is not None else None
        prompt = self._assembler.build(task, None, state, PromptContext(detected_patterns=patterns))

        try:
            output = await self._executor.run_task(task, prompt)
        except (BackendError, InferenceTimeoutError) as e:
            return self._fallback.wrap(
                task,
                failure_reason=self._failure_reason(e),
                model_attempted=self._model_attempted(e),
                permutation=self._fallback.rerank(driver),
            )

        order = self._parser.parse_rerank(output.text)
        if order is None:
            return self._fallback.wrap(
                task,
                failure_reason="parse_failed",
                model_attempted=True,
                raw_text=output.text,
                latency_ms=output.latency_ms,
                permutation=self._fallback.rerank(driver),
            )

        return self._model_result(task, output.text, output.latency_ms, permutation=order)

    async def stream_report(
        self,
        tier: RiskTier,
        signals: Optional[SessionSignals] = None,
        recipient: RecipientType = RecipientType.PRIMARY_CARE,
    ) -> AsyncIterator[str]:
        """
        Stream an SBAR handoff report.

        If the model fails before producing any text the fixed SBAR
        template is yielded instead. A failure mid-stream ends the
        stream with whatever was already delivered.
        """
        prompt = self._report_prompt(tier, signals, recipient)
        delivered = False

        try:
            async for chunk in self._executor.stream(prompt):
                delivered = True
                yield chunk
        except (BackendError, InferenceTimeoutError) as e:
            if delivered:
                logger.warning("Report stream interrupted", reason=self._failure_reason(e))
                return
            result = self._fallback_report(tier, signals, recipient, e)
            yield result.narrative or ""
            return

        if not delivered:
            result = self._fallback.wrap(
                TaskType.REPORT,
                failure_reason="empty_output",
                model_attempted=True,
                narrative=self._fallback_report_text(tier, signals, recipient),
            )
            yield result.narrative or ""

    async def generate_report(
        self,
        tier: RiskTier,
        signals: Optional[SessionSignals] = None,
        recipient: RecipientType = RecipientType.PRIMARY_CARE,
    ) -> ModelTaskResult:
        """Collected SBAR report as a task result."""
        task = TaskType.REPORT
        prompt = self._report_prompt(tier, signals, recipient)
        chunks: list[str] = []
        started = asyncio.get_running_loop().time()

        try:
            async for chunk in self._executor.stream(prompt):
                chunks.append(chunk)
        except (BackendError, InferenceTimeoutError) as e:
            if not chunks:
                return self._fallback_report(tier, signals, recipient, e)
            logger.warning("Report generation interrupted", reason=self._failure_reason(e))

        latency_ms = (asyncio.get_running_loop().time() - started) * 1000
        text = "".join(chunks)
        report = strip_thinking_block(text)
        if not report or report == InferenceExecutor.REPORT_SEED:
            return self._fallback.wrap(
                task,
                failure_reason="empty_output",
                model_attempted=True,
                raw_text=text,
                latency_ms=latency_ms,
                narrative=self._fallback_report_text(tier, signals, recipient),
            )
        return self._model_result(task, text, latency_ms, narrative=report)

    async def ingest_document(self, path: Path) -> Optional[ModelTaskResult]:
        """
        Fold a persisted clinical document into the narrative.

        The narrative is saved only when the model produced it; on
        fallback the stored state is left untouched.

        Returns:
            Ingestion result, or None when no document exists at `path`

        Raises:
            DocumentIngestionError: If the document exists but is unusable
        """
        text = self._ingestor.read_document(path)
        if text is None:
            return None

        task = TaskType.CONTEXT_INGESTION
        state = self._state_store.load()
        previous_narrative = state.clinical_narrative if state is not None else ""
        prompt = self._assembler.build(task, None, state, PromptContext(document_text=text))

        result = await self._narrative_task(task, prompt, self._fallback.context_ingestion(previous_narrative))
        if result.used_model and result.narrative:
            now = utc_now()
            base = state or LongitudinalState(last_updated=now)
            self._state_store.save(replace(base, last_updated=now, clinical_narrative=result.narrative))
            logger.info("Clinical document ingested into narrative", narrative_chars=len(result.narrative))
        return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _narrative_task(self, task: TaskType, prompt: str, fallback_narrative: str) -> ModelTaskResult:
        try:
            output = await self._executor.run_task(task, prompt)
        except (BackendError, InferenceTimeoutError) as e:
            return self._fallback.wrap(
                task,
                failure_reason=self._failure_reason(e),
                model_attempted=self._model_attempted(e),
                narrative=fallback_narrative,
            )

        narrative = self._parser.parse_narrative(output.text, self._settings.inference.narrative_max_chars)
        if narrative is None:
            return self._fallback.wrap(
                task,
                failure_reason="parse_failed",
                model_attempted=True,
                raw_text=output.text,
                latency_ms=output.latency_ms,
                narrative=fallback_narrative,
            )

        return self._model_result(task, output.text, output.latency_ms, narrative=narrative)

    def _report_prompt(
        self,
        tier: RiskTier,
        signals: Optional[SessionSignals],
        recipient: RecipientType,
    ) -> str:
        return self._assembler.build(
            TaskType.REPORT,
            signals,
            self._state_store.load(),
            PromptContext(risk_tier=tier, recipient=recipient, patient_name=self._settings.patient_name),
        )

    def _fallback_report_text(
        self,
        tier: RiskTier,
        signals: Optional[SessionSignals],
        recipient: RecipientType,
    ) -> str:
        return self._fallback.report(
            tier,
            answers=signals.answers if signals is not None else None,
            health=signals.health if signals is not None else None,
            recipient=recipient,
            patient_name=self._settings.patient_name,
        )

    def _fallback_report(
        self,
        tier: RiskTier,
        signals: Optional[SessionSignals],
        recipient: RecipientType,
        error: Exception,
    ) -> ModelTaskResult:
        return self._fallback.wrap(
            TaskType.REPORT,
            failure_reason=self._failure_reason(error),
            model_attempted=self._model_attempted(error),
            narrative=self._fallback_report_text(tier, signals, recipient),
        )

    @staticmethod
    def _model_result(task: TaskType, raw_text: str, latency_ms: float, **payload) -> ModelTaskResult:
        result = ModelTaskResult(
            task=task,
            provenance=ResultProvenance.MODEL,
            raw_text=raw_text,
            latency_ms=latency_ms,
            model_attempted=True,
            **payload,
        )
        logger.info("Model result used", **result.to_audit_log())
        return result

    @staticmethod
    def _failure_reason(error: Exception) -> str:
        if isinstance(error, InferenceTimeoutError):
            return "timeout"
        if isinstance(error, BackendError):
            return error.reason.value
        return "inference_failed"

    @staticmethod
    def _model_attempted(error: Exception) -> bool:
        # NOT_LOADED: the backend never ran
        return not (isinstance(error, BackendError) and error.reason == BackendErrorReason.NOT_LOADED)


def create_orchestrator(
    settings: Optional[Settings] = None,
    backend: Optional[InferenceBackend] = None,
    on_escalation: Optional[Callable[[CrisisSession], Awaitable[None]]] = None,
) -> CheckInOrchestrator:
    """
    Wire a fully configured orchestrator.

    The transformers backend is imported only when no backend is given,
    so torch is never loaded in tests.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if backend is None:
        from sentinel.infrastructure.llm.transformers_backend import TransformersBackend

        backend = TransformersBackend(settings.model)

    documents = JsonDocumentStore(settings.storage.data_dir)
    return CheckInOrchestrator(
        executor=InferenceExecutor(backend, settings.inference),
        state_store=LongitudinalStateStore(documents, settings.longitudinal),
        crisis_machine=CrisisStateMachine(documents, settings.crisis, on_escalation=on_escalation),
        settings=settings,
    )
