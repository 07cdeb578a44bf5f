"""
Prompt Assembler

Fills the task templates with session signals, longitudinal context
and task-specific extras.

ARCHITECTURE:
- Pure and total: every placeholder gets a value; missing optional
  inputs degrade to the explicit "Not available" marker
- Free-text inputs are truncated to keep prompts inside the small
  on-device context window
- Risk prompts carry a vigilance note from the longitudinal risk
  modifiers and a cross-modal discrepancy note

PRIVACY: Assembled prompts contain clinical free text. Log sizes only.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from sentinel.config.logging_config import get_logger
from sentinel.config.settings import LongitudinalSettings
from sentinel.domain.enums.clinical_enums import RecipientType, TaskType
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.longitudinal_state import LongitudinalState
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.signals import SessionSignals, VoiceFeatures
from sentinel.services.analysis.discrepancy_detector import DiscrepancyDetector, discrepancy_detector
from sentinel.services.longitudinal.state_store import NO_PRIOR_HISTORY, format_for_prompt, risk_modifiers
from sentinel.services.prompt.prompt_templates import PromptTemplateLoader

logger = get_logger(__name__)


NOT_AVAILABLE = "Not available"
TRUNCATION_SUFFIX = "...(truncated)"

MAX_HISTORY_CHARS = 500
MAX_TELEMETRY_CHARS = 400
MAX_TRANSCRIPT_CHARS = 600

PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")

# Explanation prompt wording per positive screener answer
_RISK_FACTOR_LINES: dict[int, str] = {
    1: "- Reported passive death wish",
    2: "- Reported suicidal thoughts",
    3: "- Thoughts with method",
    4: "- Active intent declared",
    5: "- Specific plan declared",
    6: "- Recent attempt reported",
}

# Report prompt wording per positive screener answer
_REPORT_FLAGS: dict[int, str] = {
    1: "Passive death wish",
    2: "Suicidal thoughts",
    3: "Thoughts with method",
    4: "Active intent",
    5: "Specific plan",
    6: "Recent attempt reported",
}


def truncate(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_SUFFIX


def _or_marker(text: Optional[str]) -> str:
    return text if text and text.strip() else NOT_AVAILABLE


@dataclass
class PromptContext:
    """
    Task-specific extras not carried by the session signals.

    Attributes:
        risk_tier: Tier for compression, report and explanation prompts
        recipient: Report audience
        patient_name: Preferred name used in reports
        prior_narrative: Narrative override (otherwise taken from state)
        document_text: New clinical document for ingestion
        document_type: Label of the ingested document
        data_source: What determined the tier (explanation prompt)
        time_ago: Relative age of the latest data (explanation prompt)
        detected_patterns: Patterns override (otherwise taken from state)
        discrepancy_note: Pre-computed discrepancy note for risk prompts
        extras: Additional placeholder values for custom templates
    """

    risk_tier: Optional[RiskTier] = None
    recipient: RecipientType = RecipientType.PRIMARY_CARE
    patient_name: str = "Veteran"
    prior_narrative: Optional[str] = None
    document_text: Optional[str] = None
    document_type: str = "Discharge Summary"
    data_source: Optional[str] = None
    time_ago: Optional[str] = None
    detected_patterns: Optional[list[DetectedPattern]] = None
    discrepancy_note: Optional[str] = None
    extras: dict[str, str] = field(default_factory=dict)


class PromptAssembler:
    """
    Builds task prompts from templates.

    Usage:
        assembler = PromptAssembler(loader)
        prompt = assembler.build(TaskType.RISK_ASSESSMENT, signals, state)
    """

    def __init__(
        self,
        templates: Optional[PromptTemplateLoader] = None,
        detector: Optional[DiscrepancyDetector] = None,
        longitudinal_settings: Optional[LongitudinalSettings] = None,
    ) -> None:
        self._templates = templates or PromptTemplateLoader()
        self._detector = detector or discrepancy_detector
        self._longitudinal_settings = longitudinal_settings or LongitudinalSettings()

    def build(
        self,
        task: TaskType,
        signals: Optional[SessionSignals],
        state: Optional[LongitudinalState],
        context: Optional[PromptContext] = None,
    ) -> str:
        """
        Assemble the prompt for one task.

        Args:
            task: Task type
            signals: Session input (may be empty for ingestion and rerank)
            state: Longitudinal state, if any
            context: Task-specific extras

        Returns:
            Prompt text with every placeholder filled
        """
        signals = signals or SessionSignals()
        context = context or PromptContext()

        builders = {
            TaskType.RISK_ASSESSMENT: self._risk_values,
            TaskType.COMPRESSION: self._compression_values,
            TaskType.REPORT: self._report_values,
            TaskType.CONTEXT_INGESTION: self._ingestion_values,
            TaskType.EXPLAIN_RISK: self._explanation_values,
            TaskType.RERANK_SAFETY_PLAN: self._rerank_values,
        }
        values = builders[task](signals, state, context)
        values.update(context.extras)

        prompt = self.fill(self._templates.get(task), values)
        logger.debug("Prompt assembled", task=task.value, prompt_chars=len(prompt))
        return prompt

    @staticmethod
    def fill(template: str, values: dict[str, str]) -> str:
        """Replace every {{NAME}}; unknown names get the missing-data marker."""
        return PLACEHOLDER.sub(lambda m: values.get(m.group(1), NOT_AVAILABLE), template)

    # -------------------------------------------------------------------------
    # Shared pieces
    # -------------------------------------------------------------------------

    @staticmethod
    def _voice_analysis(signals: SessionSignals) -> str:
        if signals.voice_summary:
            return signals.voice_summary
        if signals.voice_features is not None:
            return signals.voice_features.summary(signals.words_per_minute)
        return VoiceFeatures.fallback_summary(signals.words_per_minute)

    @staticmethod
    def _health_summary(signals: SessionSignals) -> str:
        if signals.health_deviation_summary:
            return signals.health_deviation_summary
        if signals.health is not None and signals.health.has_data:
            return signals.health.summary()
        return NOT_AVAILABLE

    @staticmethod
    def _transcript(signals: SessionSignals) -> str:
        return _or_marker(truncate(signals.transcript, MAX_TRANSCRIPT_CHARS))

    @staticmethod
    def _narrative(state: Optional[LongitudinalState], context: PromptContext) -> Optional[str]:
        if context.prior_narrative is not None:
            return context.prior_narrative
        return state.clinical_narrative if state is not None else None

    @staticmethod
    def _tier_name(tier: Optional[RiskTier]) -> str:
        return tier.display_name if tier is not None else NOT_AVAILABLE

    # -------------------------------------------------------------------------
    # Per-task values
    # -------------------------------------------------------------------------

    def _risk_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        vigilant, reason = risk_modifiers(state, self._longitudinal_settings)
        vigilance_note = f"\nNOTE: Increase vigilance - {reason or 'trajectory concern'}" if vigilant else ""

        note = context.discrepancy_note
        if note is None:
            note = self._detector.detect(
                signals.transcript, signals.voice_features, signals.telemetry_summary
            ).note()
        discrepancy_note = f" | SIGNAL DISCREPANCY: {note}" if note else ""

        return {
            "HISTORY_CONTEXT": truncate(format_for_prompt(state), MAX_HISTORY_CHARS),
            "HEALTH_SUMMARY": self._health_summary(signals),
            "TRANSCRIPT": self._transcript(signals),
            "WPM": str(int(signals.words_per_minute)),
            "VOICE_ANALYSIS": self._voice_analysis(signals),
            "BEHAVIORAL_TELEMETRY": _or_marker(truncate(signals.telemetry_summary, MAX_TELEMETRY_CHARS)),
            "CSSRS_SUMMARY": signals.answers.compact_summary(),
            "VIGILANCE_NOTE": vigilance_note,
            "SIGNAL_DISCREPANCY": discrepancy_note,
        }

    def _compression_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        health = signals.health
        sleep_hours = f"{health.sleep_hours:.1f}h" if health is not None and health.sleep_hours > 0 else NOT_AVAILABLE
        sleep_z = signals.deviations.sleep_z
        patterns = context.detected_patterns or []

        return {
            "PREVIOUS_SUMMARY": self._narrative(state, context) or "Initial intake. No prior history.",
            "RISK_TIER": self._tier_name(context.risk_tier),
            "CHECKIN_TYPE": _or_marker(signals.checkin_type),
            "TRANSCRIPT": self._transcript(signals),
            "SLEEP_HOURS": sleep_hours,
            "SLEEP_TREND": f"{sleep_z:.2f}" if sleep_z is not None else NOT_AVAILABLE,
            "DETECTED_PATTERNS": ", ".join(p.label() for p in patterns) or "None detected",
        }

    def _report_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        health_items: list[str] = []
        if signals.health is not None and signals.health.has_data:
            health_items.extend(signals.health.report_lines())
        else:
            health_items.append("No biometric data available")

        flags = [_REPORT_FLAGS[n] for n in signals.answers.positive_questions]
        if flags:
            health_items.append("C-SSRS FLAGS: " + ", ".join(flags))

        behavior = _or_marker(truncate(signals.telemetry_summary, MAX_TELEMETRY_CHARS))
        narrative = self._narrative(state, context)

        return {
            "RECIPIENT": context.recipient.value,
            "PATIENT_NAME": context.patient_name,
            "RISK_TIER": self._tier_name(context.risk_tier),
            "HISTORY_CONTEXT": _or_marker(truncate(narrative, MAX_HISTORY_CHARS) if narrative else None),
            "HEALTH_CONTEXT": "\n    ".join(health_items),
            "VOICE_CONTEXT": f"Voice: {self._voice_analysis(signals)}\n    Behavior: {behavior}",
            "TRANSCRIPT": self._transcript(signals),
        }

    def _ingestion_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        return {
            "CURRENT_SUMMARY": _or_marker(self._narrative(state, context)),
            "NEW_CONTEXT": _or_marker(context.document_text),
            "DOCUMENT_TYPE": context.document_type,
        }

    def _explanation_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        risk_lines = [_RISK_FACTOR_LINES[n] for n in signals.answers.positive_questions]

        health_items: list[str] = []
        health = signals.health
        if health is not None:
            health_items.append(f"Sleep: {health.sleep_hours:.1f} hours" if health.sleep_hours > 0 else "Sleep: N/A")
            if health.hrv_ms > 0:
                health_items.append(f"HRV: {health.hrv_ms:.0f} ms")
            sleep_z = health.deviations.sleep_z
            if sleep_z is not None and abs(sleep_z) > 1.5:
                health_items.append(f"Sleep deviation: z={sleep_z:.1f}")
        narrative = self._narrative(state, context)

        return {
            "RISK_LEVEL": self._tier_name(context.risk_tier),
            "HISTORY_CONTEXT": _or_marker(truncate(narrative, MAX_HISTORY_CHARS) if narrative else None),
            "RISK_FACTORS": "\n".join(risk_lines) if risk_lines else "None reported in this check-in.",
            "HEALTH_CONTEXT": "\n".join(health_items) if health_items else NOT_AVAILABLE,
            "TIME_AGO": _or_marker(context.time_ago),
            "DATA_SOURCE": _or_marker(context.data_source),
        }

    def _rerank_values(
        self,
        signals: SessionSignals,
        state: Optional[LongitudinalState],
        context: PromptContext,
    ) -> dict[str, str]:
        patterns = context.detected_patterns
        if patterns is None:
            patterns = state.detected_patterns if state is not None else []

        narrative = state.clinical_narrative if state is not None else ""
        last_tier = state.last_risk_tier if state is not None else None
        driver = state.primary_driver if state is not None else None

        return {
            "TRAJECTORY": state.trajectory.value if state is not None else "stable",
            "PRIMARY_DRIVER": driver.value if driver is not None else "combined",
            "RISK_TIER": last_tier.display_name if last_tier is not None else RiskTier.CRISIS.display_name,
            "RECENT_CRISIS_COUNT": str(state.recent_crisis_count if state is not None else 0),
            "DETECTED_PATTERNS": ", ".join(p.label() for p in patterns) or "None detected",
            "CLINICAL_NARRATIVE": truncate(narrative, MAX_HISTORY_CHARS) if narrative.strip() else NO_PRIOR_HISTORY,
        }
