"""
Prompt Templates

Versioned prompt text for the six clinical inference tasks.

Templates are external configuration: a JSON document mapping each task
name to a list of lines, joined with newlines. Placeholders use the
{{NAME}} syntax. When the file is absent or unreadable the built-in
defaults below are used.

SAFETY-CRITICAL: A template set missing any task is a configuration
error detected at startup, never a silent empty prompt at runtime.
"""

from pathlib import Path
from typing import Optional

from pydantic import RootModel, ValidationError

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.clinical_enums import TaskType

logger = get_logger(__name__)


class ConfigurationError(Exception):
    """Raised at startup when the prompt template set is unusable."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        self.missing = missing or []
        super().__init__(message)


class TemplateFile(RootModel[dict[str, list[str]]]):
    """On-disk template document: task name to prompt lines."""


USER_TURN = "<start_of_turn>user"
MODEL_TURN = "<end_of_turn>\n<start_of_turn>model\n"


DEFAULT_TEMPLATES: dict[str, list[str]] = {
    TaskType.RISK_ASSESSMENT.value: [
        USER_TURN,
        "Assess mental health risk. Combine history + current data.",
        "",
        "HISTORY (LCSC):",
        "{{HISTORY_CONTEXT}}",
        "",
        "CURRENT DATA:",
        "- Health: {{HEALTH_SUMMARY}}",
        "- Speech: \"{{TRANSCRIPT}}\" ({{WPM}} WPM)",
        "- Voice: {{VOICE_ANALYSIS}}",
        "- Visual: {{BEHAVIORAL_TELEMETRY}}{{SIGNAL_DISCREPANCY}}",
        "- C-SSRS: {{CSSRS_SUMMARY}}{{VIGILANCE_NOTE}}",
        "",
        "TASK:",
        "Assess current risk level based on ALL data above.",
        "",
        "RESPONSE FORMAT (STRICT):",
        "- First word must be: green, yellow, orange, or red",
        "- Second line: Short explanation (1 sentence)",
        "- NO JSON, NO other formatting",
        "",
        "Example response:",
        "red",
        "Active suicidal ideation detected.",
        "",
        "YOUR RESPONSE:",
        MODEL_TURN,
    ],
    TaskType.COMPRESSION.value: [
        USER_TURN,
        "You are updating a clinical continuity note. Merge the PAST CONTEXT with "
        "TODAY'S DATA into a concise, updated summary (max 3 sentences).",
        "",
        "PAST CONTEXT:",
        "{{PREVIOUS_SUMMARY}}",
        "",
        "TODAY'S DATA:",
        "- Risk: {{RISK_TIER}}",
        "- Check-in Type: {{CHECKIN_TYPE}}",
        "- Transcript: {{TRANSCRIPT}}",
        "- Sleep: {{SLEEP_HOURS}} (Trend: {{SLEEP_TREND}})",
        "- Patterns: {{DETECTED_PATTERNS}}",
        "",
        "TASK:",
        "1. Identify if the patient is improving, worsening, or stable vs Past Context.",
        "2. Highlight persistent issues (e.g. \"Sleep remains poor\").",
        "3. Drop irrelevant old details to save space.",
        "",
        "UPDATED SUMMARY:",
        MODEL_TURN,
    ],
    TaskType.REPORT.value: [
        USER_TURN,
        "You are a clinical medical scribe. Write a professional SBAR (Situation, "
        "Background, Assessment, Recommendation) secure message to a {{RECIPIENT}}.",
        "",
        "PATIENT: {{PATIENT_NAME}}",
        "RISK TIER: {{RISK_TIER}}",
        "HISTORY: {{HISTORY_CONTEXT}}",
        "DATA:",
        "    {{HEALTH_CONTEXT}}",
        "    {{VOICE_CONTEXT}}",
        "TRANSCRIPT: {{TRANSCRIPT}}",
        "",
        "STRICT RULES:",
        "1. Audience: This is for {{RECIPIENT}}. Tailor the language accordingly.",
        "2. USE ONLY THE DATA PROVIDED. Do not invent symptoms.",
        "3. Format strictly as SBAR with exactly four sections.",
        "4. STOP IMMEDIATELY after the RECOMMENDATION section.",
        "",
        "FORMAT:",
        "SITUATION: [State current risk tier]",
        "BACKGROUND: [Summarize data]",
        "ASSESSMENT: [Clinical summary of provided data]",
        "RECOMMENDATION: [Follow-up requested from {{RECIPIENT}}]",
        MODEL_TURN,
    ],
    TaskType.CONTEXT_INGESTION.value: [
        USER_TURN,
        "You are maintaining a clinical summary for a veteran.",
        "",
        "CURRENT SUMMARY:",
        "{{CURRENT_SUMMARY}}",
        "",
        "NEW DOCUMENT ({{DOCUMENT_TYPE}}):",
        "{{NEW_CONTEXT}}",
        "",
        "TASK:",
        "Update the CURRENT SUMMARY to include key medical history, diagnoses, and "
        "risk factors from the NEW DOCUMENT.",
        "Keep the summary concise (under 300 words). Do not lose existing important details.",
        "",
        "UPDATED SUMMARY:",
        MODEL_TURN,
    ],
    TaskType.EXPLAIN_RISK.value: [
        USER_TURN,
        "You are a clinical explainability engine. Explain WHY the patient is "
        "currently at {{RISK_LEVEL}} risk level.",
        "",
        "PATIENT HISTORY:",
        "{{HISTORY_CONTEXT}}",
        "",
        "RECENT RISK FACTORS:",
        "{{RISK_FACTORS}}",
        "",
        "HEALTH DATA:",
        "{{HEALTH_CONTEXT}}",
        "",
        "LATEST DATA IS FROM: {{TIME_AGO}}",
        "SOURCE OF RISK: {{DATA_SOURCE}}",
        "",
        "TASK:",
        "Provide a 2-sentence explanation for the risk level. Do NOT analyze. Do NOT think.",
        "",
        "RULES:",
        "1. Start immediately with the explanation.",
        "2. If C-SSRS flags exist, cite them.",
        "3. If recent data is poor (e.g. 0 hours sleep), cite it.",
        "4. NO <thought> tags. NO internal monologue.",
        "",
        "EXPLANATION:",
        MODEL_TURN,
    ],
    TaskType.RERANK_SAFETY_PLAN.value: [
        USER_TURN,
        "Reorder safety plan sections for a veteran in crisis. Output ONLY a "
        "comma-separated list of numbers. Do NOT think. Do NOT explain.",
        "",
        "SECTIONS:",
        "1=Warning Signs, 2=Coping Strategies, 3=Social Distractions, 4=Support Contacts, "
        "5=Professional Help, 6=Lethal Means Reduction, 7=Reasons for Living",
        "",
        "CLINICAL CONTEXT:",
        "Trajectory: {{TRAJECTORY}}",
        "Primary Driver: {{PRIMARY_DRIVER}}",
        "Risk Tier: {{RISK_TIER}}",
        "Recent Crises: {{RECENT_CRISIS_COUNT}}",
        "Detected Patterns: {{DETECTED_PATTERNS}}",
        "Narrative: {{CLINICAL_NARRATIVE}}",
        "",
        "RULES:",
        "1. Output EXACTLY 7 numbers separated by commas, most relevant section FIRST.",
        "2. Every number 1-7 must appear EXACTLY once.",
        "3. No JSON. No explanation. ONLY the 7 numbers.",
        "",
        "Example: 6,5,2,7,4,3,1",
        "",
        "ORDER:",
        MODEL_TURN,
    ],
}


class PromptTemplateLoader:
    """
    Loads and validates the template set.

    Usage:
        loader = PromptTemplateLoader(settings.storage.prompt_templates_path)
        loader.validate()
        template = loader.get(TaskType.RISK_ASSESSMENT)
    """

    REQUIRED_TASKS: frozenset[str] = frozenset(task.value for task in TaskType)

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._templates: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if self.path is None:
            return self._defaults()

        try:
            raw = Path(self.path).read_text(encoding="utf-8")
            document = TemplateFile.model_validate_json(raw)
        except FileNotFoundError:
            logger.warning("Prompt template file not found, using defaults", path=str(self.path))
            return self._defaults()
        except (OSError, ValidationError) as e:
            logger.error(
                "Prompt template file unreadable, using defaults",
                path=str(self.path),
                error=str(e),
            )
            return self._defaults()

        logger.info("Prompt templates loaded", path=str(self.path), tasks=sorted(document.root))
        return {task: "\n".join(lines) for task, lines in document.root.items()}

    @staticmethod
    def _defaults() -> dict[str, str]:
        return {task: "\n".join(lines) for task, lines in DEFAULT_TEMPLATES.items()}

    def validate(self) -> None:
        """
        Verify every task has a non-empty template.

        Raises:
            ConfigurationError: If a required task is missing or empty
        """
        missing = sorted(self.REQUIRED_TASKS - set(self._templates))
        empty = sorted(
            task for task in self.REQUIRED_TASKS & set(self._templates)
            if not self._templates[task].strip()
        )
        if missing or empty:
            logger.critical("Prompt template set invalid", missing=missing, empty=empty)
            raise ConfigurationError(
                f"Prompt templates missing or empty for: {', '.join(missing + empty)}",
                missing=missing + empty,
            )

    def get(self, task: TaskType) -> str:
        """Template text for a task (empty string if absent; validate() guards this)."""
        return self._templates.get(task.value, "")

    def tasks(self) -> list[str]:
        return sorted(self._templates)

