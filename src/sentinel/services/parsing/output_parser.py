"""
Output Parser

Multi-strategy decoder that extracts structured results from noisy
free-text model output.

SAFETY-CRITICAL: A risk output that no strategy can decode is a parse
failure (None), never an implicit LOW. Callers must treat it exactly
like a backend failure and use the deterministic fallback.

Risk cascade, first success wins:
1. First line is exactly a tier color word (optionally followed by text)
2. Full text scanned for tier keywords, highest severity first
3. Full text scanned for canonical risk phrases
4. Legacy JSON payload decode
"""

import json
import re
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.enums.safety_plan import SafetyPlanSection
from sentinel.domain.models.task_results import RiskTriagePayload
from sentinel.services.parsing.text_cleanup import (
    clean_explanation,
    strip_thinking_block,
    truncate_to_sentences,
)

logger = get_logger(__name__)


class CompletionEnvelope(BaseModel):
    """Completion wrapper some runtimes emit around the generated text."""

    model_config = ConfigDict(extra="ignore")

    completion: str = Field(validation_alias=AliasChoices("completion", "content"))


class LegacyTriagePayload(BaseModel):
    """Structured risk payload from older prompt versions."""

    model_config = ConfigDict(extra="ignore")

    risk_tier: str = Field(validation_alias=AliasChoices("risk_tier", "riskTier"))
    reasoning: str = ""
    risk_score: Optional[float] = Field(default=None, validation_alias=AliasChoices("risk_score", "riskScore"))
    key_deviations: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_deviations", "keyDeviations"),
    )
    action: Optional[str] = None


class OutputParser:
    """
    Decoders for risk triage, safety plan reranking and free text.

    Usage:
        payload = output_parser.parse_risk(raw_text)
        if payload is None:
            ...  # use fallback
    """

    # Ordered high to low so ambiguous text resolves to the safer tier
    TIER_KEYWORDS: tuple[tuple[str, RiskTier], ...] = (
        ("red", RiskTier.CRISIS),
        ("crisis", RiskTier.CRISIS),
        ("orange", RiskTier.HIGH_MONITORING),
        ("yellow", RiskTier.MODERATE),
        ("green", RiskTier.LOW),
    )

    # Negated phrases precede the phrases they contain
    RISK_PHRASES: tuple[tuple[str, RiskTier], ...] = (
        ("immediate risk", RiskTier.CRISIS),
        ("imminent risk", RiskTier.CRISIS),
        ("acute risk", RiskTier.CRISIS),
        ("no significant risk", RiskTier.LOW),
        ("high risk", RiskTier.HIGH_MONITORING),
        ("elevated risk", RiskTier.HIGH_MONITORING),
        ("significant risk", RiskTier.HIGH_MONITORING),
        ("significant distress", RiskTier.HIGH_MONITORING),
        ("moderate risk", RiskTier.MODERATE),
        ("low risk", RiskTier.LOW),
        ("minimal risk", RiskTier.LOW),
    )

    FIRST_LINE_CONFIDENCE = 0.9
    SCAN_CONFIDENCE = 0.7
    MAX_RATIONALE_SENTENCES = 2

    MIN_RERANK_VALUES = 3
    RERANK_ARTIFACTS = ("```json", "```", "[", "]")
    JSON_OBJECT = re.compile(r"\{(?:[^{}]|\{[^{}]*\})*\}", re.DOTALL)

    # -------------------------------------------------------------------------
    # Risk triage
    # -------------------------------------------------------------------------

    def parse_risk(self, text: str) -> Optional[RiskTriagePayload]:
        """
        Decode a risk triage output.

        Args:
            text: Raw model output

        Returns:
            RiskTriagePayload, or None when every strategy fails
        """
        content = self._extract_content(text).strip()
        lines = [line.strip() for line in content.splitlines() if line.strip()]
        first_line = lines[0].lower() if lines else ""

        tier = self._match_first_line(first_line)
        strategy = "first_line"

        if tier is None:
            tier = self._scan_keywords(content)
            strategy = "keyword_scan"

        if tier is None:
            tier = self._scan_phrases(content)
            strategy = "phrase_scan"

        if tier is not None:
            legacy = self._decode_legacy(content)
            if legacy is not None:
                # Structured payload caught by a scan: keep its own fields
                logger.info("Risk output parsed", strategy=strategy, tier=tier.name, legacy_fields=True)
                return RiskTriagePayload(
                    tier=tier,
                    rationale=truncate_to_sentences(legacy.reasoning, self.MAX_RATIONALE_SENTENCES)
                    or f"Risk assessment: {tier.display_name}",
                    confidence=self.SCAN_CONFIDENCE,
                    risk_score=legacy.risk_score,
                    key_deviations=legacy.key_deviations,
                    action=legacy.action,
                )

            # Only a bare tier word on line one is dropped from the rationale
            first_line_is_word = any(first_line == word for word, _ in self.TIER_KEYWORDS)
            rationale = " ".join(lines[1:]) if first_line_is_word and len(lines) > 1 else content
            rationale = truncate_to_sentences(rationale, self.MAX_RATIONALE_SENTENCES)

            logger.info("Risk output parsed", strategy=strategy, tier=tier.name)
            return RiskTriagePayload(
                tier=tier,
                rationale=rationale or f"Risk assessment: {tier.display_name}",
                confidence=self.FIRST_LINE_CONFIDENCE if first_line_is_word else self.SCAN_CONFIDENCE,
            )

        payload = self._parse_legacy_json(text)
        if payload is not None:
            logger.info("Risk output parsed", strategy="legacy_json", tier=payload.tier.name)
            return payload

        logger.warning("Risk output parse failure", output_chars=len(text))
        return None

    def _match_first_line(self, first_line: str) -> Optional[RiskTier]:
        for word, tier in self.TIER_KEYWORDS:
            if first_line == word or first_line.startswith(f"{word} "):
                return tier
        return None

    def _scan_keywords(self, content: str) -> Optional[RiskTier]:
        lowered = content.lower()
        for word, tier in self.TIER_KEYWORDS:
            if re.search(rf"\b{word}\b", lowered):
                return tier
        return None

    def _scan_phrases(self, content: str) -> Optional[RiskTier]:
        lowered = content.lower()
        for phrase, tier in self.RISK_PHRASES:
            if phrase in lowered:
                return tier
        return None

    def _decode_legacy(self, text: str) -> Optional[LegacyTriagePayload]:
        match = self.JSON_OBJECT.search(text)
        if match is None:
            return None
        try:
            return LegacyTriagePayload.model_validate_json(match.group(0))
        except ValidationError:
            return None

    def _parse_legacy_json(self, text: str) -> Optional[RiskTriagePayload]:
        legacy = self._decode_legacy(text)
        if legacy is None:
            return None

        tier = RiskTier.from_string(legacy.risk_tier)
        if tier is None:
            return None

        score = legacy.risk_score
        return RiskTriagePayload(
            tier=tier,
            rationale=truncate_to_sentences(legacy.reasoning, self.MAX_RATIONALE_SENTENCES),
            confidence=(score if score is not None else 5.0) / 10.0,
            risk_score=score,
            key_deviations=legacy.key_deviations,
            action=legacy.action,
        )

    def _extract_content(self, text: str) -> str:
        """Unwrap completion envelopes and strip thinking markup."""
        cleaned = text.replace("```json", "").replace("```", "").strip()

        if cleaned.startswith("[") or cleaned.startswith("{"):
            try:
                decoded = json.loads(cleaned)
            except json.JSONDecodeError:
                decoded = None

            entry = decoded[0] if isinstance(decoded, list) and decoded else decoded
            if isinstance(entry, dict):
                try:
                    envelope = CompletionEnvelope.model_validate(entry)
                except ValidationError:
                    envelope = None
                if envelope is not None:
                    logger.info("Unwrapped completion envelope")
                    return strip_thinking_block(envelope.completion)

        return strip_thinking_block(text)

    # -------------------------------------------------------------------------
    # Safety plan reranking
    # -------------------------------------------------------------------------

    def parse_rerank(self, text: str) -> Optional[list[int]]:
        """
        Decode a section ordering.

        Valid section numbers (1-7) are kept in order of first appearance.
        At least three distinct values are required; missing sections are
        appended in ascending order so the result is a full permutation.

        Returns:
            Permutation of 1-7, or None when fewer than three values parse
        """
        cleaned = text
        for artifact in self.RERANK_ARTIFACTS:
            cleaned = cleaned.replace(artifact, "")

        valid = set(SafetyPlanSection.all_numbers())
        order: list[int] = []
        for token in re.split(r"[,\s]+", cleaned.strip()):
            if not token.isdigit():
                continue
            value = int(token)
            if value in valid and value not in order:
                order.append(value)

        if len(order) < self.MIN_RERANK_VALUES:
            logger.warning("Rerank output invalid", valid_count=len(order))
            return None

        missing = sorted(valid - set(order))
        if missing:
            logger.info("Rerank output repaired", appended=missing)
        return order + missing

    # -------------------------------------------------------------------------
    # Free text
    # -------------------------------------------------------------------------

    def parse_explanation(self, text: str) -> Optional[str]:
        """User-facing explanation: no thinking markup, at most two sentences."""
        explanation = clean_explanation(text, self.MAX_RATIONALE_SENTENCES)
        return explanation or None

    def parse_narrative(self, text: str, max_chars: int = 2000) -> Optional[str]:
        """Narrative for compression or ingestion; None when empty."""
        narrative = strip_thinking_block(text)
        return narrative[:max_chars] if narrative else None


# Global instance
output_parser = OutputParser()
