"""
Discrepancy Detector

Detects cross-modal disagreement between what a veteran says and how
they sound or look, plus biometric deviation patterns.

SAFETY-CRITICAL: Saying "I'm fine" with flat vocal affect and visible
postural decline is a masking pattern. These findings are surfaced to
the model as a discrepancy note; they never lower a tier on their own.

Patterns:
- MASKING: positive verbal content with flat or low-energy prosody
- CONCORDANT_DECOMPENSATION: slow speech with postural decline
- AVOIDANCE: frequent pauses with behavioral avoidance
- SLEEP_DISRUPTION / ACTIVITY_DECLINE / HRV_DROP: key biometric deviations
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.clinical_enums import DataSource, PatternSeverity, PatternType
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.signals import VoiceFeatures
from sentinel.infrastructure.metrics import track_pattern

logger = get_logger(__name__)


@dataclass
class DiscrepancyResult:
    """
    Result of cross-modal analysis.

    Attributes:
        patterns: Detected patterns, in detection order
        findings: One clinician-facing line per pattern
    """

    patterns: list[DetectedPattern] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)

    @property
    def has_discrepancy(self) -> bool:
        return bool(self.patterns)

    def note(self) -> Optional[str]:
        """Joined findings for the prompt, or None when signals agree."""
        return "; ".join(self.findings) if self.findings else None


class DiscrepancyDetector:
    """
    Rule-based cross-modal pattern detector.

    Usage:
        result = discrepancy_detector.detect(transcript, voice_features, telemetry)
        if result.has_discrepancy:
            ...
    """

    POSITIVE_MARKERS: tuple[str, ...] = (
        "fine", "good", "okay", "great", "not bad", "alright",
        "better", "well", "doing okay", "i'm okay", "i'm fine",
        "i'm good", "no complaints", "can't complain",
    )

    FLAT_PITCH_VARIABILITY = 15.0
    LOW_ENERGY_DB = -30.0
    LOW_ENERGY_VARIABILITY = 5.0
    SLOW_SPEECH_RATE = 1.5  # syllables per second
    HIGH_PAUSE_COUNT = 6

    DECOMPENSATION_MARKERS: tuple[str, ...] = ("Progressive head droop", "decompensation")
    AVOIDANCE_MARKERS: tuple[str, ...] = ("avoidance",)

    DEVIATION_PATTERNS: dict[str, tuple[PatternType, DataSource]] = {
        "sleep": (PatternType.SLEEP_DISRUPTION, DataSource.SLEEP),
        "activity": (PatternType.ACTIVITY_DECLINE, DataSource.ACTIVITY),
        "steps": (PatternType.ACTIVITY_DECLINE, DataSource.ACTIVITY),
        "hrv": (PatternType.HRV_DROP, DataSource.HRV),
    }

    def __init__(self) -> None:
        self._positive_pattern = re.compile(
            r"\b(" + "|".join(re.escape(m) for m in self.POSITIVE_MARKERS) + r")\b",
            re.IGNORECASE,
        )

    def has_positive_content(self, transcript: str) -> bool:
        """Whether the transcript contains a positive self-report marker."""
        return self._positive_pattern.search(transcript) is not None

    def detect(
        self,
        transcript: str,
        voice_features: Optional[VoiceFeatures],
        telemetry_report: str,
    ) -> DiscrepancyResult:
        """
        Analyze transcript, prosody and behavioral telemetry.

        All rules need prosody; without voice features nothing is detected.

        Args:
            transcript: Speech-to-text of the check-in
            voice_features: Prosodic features, if captured
            telemetry_report: Behavioral telemetry summary

        Returns:
            DiscrepancyResult (empty when signals are concordant)
        """
        result = DiscrepancyResult()
        if voice_features is None:
            return result

        vf = voice_features

        pitch_var = vf.pitch_variability if vf.pitch_variability is not None else 100.0
        energy = vf.mean_energy if vf.mean_energy is not None else 0.0
        energy_var = vf.energy_variability if vf.energy_variability is not None else 100.0
        flat_pitch = pitch_var < self.FLAT_PITCH_VARIABILITY
        low_energy = energy < self.LOW_ENERGY_DB and energy_var < self.LOW_ENERGY_VARIABILITY

        if self.has_positive_content(transcript) and (flat_pitch or low_energy):
            self._add(
                result,
                PatternType.MASKING,
                PatternSeverity.MODERATE,
                "Positive verbal content with flat vocal prosody "
                f"(pitch var: {vf.pitch_variability or 0:.1f}, energy: {vf.mean_energy or 0:.0f}dB)",
            )

        speech_rate = vf.speech_rate if vf.speech_rate is not None else 100.0
        if speech_rate < self.SLOW_SPEECH_RATE and self._mentions(telemetry_report, self.DECOMPENSATION_MARKERS):
            self._add(
                result,
                PatternType.CONCORDANT_DECOMPENSATION,
                PatternSeverity.SIGNIFICANT,
                "Low speech rate with progressive postural decline",
            )

        pauses = vf.pause_count or 0
        if pauses > self.HIGH_PAUSE_COUNT and self._mentions(telemetry_report, self.AVOIDANCE_MARKERS):
            self._add(
                result,
                PatternType.AVOIDANCE,
                PatternSeverity.MODERATE,
                f"Gaze avoidance with frequent speech hesitations ({pauses} pauses)",
            )

        if result.has_discrepancy:
            logger.info(
                "Cross-modal discrepancy detected",
                patterns=[p.pattern_type.value for p in result.patterns],
            )
        return result

    def patterns_from_deviations(self, key_deviations: list[str]) -> list[DetectedPattern]:
        """Biometric patterns for the triage key deviations; unknown sources are skipped."""
        patterns: list[DetectedPattern] = []
        seen: set[PatternType] = set()
        for deviation in key_deviations:
            mapping = self.DEVIATION_PATTERNS.get(deviation.strip().lower())
            if mapping is None or mapping[0] in seen:
                continue
            pattern_type, source = mapping
            seen.add(pattern_type)
            patterns.append(DetectedPattern(
                pattern_type=pattern_type,
                severity=PatternSeverity.MODERATE,
                source=source,
                description=f"Deviation detected in {source.value}",
            ))
            track_pattern(pattern_type.value)
        return patterns

    @staticmethod
    def _mentions(report: str, markers: tuple[str, ...]) -> bool:
        return any(marker in report for marker in markers)

    @staticmethod
    def _add(
        result: DiscrepancyResult,
        pattern_type: PatternType,
        severity: PatternSeverity,
        description: str,
    ) -> None:
        source = DataSource.VOICE if pattern_type == PatternType.MASKING else DataSource.COMBINED
        result.patterns.append(DetectedPattern(
            pattern_type=pattern_type,
            severity=severity,
            source=source,
            description=description,
        ))
        result.findings.append(f"{pattern_type.value.replace('_', ' ')}: {description}")
        track_pattern(pattern_type.value)


# Global instance
discrepancy_detector = DiscrepancyDetector()
