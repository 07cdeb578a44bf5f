"""
Detected Pattern Model

A named cross-modal anomaly produced transiently per session.
The latest set is cached in the longitudinal state for reranking.
"""

from dataclasses import dataclass

from sentinel.domain.enums.clinical_enums import DataSource, PatternSeverity, PatternType


@dataclass(frozen=True)
class DetectedPattern:
    """
    A pattern detected in behavioral or biometric data.

    Attributes:
        pattern_type: Kind of anomaly
        severity: Clinical severity
        source: Modality that produced it
        description: Short clinician-facing explanation
    """

    pattern_type: PatternType
    severity: PatternSeverity
    source: DataSource
    description: str = ""

    def label(self) -> str:
        """Prompt form, e.g. 'MASKING (moderate)'."""
        return f"{self.pattern_type.value} ({self.severity.value})"

    def to_dict(self) -> dict:
        return {
            "type": self.pattern_type.value,
            "severity": self.severity.value,
            "source": self.source.value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DetectedPattern":
        return cls(
            pattern_type=PatternType(data["type"]),
            severity=PatternSeverity(data["severity"]),
            source=DataSource(data["source"]),
            description=data.get("description", ""),
        )
