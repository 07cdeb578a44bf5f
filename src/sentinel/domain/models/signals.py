"""
Session Signal Models

Aggregated multimodal input for one check-in: questionnaire answers,
voice prosody, biometric deviations and pre-computed text summaries
supplied by the capture layer.

PRIVACY: Transcripts are clinical free text. Never log them directly.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional


# Clinician-facing finding for each positive screener answer
QUESTION_FINDINGS: dict[int, str] = {
    1: "Reports passive death wish",
    2: "Reports suicidal thoughts",
    3: "Reports thoughts with method consideration",
    4: "Reports active suicidal intent",
    5: "Reports specific suicide plan",
    6: "Reports recent suicide attempt",
}

# Questions whose positive answer marks the compact summary as crisis-level
_CRISIS_QUESTIONS: frozenset[int] = frozenset({4, 5})


@dataclass
class QuestionnaireAnswers:
    """
    Finalized yes/no responses to the six screener questions.

    Attributes:
        responses: Question number (1-6) to answer. Skipped
            questions are recorded as False.
    """

    QUESTION_COUNT: ClassVar[int] = 6

    responses: dict[int, bool] = field(default_factory=dict)

    @classmethod
    def from_positives(cls, *questions: int) -> "QuestionnaireAnswers":
        """Build a complete answer set where only the given questions are positive."""
        return cls(responses={
            number: number in questions
            for number in range(1, cls.QUESTION_COUNT + 1)
        })

    def is_positive(self, question: int) -> bool:
        """Whether the given question (1-6) was answered yes."""
        return self.responses.get(question, False) is True

    @property
    def positive_questions(self) -> list[int]:
        """Positive question numbers in ascending order."""
        return [n for n in range(1, self.QUESTION_COUNT + 1) if self.is_positive(n)]

    @property
    def has_any_positive(self) -> bool:
        return bool(self.positive_questions)

    def compact_summary(self) -> str:
        """Compact flag list used in prompts, e.g. 'Q1+, Q4+CRISIS'."""
        flags = [
            f"Q{n}+CRISIS" if n in _CRISIS_QUESTIONS else f"Q{n}+"
            for n in self.positive_questions
        ]
        return ", ".join(flags) if flags else "All negative"

    def findings(self) -> list[str]:
        """Clinician-facing finding per positive answer."""
        return [QUESTION_FINDINGS[n] for n in self.positive_questions]

    def to_dict(self) -> dict:
        return {f"q{n}": self.is_positive(n) for n in range(1, self.QUESTION_COUNT + 1)}


@dataclass(frozen=True)
class VoiceFeatures:
    """
    Prosodic features extracted from the check-in recording.

    Every measurement is optional; extraction may fail per feature.
    """

    mean_pitch: Optional[float] = None
    pitch_variability: Optional[float] = None
    speech_rate: Optional[float] = None
    mean_energy: Optional[float] = None
    energy_variability: Optional[float] = None
    speech_percentage: Optional[float] = None
    average_pause_duration: Optional[float] = None
    pause_count: Optional[int] = None
    snr: Optional[float] = None
    duration_seconds: float = 0.0

    def summary(self, wpm: float) -> str:
        """Compact clinical text, e.g. 'WPM=92, Pauses=4 (avg 1.2s), Pitch=180Hz (var=12.0)'."""
        parts = [f"WPM={int(wpm)}"]

        if self.pause_count is not None:
            avg = f"{self.average_pause_duration:.1f}s" if self.average_pause_duration is not None else "N/A"
            parts.append(f"Pauses={self.pause_count} (avg {avg})")

        if self.mean_pitch is not None:
            var = f"{self.pitch_variability:.1f}" if self.pitch_variability is not None else "N/A"
            parts.append(f"Pitch={self.mean_pitch:.0f}Hz (var={var})")

        if self.mean_energy is not None:
            var = f"{self.energy_variability:.1f}" if self.energy_variability is not None else "N/A"
            parts.append(f"Energy={self.mean_energy:.0f}dB (var={var})")

        if self.speech_percentage is not None:
            parts.append(f"Speech%={self.speech_percentage:.0f}%")

        if self.snr is not None:
            parts.append(f"SNR={self.snr:.0f}dB")

        return ", ".join(parts)

    @staticmethod
    def fallback_summary(wpm: float) -> str:
        """Summary used when no prosodic data was captured."""
        return f"WPM={int(wpm)}, No prosodic data"


@dataclass(frozen=True)
class HealthDeviations:
    """
    Z-score deviations from the 30-day personal baseline.

    Negative values mean below baseline (less sleep, fewer steps,
    lower HRV), which is the clinically concerning direction.
    """

    CONCERNING_THRESHOLD: ClassVar[float] = -1.5
    SIGNIFICANT_THRESHOLD: ClassVar[float] = -2.0
    NOTABLE_MAGNITUDE: ClassVar[float] = 1.5

    sleep_z: Optional[float] = None
    steps_z: Optional[float] = None
    hrv_z: Optional[float] = None

    def _ordered(self) -> list[tuple[str, Optional[float]]]:
        # Clinical priority order: sleep, hrv, activity
        return [("sleep", self.sleep_z), ("hrv", self.hrv_z), ("activity", self.steps_z)]

    def significant_sources(self) -> list[str]:
        """Sources below the significant threshold, in priority order."""
        return [name for name, z in self._ordered() if z is not None and z < self.SIGNIFICANT_THRESHOLD]

    def concerning_sources(self) -> list[str]:
        """Sources below the concerning threshold, in priority order."""
        return [name for name, z in self._ordered() if z is not None and z < self.CONCERNING_THRESHOLD]

    @property
    def has_significant_deviation(self) -> bool:
        return bool(self.significant_sources())

    @property
    def concerning_deviation_count(self) -> int:
        return len(self.concerning_sources())

    def notable_items(self) -> list[str]:
        """Report lines for every deviation with magnitude above 1.5."""
        labels = {"sleep": "Sleep", "hrv": "HRV", "activity": "Activity"}
        return [
            f"{labels[name]} deviation: z={z:.1f}"
            for name, z in self._ordered()
            if z is not None and abs(z) > self.NOTABLE_MAGNITUDE
        ]


@dataclass(frozen=True)
class HealthSnapshot:
    """Biometric snapshot for the check-in day with its baseline deviations."""

    sleep_hours: float = 0.0
    step_count: int = 0
    hrv_ms: float = 0.0
    deviations: HealthDeviations = field(default_factory=HealthDeviations)

    @classmethod
    def empty(cls) -> "HealthSnapshot":
        """Default used when the biometric fetch fails or times out."""
        return cls()

    @property
    def has_data(self) -> bool:
        return self.sleep_hours > 0 or self.step_count > 0 or self.hrv_ms > 0

    def summary(self) -> str:
        """Compact prompt form, e.g. 'Sleep: 7.5hr, Steps: 8500, HRV: 45ms'."""
        sleep = f"{self.sleep_hours:.1f}hr" if self.sleep_hours > 0 else "N/A"
        steps = f"{self.step_count}" if self.step_count > 0 else "N/A"
        hrv = f"{self.hrv_ms:.0f}ms" if self.hrv_ms > 0 else "N/A"
        return f"Sleep: {sleep}, Steps: {steps}, HRV: {hrv}"

    def report_lines(self) -> list[str]:
        """Detailed lines for reports, including notable deviations."""
        return [
            f"Sleep: {self.sleep_hours:.1f} hours",
            f"Steps: {self.step_count}",
            f"HRV: {self.hrv_ms:.0f} ms",
            *self.deviations.notable_items(),
        ]


@dataclass(frozen=True)
class SessionSignals:
    """
    Aggregated multimodal input for one assessment.

    Built once per check-in and immutable afterwards.

    Attributes:
        transcript: Speech-to-text of the check-in recording
        voice_summary: Pre-formatted prosody summary
        telemetry_summary: Behavioral (facial) telemetry report
        health_deviation_summary: Pre-formatted biometric summary
        answers: Finalized screener answers
        voice_features: Typed prosody values, when captured
        health: Typed biometric snapshot, when fetched
        checkin_type: Check-in flavour recorded in the narrative
        words_per_minute: Speech rate derived from the transcript
    """

    transcript: str = ""
    voice_summary: str = ""
    telemetry_summary: str = ""
    health_deviation_summary: str = ""
    answers: QuestionnaireAnswers = field(default_factory=QuestionnaireAnswers)
    voice_features: Optional[VoiceFeatures] = None
    health: Optional[HealthSnapshot] = None
    checkin_type: str = "daily"
    words_per_minute: float = 0.0

    @property
    def deviations(self) -> HealthDeviations:
        """Biometric deviations, empty when no snapshot was fetched."""
        return self.health.deviations if self.health is not None else HealthDeviations()
