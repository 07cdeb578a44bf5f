"""
Persisted Document Schemas

Pydantic records for the JSON documents in the local store, with
conversion to and from the domain dataclasses. Validation failures on
read mean the document is treated as absent.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sentinel.domain.enums.clinical_enums import (
    DataSource,
    PatternSeverity,
    PatternType,
    PrimaryDriver,
    Trajectory,
)
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.crisis_session import CrisisEpisode, CrisisSession, CrisisStatus
from sentinel.domain.models.longitudinal_state import LongitudinalState
from sentinel.domain.models.patterns import DetectedPattern


class PatternRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: PatternType
    severity: PatternSeverity
    source: DataSource
    description: str = ""

    @classmethod
    def from_domain(cls, pattern: DetectedPattern) -> "PatternRecord":
        return cls(
            type=pattern.pattern_type,
            severity=pattern.severity,
            source=pattern.source,
            description=pattern.description,
        )

    def to_domain(self) -> DetectedPattern:
        return DetectedPattern(
            pattern_type=self.type,
            severity=self.severity,
            source=self.source,
            description=self.description,
        )


class LongitudinalStateRecord(BaseModel):
    """Stored form of LongitudinalState. Tiers are stored by numeric value."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = 1
    last_updated: datetime
    last_check_in_at: Optional[datetime] = None
    check_in_count: int = Field(default=0, ge=0)
    trajectory: Trajectory = Trajectory.STABLE
    primary_driver: Optional[PrimaryDriver] = None
    last_risk_tier: Optional[RiskTier] = None
    recent_crisis_count: int = Field(default=0, ge=0)
    days_since_last_crisis: Optional[int] = Field(default=None, ge=0)
    clinical_narrative: str = ""
    detected_patterns: list[PatternRecord] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, state: LongitudinalState) -> "LongitudinalStateRecord":
        return cls(
            last_updated=state.last_updated,
            last_check_in_at=state.last_check_in_at,
            check_in_count=state.check_in_count,
            trajectory=state.trajectory,
            primary_driver=state.primary_driver,
            last_risk_tier=state.last_risk_tier,
            recent_crisis_count=state.recent_crisis_count,
            days_since_last_crisis=state.days_since_last_crisis,
            clinical_narrative=state.clinical_narrative,
            detected_patterns=[PatternRecord.from_domain(p) for p in state.detected_patterns],
        )

    def to_domain(self) -> LongitudinalState:
        return LongitudinalState(
            last_updated=self.last_updated,
            last_check_in_at=self.last_check_in_at,
            check_in_count=self.check_in_count,
            trajectory=self.trajectory,
            primary_driver=self.primary_driver,
            last_risk_tier=self.last_risk_tier,
            recent_crisis_count=self.recent_crisis_count,
            days_since_last_crisis=self.days_since_last_crisis,
            clinical_narrative=self.clinical_narrative,
            detected_patterns=[p.to_domain() for p in self.detected_patterns],
        )


class CrisisEpisodeRecord(BaseModel):
    started_at: datetime
    resolved_at: datetime

    def to_domain(self) -> CrisisEpisode:
        return CrisisEpisode(started_at=self.started_at, resolved_at=self.resolved_at)


class CrisisHistoryRecord(BaseModel):
    """Rolling window of resolved crisis episodes."""

    episodes: list[CrisisEpisodeRecord] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, episodes: list[CrisisEpisode]) -> "CrisisHistoryRecord":
        return cls(episodes=[
            CrisisEpisodeRecord(started_at=e.started_at, resolved_at=e.resolved_at)
            for e in episodes
        ])

    def to_domain(self) -> list[CrisisEpisode]:
        return [e.to_domain() for e in self.episodes]


class CrisisStartRecord(BaseModel):
    """The live crisis session, persisted so re-entry survives restarts."""

    model_config = ConfigDict(extra="ignore")

    session_id: UUID
    entered_at: datetime
    status: CrisisStatus = CrisisStatus.ACTIVE
    deadline: Optional[datetime] = None
    escalated: bool = False

    @classmethod
    def from_domain(cls, session: CrisisSession) -> "CrisisStartRecord":
        return cls(
            session_id=session.session_id,
            entered_at=session.entered_at,
            status=session.status,
            deadline=session.deadline,
            escalated=session.escalated,
        )

    def to_domain(self) -> CrisisSession:
        return CrisisSession(
            entered_at=self.entered_at,
            status=self.status,
            deadline=self.deadline,
            escalated=self.escalated,
            session_id=self.session_id,
        )
