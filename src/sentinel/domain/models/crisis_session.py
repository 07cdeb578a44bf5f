"""
Crisis Session Domain Model

One active escalation episode, created when the final tier reaches
Crisis and archived on resolution.

SAFETY-CRITICAL: A session always has exactly one live status and can
only be resolved from RECHECK.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional
from uuid import UUID, uuid4


class CrisisStatus(StrEnum):
    """
    Crisis lifecycle states.

    ACTIVE -> RECHECK -> {STABILIZING | RESOLVED}; STABILIZING -> RECHECK.
    """

    ACTIVE = "active"
    """Crisis entered; countdown to the first recheck running."""

    RECHECK = "recheck"
    """
    User is asked how they are feeling.

    SAFETY_NOTE: The only state from which a crisis can be resolved.
    """

    STABILIZING = "stabilizing"
    """User reported feeling about the same; countdown restarted."""

    RESOLVED = "resolved"
    """Terminal. Episode recorded in the rolling crisis history."""


class RecheckResponse(StrEnum):
    """The three legal answers to the recheck question."""

    STABLE = "stable"
    """I feel more stable."""

    SAME = "same"
    """About the same."""

    WORSE = "worse"
    """Still not safe - escalate to emergency contact."""


@dataclass
class CrisisSession:
    """
    One escalation episode.

    Attributes:
        session_id: Unique identifier
        status: Current lifecycle status
        entered_at: When the crisis was entered
        deadline: When the running countdown requests a recheck
        escalated: Whether the emergency-contact action was triggered
        resolved_at: When the episode was resolved
    """

    entered_at: datetime
    status: CrisisStatus = CrisisStatus.ACTIVE
    deadline: Optional[datetime] = None
    escalated: bool = False
    resolved_at: Optional[datetime] = None
    session_id: UUID = field(default_factory=uuid4)

    @property
    def is_live(self) -> bool:
        return self.status != CrisisStatus.RESOLVED

    def seconds_remaining(self, now: datetime) -> float:
        """Seconds left on the countdown; 0 when no countdown is running."""
        if self.deadline is None:
            return 0.0
        return max(0.0, (self.deadline - now).total_seconds())

    def mandatory_checkin_at(self, hours: int) -> datetime:
        """Time of the mandatory follow-up check-in."""
        return self.entered_at + timedelta(hours=hours)

    def to_audit_log(self) -> dict:
        """Create audit log entry."""
        return {
            "session_id": str(self.session_id),
            "status": self.status.value,
            "entered_at": self.entered_at.isoformat(),
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "escalated": self.escalated,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class CrisisEpisode:
    """A resolved crisis kept in the rolling history window."""

    started_at: datetime
    resolved_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.resolved_at - self.started_at).total_seconds()
