"""Check-in pipeline orchestration."""

from sentinel.services.orchestration.checkin_orchestrator import (
    CheckInOrchestrator,
    CheckInOutcome,
    create_orchestrator,
    fetch_with_timeout,
)

__all__ = [
    "CheckInOrchestrator",
    "CheckInOutcome",
    "create_orchestrator",
    "fetch_with_timeout",
]
