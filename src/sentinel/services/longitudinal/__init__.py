"""Longitudinal clinical state services."""

from sentinel.services.longitudinal.state_store import (
    NO_PRIOR_HISTORY,
    LongitudinalStateStore,
    compute_trajectory,
    format_for_prompt,
    identify_primary_driver,
    risk_modifiers,
)

__all__ = [
    "NO_PRIOR_HISTORY",
    "LongitudinalStateStore",
    "compute_trajectory",
    "format_for_prompt",
    "identify_primary_driver",
    "risk_modifiers",
]
