"""Cross-modal signal analysis."""

from sentinel.services.analysis.discrepancy_detector import (
    DiscrepancyDetector,
    DiscrepancyResult,
    discrepancy_detector,
)

__all__ = [
    "DiscrepancyDetector",
    "DiscrepancyResult",
    "discrepancy_detector",
]
