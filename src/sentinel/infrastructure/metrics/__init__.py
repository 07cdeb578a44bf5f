"""Metrics infrastructure package."""

from sentinel.infrastructure.metrics.prometheus_metrics import (
    # Inference metrics
    INFERENCE_REQUESTS_TOTAL,
    INFERENCE_LATENCY,
    INFERENCE_QUEUE_DEPTH,
    MODEL_LOADS_TOTAL,
    # Fallback metrics
    FALLBACK_RESULTS_TOTAL,
    # Risk metrics
    FINAL_RISK_TOTAL,
    DETECTED_PATTERNS_TOTAL,
    # Crisis metrics
    CRISIS_TRANSITIONS_TOTAL,
    CRISIS_ESCALATIONS_TOTAL,
    # Helpers
    track_inference,
    track_fallback,
    track_final_risk,
    track_pattern,
    track_crisis_transition,
    render_metrics,
)

__all__ = [
    "INFERENCE_REQUESTS_TOTAL",
    "INFERENCE_LATENCY",
    "INFERENCE_QUEUE_DEPTH",
    "MODEL_LOADS_TOTAL",
    "FALLBACK_RESULTS_TOTAL",
    "FINAL_RISK_TOTAL",
    "DETECTED_PATTERNS_TOTAL",
    "CRISIS_TRANSITIONS_TOTAL",
    "CRISIS_ESCALATIONS_TOTAL",
    "track_inference",
    "track_fallback",
    "track_final_risk",
    "track_pattern",
    "track_crisis_transition",
    "render_metrics",
]
