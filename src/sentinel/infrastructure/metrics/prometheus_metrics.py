"""
Prometheus Metrics

In-process metrics for engine observability. Nothing is exported over
the network; a host application may read the registry directly.

ARCHITECTURE: Metrics are decoupled from business logic.
Only increment/observe; never block on metrics operations.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    generate_latest,
)

# =============================================================================
# INFERENCE METRICS
# =============================================================================

INFERENCE_REQUESTS_TOTAL = Counter(
    "sentinel_inference_requests_total",
    "Inference requests by task and outcome",
    ["task", "outcome"],  # success, timeout, backend_error
)

INFERENCE_LATENCY = Histogram(
    "sentinel_inference_latency_seconds",
    "Inference latency by task",
    ["task"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0],
)

INFERENCE_QUEUE_DEPTH = Gauge(
    "sentinel_inference_queue_depth",
    "Inference jobs waiting for the model handle",
)

MODEL_LOADS_TOTAL = Counter(
    "sentinel_model_loads_total",
    "Lazy model load attempts",
    ["outcome"],  # success, failure
)

# =============================================================================
# FALLBACK METRICS
# =============================================================================

FALLBACK_RESULTS_TOTAL = Counter(
    "sentinel_fallback_results_total",
    "Task results produced by the deterministic fallback",
    ["task", "reason"],  # backend_error, timeout, parse_failure
)

# =============================================================================
# RISK METRICS
# =============================================================================

FINAL_RISK_TOTAL = Counter(
    "sentinel_final_risk_total",
    "Final risk tiers by deciding source",
    ["tier", "source"],
)

DETECTED_PATTERNS_TOTAL = Counter(
    "sentinel_detected_patterns_total",
    "Cross-modal patterns detected",
    ["pattern"],
)

# =============================================================================
# CRISIS METRICS
# =============================================================================

CRISIS_TRANSITIONS_TOTAL = Counter(
    "sentinel_crisis_transitions_total",
    "Crisis lifecycle transitions",
    ["from_status", "to_status"],
)

CRISIS_ESCALATIONS_TOTAL = Counter(
    "sentinel_crisis_escalations_total",
    "Emergency-contact escalations triggered from recheck",
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def track_inference(task: str, outcome: str, duration_seconds: float) -> None:
    """Record one inference request."""
    INFERENCE_REQUESTS_TOTAL.labels(task=task, outcome=outcome).inc()
    INFERENCE_LATENCY.labels(task=task).observe(duration_seconds)


def track_fallback(task: str, reason: str) -> None:
    """Record a fallback substitution."""
    FALLBACK_RESULTS_TOTAL.labels(task=task, reason=reason).inc()


def track_final_risk(tier: str, source: str) -> None:
    """Record a final risk classification."""
    FINAL_RISK_TOTAL.labels(tier=tier, source=source).inc()


def track_pattern(pattern: str) -> None:
    """Record a detected pattern."""
    DETECTED_PATTERNS_TOTAL.labels(pattern=pattern).inc()


def track_crisis_transition(from_status: str, to_status: str) -> None:
    """Record a crisis status change."""
    CRISIS_TRANSITIONS_TOTAL.labels(from_status=from_status, to_status=to_status).inc()


def render_metrics() -> bytes:
    """Metrics in Prometheus text format, for a host process to expose."""
    return generate_latest(REGISTRY)
