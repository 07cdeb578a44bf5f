"""
Sentinel - Clinical Risk Orchestration Engine

This package turns per-session check-in signals (transcript, voice prosody,
behavioral telemetry, biometric deviations and the C-SSRS screener) into a
final risk tier, an updated longitudinal memory and downstream clinical
artifacts, coordinating a locally hosted language model under strict
latency budgets.

IMPORTANT: This is a safety-critical healthcare component.
The questionnaire floor can never be lowered by model output.
"""

__version__ = "0.1.0"
__author__ = "Sentinel Engineering Team"
