"""Deterministic fallback services."""

from sentinel.services.fallback.fallback_generator import (
    OFFLINE_EXPLANATION,
    FallbackGenerator,
    fallback_generator,
)

__all__ = [
    "OFFLINE_EXPLANATION",
    "FallbackGenerator",
    "fallback_generator",
]
