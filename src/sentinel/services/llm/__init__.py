"""Serialized, deadline-bound inference services."""

from sentinel.services.llm.inference_executor import (
    InferenceExecutor,
    InferenceMode,
    InferenceOutput,
    InferenceTimeoutError,
    StreamUntilDelimiters,
    WaitForCompletion,
)

__all__ = [
    "InferenceExecutor",
    "InferenceMode",
    "InferenceOutput",
    "InferenceTimeoutError",
    "StreamUntilDelimiters",
    "WaitForCompletion",
]
