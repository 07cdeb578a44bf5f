"""
Local inference backends.

The transformers backend is imported lazily because it pulls in torch.
"""

from sentinel.infrastructure.llm.backend import (
    BackendError,
    BackendErrorReason,
    InferenceBackend,
    prompt_token_budget,
)

__all__ = [
    "BackendError",
    "BackendErrorReason",
    "InferenceBackend",
    "prompt_token_budget",
]
