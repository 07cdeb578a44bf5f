"""
Inference Backend Abstract Interface

Defines the contract for the locally hosted language model.
The engine treats token generation as opaque: a backend loads weights,
streams text chunks for a prompt, and stops promptly when asked.

ARCHITECTURE: Only the InferenceExecutor talks to a backend. Backends
are not required to be safe for concurrent use.
"""

import threading
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import AsyncIterator, Optional


class BackendErrorReason(StrEnum):
    """Why a backend call failed."""

    MODEL_NOT_FOUND = "model_not_found"
    LOAD_FAILED = "load_failed"
    NOT_LOADED = "not_loaded"
    TOKENIZATION_FAILED = "tokenization_failed"
    INFERENCE_FAILED = "inference_failed"
    INVALID_RESPONSE = "invalid_response"


class BackendError(Exception):
    """
    Backend unavailable or failed.

    Always recoverable through the deterministic fallback; never
    surfaced to the end user.
    """

    def __init__(
        self,
        reason: BackendErrorReason,
        message: Optional[str] = None,
        backend: str = "",
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message or f"Inference backend error: {reason.value}")
        self.reason = reason
        self.backend = backend
        self.original_error = original_error


class InferenceBackend(ABC):
    """
    Abstract local inference backend.

    Cancellation contract: stream() receives a threading.Event. Once it
    is set the backend must stop model-side token generation before
    producing further tokens, not merely stop yielding them.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend name for logging/tracking."""
        pass

    @abstractmethod
    async def load(self) -> None:
        """
        Load model weights.

        Raises:
            BackendError: MODEL_NOT_FOUND or LOAD_FAILED
        """
        pass

    @abstractmethod
    async def unload(self) -> None:
        """Release model memory."""
        pass

    @abstractmethod
    def is_loaded(self) -> bool:
        """Check if the model is ready for generation."""
        pass

    @abstractmethod
    def stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        stop_event: threading.Event,
    ) -> AsyncIterator[str]:
        """
        Stream generated text chunks for a prompt.

        Args:
            prompt: Fully assembled prompt text
            max_tokens: Hard ceiling on generated tokens
            stop_event: Set by the caller to halt generation

        Yields:
            Generated text chunks (prompt tokens are never echoed)

        Raises:
            BackendError: NOT_LOADED or INFERENCE_FAILED
        """
        pass


def prompt_token_budget(context_window: int, max_tokens: int) -> int:
    """
    Prompt tokens allowed alongside `max_tokens` of output.

    At most half the window is reserved for output so long reports do
    not squeeze the prompt to nothing.
    """
    return context_window - min(max_tokens, context_window // 2)
