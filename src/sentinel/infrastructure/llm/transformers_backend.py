"""
Transformers Inference Backend

On-device causal language model served through HuggingFace Transformers.
Generation runs in a worker thread and streams through a
TextIteratorStreamer; a stopping criterion bound to the caller's stop
event halts token generation on cancellation or timeout.

PRIVACY: Weights are loaded from a local directory only. No network
access is performed at inference time.
"""

import asyncio
import threading
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import torch
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    BatchEncoding,
    StoppingCriteria,
    StoppingCriteriaList,
    TextIteratorStreamer,
)

from sentinel.config import get_settings
from sentinel.config.logging_config import get_logger
from sentinel.config.settings import ModelSettings
from sentinel.infrastructure.llm.backend import (
    BackendError,
    BackendErrorReason,
    InferenceBackend,
    prompt_token_budget,
)

logger = get_logger(__name__)

_STREAM_END = object()


class StopOnEvent(StoppingCriteria):
    """Stops generation as soon as the bound event is set."""

    def __init__(self, event: threading.Event) -> None:
        self._event = event

    def __call__(self, input_ids: torch.LongTensor, scores: torch.FloatTensor, **kwargs: Any) -> torch.BoolTensor:
        return torch.full(
            (input_ids.shape[0],),
            self._event.is_set(),
            dtype=torch.bool,
            device=input_ids.device,
        )


class TransformersBackend(InferenceBackend):
    """
    Local causal LM backend.

    Usage:
        backend = TransformersBackend()
        await backend.load()
        async for chunk in backend.stream(prompt, max_tokens=64, stop_event=threading.Event()):
            ...
    """

    def __init__(self, settings: Optional[ModelSettings] = None) -> None:
        self._settings = settings or get_settings().model
        self._device = self._settings.device or ("cuda" if torch.cuda.is_available() else "cpu")
        self._model: Optional[AutoModelForCausalLM] = None
        self._tokenizer: Optional[AutoTokenizer] = None
        self._loaded = False

    @property
    def backend_name(self) -> str:
        return "transformers"

    async def load(self) -> None:
        """Load tokenizer and weights from the configured local directory."""
        if self._loaded:
            return

        weights = Path(self._settings.weights_path)
        if not weights.exists():
            raise BackendError(
                BackendErrorReason.MODEL_NOT_FOUND,
                f"Model weights not found at {weights}",
                backend=self.backend_name,
            )

        try:
            await asyncio.to_thread(self._load_blocking, weights)
        except Exception as e:
            raise BackendError(
                BackendErrorReason.LOAD_FAILED,
                f"Failed to load model: {e}",
                backend=self.backend_name,
                original_error=e,
            ) from e

        self._loaded = True
        logger.info("Model loaded", backend=self.backend_name, device=self._device)

    def _load_blocking(self, weights: Path) -> None:
        self._tokenizer = AutoTokenizer.from_pretrained(weights, local_files_only=True)
        self._model = AutoModelForCausalLM.from_pretrained(
            weights,
            local_files_only=True,
        ).to(self._device)
        self._model.eval()

    async def unload(self) -> None:
        """Unload model from memory."""
        self._model = None
        self._tokenizer = None
        self._loaded = False
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.info("Model unloaded", backend=self.backend_name)

    def is_loaded(self) -> bool:
        return self._loaded and self._model is not None

    async def stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        stop_event: threading.Event,
    ) -> AsyncIterator[str]:
        if not self.is_loaded():
            raise BackendError(BackendErrorReason.NOT_LOADED, backend=self.backend_name)

        try:
            inputs = self._fit_context(self._tokenizer(prompt, return_tensors="pt"), max_tokens).to(self._device)
        except Exception as e:
            raise BackendError(
                BackendErrorReason.TOKENIZATION_FAILED,
                backend=self.backend_name,
                original_error=e,
            ) from e

        streamer = TextIteratorStreamer(
            self._tokenizer,
            skip_prompt=True,
            skip_special_tokens=True,
        )
        generation_kwargs = dict(
            **inputs,
            max_new_tokens=max_tokens,
            do_sample=self._settings.temperature > 0,
            temperature=self._settings.temperature,
            top_k=self._settings.top_k,
            top_p=self._settings.top_p,
            repetition_penalty=self._settings.repetition_penalty,
            streamer=streamer,
            stopping_criteria=StoppingCriteriaList([StopOnEvent(stop_event)]),
        )

        loop = asyncio.get_running_loop()
        generation = loop.run_in_executor(None, self._generate_blocking, streamer, generation_kwargs)

        try:
            while True:
                chunk = await loop.run_in_executor(None, next, streamer, _STREAM_END)
                if chunk is _STREAM_END:
                    break
                if chunk:
                    yield chunk
            await generation
        except BackendError:
            raise
        except (RuntimeError, ValueError) as e:
            raise BackendError(
                BackendErrorReason.INFERENCE_FAILED,
                f"Generation failed: {e}",
                backend=self.backend_name,
                original_error=e,
            ) from e
        finally:
            # Halts generation when the consumer stops early or is cancelled
            stop_event.set()

    def _fit_context(self, inputs: BatchEncoding, max_tokens: int) -> BatchEncoding:
        """Drop the oldest prompt tokens (after BOS) beyond the context budget."""
        budget = prompt_token_budget(self._settings.context_window, max_tokens)
        length = inputs["input_ids"].shape[1]
        if length <= budget:
            return inputs

        logger.warning("Prompt truncated to context window", prompt_tokens=length, kept_tokens=budget)
        return BatchEncoding({
            key: torch.cat([value[:, :1], value[:, length - budget + 1:]], dim=1)
            for key, value in inputs.items()
        })

    def _generate_blocking(self, streamer: TextIteratorStreamer, kwargs: dict) -> None:
        try:
            with torch.inference_mode():
                self._model.generate(**kwargs)
        except Exception:
            # Unblock the consumer waiting on the streamer
            streamer.end()
            raise
