"""
Inference Executor

Owns the single exclusive handle to the local inference backend.
Every call is funnelled through one worker task consuming a FIFO job
queue, so two tasks never race on generation state.

SAFETY CRITICAL: Each call is raced against its task budget, measured
from the moment it is queued. Time spent waiting behind other jobs or
on a lazy load counts. On expiry generation is cancelled (the backend
stop signal is raised) and the worker is immediately free for the next
job. A job that expires while still queued is never run. The caller
always gets control back within budget + epsilon.

ARCHITECTURE:
- run() / run_task(): collect text, returning InferenceOutput
- stream(): yield chunks (report generation) with a first-token deadline
- Exactly one lazy load attempt per call when the backend is not loaded
"""

import asyncio
import threading
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Union

from sentinel.config import get_settings
from sentinel.config.logging_config import get_logger
from sentinel.config.settings import InferenceSettings
from sentinel.domain.enums.clinical_enums import TaskType
from sentinel.infrastructure.llm.backend import (
    BackendError,
    BackendErrorReason,
    InferenceBackend,
)
from sentinel.infrastructure.metrics import (
    INFERENCE_QUEUE_DEPTH,
    MODEL_LOADS_TOTAL,
    track_inference,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class StreamUntilDelimiters:
    """Stream and stop once `count` non-empty delimited lines are complete."""

    delimiter: str = "\n"
    count: int = 2
    max_tokens: int = 256


@dataclass(frozen=True)
class WaitForCompletion:
    """Collect the full completion, optionally capped at max_chars."""

    max_tokens: int = 256
    max_chars: Optional[int] = None
    stop_marker: Optional[str] = None


InferenceMode = Union[StreamUntilDelimiters, WaitForCompletion]


@dataclass
class InferenceOutput:
    """Text produced by one inference call."""

    text: str
    latency_ms: float
    stopped_early: bool = False


class InferenceTimeoutError(Exception):
    """The call exceeded its budget; generation was cancelled."""

    def __init__(self, timeout_seconds: float, task: str = "generic") -> None:
        super().__init__(f"Inference for {task} exceeded {timeout_seconds:.1f}s")
        self.timeout_seconds = timeout_seconds
        self.task = task


_END_OF_STREAM = object()


@dataclass
class _InferenceJob:
    prompt: str
    timeout: float
    mode: InferenceMode
    task: str
    future: asyncio.Future
    deadline: float
    stop_event: threading.Event = field(default_factory=threading.Event)
    channel: Optional[asyncio.Queue] = None

    def remaining(self) -> float:
        """Seconds left before the deadline (loop clock)."""
        return self.deadline - asyncio.get_running_loop().time()


class InferenceExecutor:
    """
    Serialized, deadline-bound access to the inference backend.

    Usage:
        executor = InferenceExecutor(backend)
        output = await executor.run_task(TaskType.COMPRESSION, prompt)
        await executor.shutdown()
    """

    REPORT_SEED = "SITUATION:"
    REPORT_STOP_MARKER = "<end_of_turn>"

    # Lets the worker report its own timeout before the caller gives up
    DEADLINE_GRACE = 0.05

    def __init__(
        self,
        backend: InferenceBackend,
        settings: Optional[InferenceSettings] = None,
    ) -> None:
        self._backend = backend
        self._settings = settings or get_settings().inference
        self._timeouts = self._settings.timeout_table()
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    def timeout_for(self, task: TaskType) -> float:
        """Budget (seconds) for a task type."""
        return self._timeouts[task.value]

    def mode_for(self, task: TaskType) -> InferenceMode:
        """Generation mode for a task type."""
        if task == TaskType.RISK_ASSESSMENT:
            return StreamUntilDelimiters(
                delimiter="\n",
                count=self._settings.triage_stop_lines,
                max_tokens=self._settings.max_tokens,
            )
        if task == TaskType.REPORT:
            return WaitForCompletion(
                max_tokens=self._settings.max_tokens * 4,
                max_chars=self._settings.report_max_chars,
                stop_marker=self.REPORT_STOP_MARKER,
            )
        if task == TaskType.RERANK_SAFETY_PLAN:
            return WaitForCompletion(max_tokens=32)
        return WaitForCompletion(
            max_tokens=self._settings.max_tokens,
            max_chars=self._settings.narrative_max_chars,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def run(
        self,
        prompt: str,
        timeout: float,
        mode: InferenceMode,
        *,
        task: str = "generic",
    ) -> InferenceOutput:
        """
        Run one prompt under a deadline.

        Args:
            prompt: Assembled prompt text
            timeout: Budget in seconds
            mode: Streaming or completion mode
            task: Task label for logs and metrics

        Returns:
            InferenceOutput with text and latency

        Raises:
            InferenceTimeoutError: Budget exceeded; generation cancelled
            BackendError: Backend not loaded or generation failed
        """
        job = self._new_job(prompt, timeout, mode, task)
        await self._enqueue(job)
        try:
            return await asyncio.wait_for(
                job.future,
                timeout=max(0.0, job.remaining()) + self.DEADLINE_GRACE,
            )
        except asyncio.TimeoutError:
            # wait_for cancelled the future; the worker skips or abandons the job
            raise self._expired(job, "caller") from None
        finally:
            # Caller went away: stop any generation still running for it
            job.stop_event.set()

    async def run_task(self, task: TaskType, prompt: str) -> InferenceOutput:
        """Run a prompt with the mode and budget configured for the task."""
        return await self.run(
            prompt,
            self.timeout_for(task),
            self.mode_for(task),
            task=task.value,
        )

    async def stream(
        self,
        prompt: str,
        *,
        first_token_timeout: Optional[float] = None,
        max_chars: Optional[int] = None,
        seed: str = REPORT_SEED,
    ) -> AsyncIterator[str]:
        """
        Stream a report.

        The prompt is seeded with `seed` so the model continues the first
        section directly; the seed is yielded as the first chunk. Output
        ends at the stop marker or the character ceiling.

        Raises:
            InferenceTimeoutError: No token within first_token_timeout of
                queueing the request
            BackendError: Backend not loaded or generation failed
        """
        mode = WaitForCompletion(
            max_tokens=self._settings.max_tokens * 4,
            max_chars=max_chars or self._settings.report_max_chars,
            stop_marker=self.REPORT_STOP_MARKER,
        )
        job = self._new_job(
            prompt + seed,
            first_token_timeout or self.timeout_for(TaskType.REPORT),
            mode,
            TaskType.REPORT.value,
        )
        job.channel = asyncio.Queue()
        await self._enqueue(job)

        try:
            item = await self._first_item(job)
            if item is not _END_OF_STREAM and seed:
                yield seed
            while item is not _END_OF_STREAM:
                yield item
                item = await job.channel.get()
            await job.future
        finally:
            job.stop_event.set()

    async def unload(self) -> None:
        """Unload the model once pending jobs have drained."""
        if self._queue is not None:
            await self._queue.join()
        await self._backend.unload()

    async def shutdown(self) -> None:
        """Stop the worker. Pending callers receive cancellation."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._queue is not None:
            while not self._queue.empty():
                job = self._queue.get_nowait()
                if not job.future.done():
                    job.future.cancel()
            self._queue = None

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _new_job(self, prompt: str, timeout: float, mode: InferenceMode, task: str) -> _InferenceJob:
        loop = asyncio.get_running_loop()
        return _InferenceJob(
            prompt=prompt,
            timeout=timeout,
            mode=mode,
            task=task,
            future=loop.create_future(),
            deadline=loop.time() + timeout,
        )

    def _expired(self, job: _InferenceJob, stage: str) -> InferenceTimeoutError:
        """Record a deadline miss and build the error for it."""
        track_inference(job.task, "timeout", job.timeout)
        logger.warning(
            "Inference deadline passed",
            task=job.task,
            timeout=job.timeout,
            stage=stage,
        )
        return InferenceTimeoutError(job.timeout, job.task)

    async def _first_item(self, job: _InferenceJob) -> object:
        """Wait for the first streamed chunk, bounded by the job deadline."""
        try:
            return await asyncio.wait_for(
                job.channel.get(),
                timeout=max(0.0, job.remaining()) + self.DEADLINE_GRACE,
            )
        except asyncio.TimeoutError:
            job.stop_event.set()
            if not job.future.done():
                job.future.cancel()
            raise self._expired(job, "caller") from None

    async def _enqueue(self, job: _InferenceJob) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work(), name="inference-worker")
        await self._queue.put(job)
        INFERENCE_QUEUE_DEPTH.set(self._queue.qsize())

    async def _work(self) -> None:
        queue = self._queue
        while True:
            job = await queue.get()
            INFERENCE_QUEUE_DEPTH.set(queue.qsize())
            try:
                if job.future.done():
                    continue
                try:
                    output = await self._execute(job)
                except asyncio.CancelledError:
                    if not job.future.done():
                        job.future.cancel()
                    raise
                except Exception as e:
                    if not job.future.done():
                        job.future.set_exception(e)
                else:
                    if not job.future.done():
                        job.future.set_result(output)
            finally:
                if job.channel is not None:
                    job.channel.put_nowait(_END_OF_STREAM)
                queue.task_done()

    async def _execute(self, job: _InferenceJob) -> InferenceOutput:
        if job.remaining() <= 0:
            raise self._expired(job, "queued")
        await self._ensure_loaded()
        if job.remaining() <= 0:
            raise self._expired(job, "loading")

        start = time.perf_counter()
        try:
            if job.channel is not None:
                text, stopped = await self._stream_to_channel(job)
            else:
                text, stopped = await asyncio.wait_for(self._collect(job), timeout=job.remaining())
        except asyncio.TimeoutError:
            job.stop_event.set()
            elapsed = time.perf_counter() - start
            track_inference(job.task, "timeout", elapsed)
            logger.warning(
                "Inference timeout - generation cancelled",
                task=job.task,
                timeout=job.timeout,
                elapsed_ms=round(elapsed * 1000, 1),
            )
            raise InferenceTimeoutError(job.timeout, job.task) from None
        except BackendError as e:
            track_inference(job.task, "backend_error", time.perf_counter() - start)
            logger.error("Inference backend error", task=job.task, reason=e.reason.value)
            raise
        except Exception as e:
            track_inference(job.task, "backend_error", time.perf_counter() - start)
            logger.error("Inference failed", task=job.task, error=str(e))
            raise BackendError(
                BackendErrorReason.INFERENCE_FAILED,
                f"Inference failed: {e}",
                backend=self._backend.backend_name,
                original_error=e,
            ) from e

        elapsed = time.perf_counter() - start
        track_inference(job.task, "success", elapsed)
        logger.info(
            "Inference completed",
            task=job.task,
            latency_ms=round(elapsed * 1000, 1),
            stopped_early=stopped,
            output_chars=len(text),
        )
        return InferenceOutput(text=text, latency_ms=elapsed * 1000, stopped_early=stopped)

    async def _ensure_loaded(self) -> None:
        """Attempt exactly one lazy load; fail with NOT_LOADED otherwise."""
        if self._backend.is_loaded():
            return

        try:
            await self._backend.load()
        except BackendError as e:
            MODEL_LOADS_TOTAL.labels(outcome="failure").inc()
            logger.warning("Lazy model load failed", reason=e.reason.value)
            raise BackendError(
                BackendErrorReason.NOT_LOADED,
                "Model not loaded after lazy load attempt",
                backend=self._backend.backend_name,
                original_error=e,
            ) from e

        if not self._backend.is_loaded():
            MODEL_LOADS_TOTAL.labels(outcome="failure").inc()
            raise BackendError(BackendErrorReason.NOT_LOADED, backend=self._backend.backend_name)
        MODEL_LOADS_TOTAL.labels(outcome="success").inc()

    async def _collect(self, job: _InferenceJob) -> tuple[str, bool]:
        """Gather chunks, stopping early when the mode is satisfied."""
        mode = job.mode
        chunks: list[str] = []
        stopped = False

        async with aclosing(
            self._backend.stream(job.prompt, max_tokens=mode.max_tokens, stop_event=job.stop_event)
        ) as stream:
            async for chunk in stream:
                chunks.append(chunk)
                text = "".join(chunks)
                if self._is_satisfied(text, mode):
                    stopped = True
                    job.stop_event.set()
                    break
                if job.stop_event.is_set():
                    break

        return self._finalize(chunks, mode), stopped

    async def _stream_to_channel(self, job: _InferenceJob) -> tuple[str, bool]:
        """Forward chunks to a streaming caller under a first-token deadline."""
        mode = job.mode
        chunks: list[str] = []
        stopped = False

        async with aclosing(
            self._backend.stream(job.prompt, max_tokens=mode.max_tokens, stop_event=job.stop_event)
        ) as stream:
            iterator = stream.__aiter__()
            chunk = await asyncio.wait_for(anext(iterator, None), timeout=job.remaining())

            while chunk is not None:
                emitted = len(self._finalize(chunks, mode))
                chunks.append(chunk)
                text = self._finalize(chunks, mode)
                if len(text) > emitted:
                    job.channel.put_nowait(text[emitted:])
                if self._is_satisfied("".join(chunks), mode) or job.stop_event.is_set():
                    stopped = True
                    job.stop_event.set()
                    break
                chunk = await anext(iterator, None)

        return self._finalize(chunks, mode), stopped

    @staticmethod
    def _is_satisfied(text: str, mode: InferenceMode) -> bool:
        if isinstance(mode, StreamUntilDelimiters):
            complete_lines = [line for line in text.split(mode.delimiter)[:-1] if line.strip()]
            return len(complete_lines) >= mode.count
        if mode.stop_marker and mode.stop_marker in text:
            return True
        return mode.max_chars is not None and len(text) >= mode.max_chars

    @staticmethod
    def _finalize(chunks: list[str], mode: InferenceMode) -> str:
        text = "".join(chunks)
        if isinstance(mode, StreamUntilDelimiters):
            lines = [line for line in text.split(mode.delimiter) if line.strip()]
            return mode.delimiter.join(lines[:mode.count])
        if mode.stop_marker and mode.stop_marker in text:
            text = text.split(mode.stop_marker, 1)[0]
        if mode.max_chars is not None:
            text = text[:mode.max_chars]
        return text
