"""
Unit Tests for Inference Executor

Tests deadline enforcement, cancellation, serialization, lazy loading
and streaming.
"""

import asyncio

import pytest

from sentinel.config.settings import InferenceSettings
from sentinel.domain.enums.clinical_enums import TaskType
from sentinel.infrastructure.llm.backend import BackendError, BackendErrorReason
from sentinel.services.llm import (
    InferenceExecutor,
    InferenceTimeoutError,
    StreamUntilDelimiters,
    WaitForCompletion,
)

from fakes import HANG, SILENT, FakeBackend


EPSILON = 0.5


@pytest.fixture
def settings():
    return InferenceSettings(
        risk_assessment_timeout=0.2,
        compression_timeout=0.2,
        rerank_timeout=0.2,
        report_first_token_timeout=0.2,
        context_ingestion_timeout=0.2,
        explain_risk_timeout=0.2,
    )


@pytest.fixture
async def make_executor(settings):
    executors = []

    def factory(backend):
        executor = InferenceExecutor(backend, settings)
        executors.append(executor)
        return executor

    yield factory

    for executor in executors:
        await executor.shutdown()


class TestTaskTable:
    """Per-task budgets and modes."""

    def test_default_budgets(self):
        """Defaults match the clinical task table."""
        executor = InferenceExecutor(FakeBackend(), InferenceSettings())

        assert executor.timeout_for(TaskType.RISK_ASSESSMENT) == 60
        assert executor.timeout_for(TaskType.COMPRESSION) == 30
        assert executor.timeout_for(TaskType.RERANK_SAFETY_PLAN) == 15
        assert executor.timeout_for(TaskType.REPORT) == 10
        assert executor.timeout_for(TaskType.CONTEXT_INGESTION) == 60
        assert executor.timeout_for(TaskType.EXPLAIN_RISK) == 30

    def test_modes(self):
        """Risk triage streams until two lines; others wait for completion."""
        executor = InferenceExecutor(FakeBackend(), InferenceSettings())

        triage = executor.mode_for(TaskType.RISK_ASSESSMENT)
        assert isinstance(triage, StreamUntilDelimiters)
        assert triage.delimiter == "\n"
        assert triage.count == 2
        assert isinstance(executor.mode_for(TaskType.COMPRESSION), WaitForCompletion)
        assert executor.mode_for(TaskType.REPORT).max_chars == 3000


class TestRun:
    """Collected runs."""

    async def test_returns_text_and_latency(self, make_executor):
        executor = make_executor(FakeBackend(default="Veteran reports steady sleep."))

        output = await executor.run_task(TaskType.COMPRESSION, "prompt")

        assert output.text == "Veteran reports steady sleep."
        assert output.latency_ms >= 0

    async def test_stops_after_two_lines(self, make_executor):
        """Risk triage stops streaming once two lines are complete."""
        backend = FakeBackend(default="orange\nSleep is down sharply.\nextra line\nmore text")
        executor = make_executor(backend)

        output = await executor.run_task(TaskType.RISK_ASSESSMENT, "prompt")

        assert output.text == "orange\nSleep is down sharply."
        assert output.stopped_early is True
        assert backend.stop_events[0].is_set()

    async def test_char_ceiling(self, make_executor):
        """Completion mode honours max_chars."""
        executor = make_executor(FakeBackend(default="word " * 100))

        output = await executor.run("prompt", 1.0, WaitForCompletion(max_chars=12))

        assert output.text == "word word wo"


class TestTimeout:
    """Deadline enforcement and cancellation."""

    async def test_returns_within_budget(self, make_executor):
        """A hung generation returns control within budget + epsilon."""
        backend = FakeBackend(responses=[HANG])
        executor = make_executor(backend)
        loop = asyncio.get_running_loop()

        start = loop.time()
        with pytest.raises(InferenceTimeoutError) as exc_info:
            await executor.run_task(TaskType.RISK_ASSESSMENT, "prompt")
        elapsed = loop.time() - start

        assert elapsed < 0.2 + EPSILON
        assert exc_info.value.timeout_seconds == 0.2
        assert exc_info.value.task == "risk_assessment"

    async def test_generation_cancelled(self, make_executor):
        """The backend stop signal is raised on timeout."""
        backend = FakeBackend(responses=[HANG])
        executor = make_executor(backend)

        with pytest.raises(InferenceTimeoutError):
            await executor.run_task(TaskType.COMPRESSION, "prompt")

        assert backend.stop_events[0].is_set()
        assert backend.active == 0

    async def test_worker_free_after_timeout(self, make_executor):
        """The next call runs immediately after a timeout."""
        backend = FakeBackend(responses=[HANG, "green\nStable."])
        executor = make_executor(backend)

        with pytest.raises(InferenceTimeoutError):
            await executor.run_task(TaskType.RISK_ASSESSMENT, "first")
        output = await executor.run_task(TaskType.RISK_ASSESSMENT, "second")

        assert output.text == "green\nStable."
        assert backend.prompts == ["first", "second"]

    async def test_queue_wait_counts_against_budget(self, make_executor):
        """A call queued behind a hung call still returns within its own budget."""
        backend = FakeBackend(responses=[HANG, HANG])
        executor = make_executor(backend)
        loop = asyncio.get_running_loop()

        start = loop.time()
        results = await asyncio.gather(
            executor.run_task(TaskType.RISK_ASSESSMENT, "first"),
            executor.run_task(TaskType.RISK_ASSESSMENT, "second"),
            return_exceptions=True,
        )
        elapsed = loop.time() - start

        assert all(isinstance(r, InferenceTimeoutError) for r in results)
        assert elapsed < 0.2 + EPSILON

    async def test_triage_behind_long_report(self, make_executor):
        """A report stream holding the worker cannot stall risk triage."""
        backend = FakeBackend(default="word " * 200, chunk_delay=0.005)
        executor = make_executor(backend)
        loop = asyncio.get_running_loop()

        async def consume():
            return [chunk async for chunk in executor.stream("report ", max_chars=900)]

        report = asyncio.create_task(consume())
        await asyncio.sleep(0.05)

        start = loop.time()
        with pytest.raises(InferenceTimeoutError):
            await executor.run_task(TaskType.RISK_ASSESSMENT, "triage")
        elapsed = loop.time() - start

        chunks = await report
        assert elapsed < 0.2 + EPSILON
        assert "".join(chunks).startswith("SITUATION:word word")
        assert "triage" not in backend.prompts

    async def test_expired_job_never_runs(self, make_executor):
        """A job whose deadline passed in the queue is failed without generation."""
        backend = FakeBackend(default="one two three four five six", chunk_delay=0.1)
        executor = make_executor(backend)

        first = asyncio.create_task(executor.run("first", 1.0, WaitForCompletion()))
        await asyncio.sleep(0.01)
        with pytest.raises(InferenceTimeoutError):
            await executor.run("second", 0.05, WaitForCompletion())
        output = await first

        assert output.text == "one two three four five six"
        assert backend.prompts == ["first"]


class TestSerialization:
    """One generation at a time, FIFO."""

    async def test_calls_never_overlap(self, make_executor):
        backend = FakeBackend(
            responses=["one two three", "four five six", "seven eight nine"],
            chunk_delay=0.01,
        )
        executor = make_executor(backend)

        outputs = await asyncio.gather(
            executor.run("a", 1.0, WaitForCompletion()),
            executor.run("b", 1.0, WaitForCompletion()),
            executor.run("c", 1.0, WaitForCompletion()),
        )

        assert backend.max_active == 1
        assert backend.prompts == ["a", "b", "c"]
        assert [o.text for o in outputs] == ["one two three", "four five six", "seven eight nine"]


class TestLazyLoad:
    """Exactly one load attempt per call."""

    async def test_loads_once(self, make_executor):
        backend = FakeBackend(default="text", loaded=False)
        executor = make_executor(backend)

        await executor.run_task(TaskType.EXPLAIN_RISK, "a")
        await executor.run_task(TaskType.EXPLAIN_RISK, "b")

        assert backend.load_calls == 1

    async def test_failed_load_raises_not_loaded(self, make_executor):
        backend = FakeBackend(loaded=False, load_fails=True)
        executor = make_executor(backend)

        for _ in range(2):
            with pytest.raises(BackendError) as exc_info:
                await executor.run_task(TaskType.EXPLAIN_RISK, "prompt")
            assert exc_info.value.reason == BackendErrorReason.NOT_LOADED

        assert backend.load_calls == 2
        assert backend.prompts == []

    async def test_generation_error_wrapped(self, make_executor):
        """Unexpected backend exceptions become INFERENCE_FAILED."""
        executor = make_executor(FakeBackend(responses=[RuntimeError("device lost")]))

        with pytest.raises(BackendError) as exc_info:
            await executor.run_task(TaskType.EXPLAIN_RISK, "prompt")

        assert exc_info.value.reason == BackendErrorReason.INFERENCE_FAILED
        assert isinstance(exc_info.value.original_error, RuntimeError)


class TestStream:
    """Report streaming."""

    async def test_seeded_stream_until_marker(self, make_executor):
        backend = FakeBackend(default=" Patient stable.<end_of_turn>ignored tail")
        executor = make_executor(backend)

        chunks = [chunk async for chunk in executor.stream("prompt ")]

        assert chunks[0] == "SITUATION:"
        assert "".join(chunks) == "SITUATION: Patient stable."
        assert backend.prompts == ["prompt SITUATION:"]

    async def test_first_token_timeout(self, make_executor):
        executor = make_executor(FakeBackend(responses=[SILENT]))
        chunks = []

        with pytest.raises(InferenceTimeoutError):
            async for chunk in executor.stream("prompt"):
                chunks.append(chunk)

        assert chunks == []

    async def test_first_token_deadline_includes_queue_wait(self, make_executor):
        """A report queued behind a hung call times out on its own deadline."""
        executor = make_executor(FakeBackend(responses=[HANG], default="late text"))
        loop = asyncio.get_running_loop()

        blocker = asyncio.create_task(executor.run("hung", 5.0, WaitForCompletion()))
        await asyncio.sleep(0.01)

        start = loop.time()
        with pytest.raises(InferenceTimeoutError):
            async for _ in executor.stream("prompt", first_token_timeout=0.2):
                pass
        elapsed = loop.time() - start

        blocker.cancel()
        with pytest.raises(asyncio.CancelledError):
            await blocker
        assert elapsed < 0.2 + EPSILON

    async def test_stream_ceiling(self, make_executor):
        executor = make_executor(FakeBackend(default="abcdefghij" * 10))

        chunks = [chunk async for chunk in executor.stream("prompt", max_chars=25, seed="")]

        assert "".join(chunks) == ("abcdefghij" * 10)[:25]
