"""
Tests for retry/timeout helpers and the Azure OpenAI text service.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from core.errors import ExternalServiceError
from core.resilience import RetryPolicy, call_with_retry, retry_transient
from use_cases.care.ai_services import AzureOpenAIClinicalTextService, VisitSummaryRequest
from use_cases.care.models import Doctor, PatientContext

FAST = RetryPolicy(timeout_seconds=0.5, max_retries=2, initial_backoff=0, max_backoff=0, jitter=0)


class Flaky:
    """Fails with `error` for the first `failures` calls."""

    def __init__(self, failures: int, error: Exception, result: str = "ok"):
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        operation = Flaky(0, ConnectionError())

        assert await call_with_retry(operation, name="op", policy=FAST, retry_on=(ConnectionError,)) == "ok"
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        operation = Flaky(2, ConnectionError("reset"))

        assert await call_with_retry(operation, name="op", policy=FAST, retry_on=(ConnectionError,)) == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_budget_exhausted(self):
        operation = Flaky(10, ConnectionError("reset"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retry(operation, name="op", policy=FAST, retry_on=(ConnectionError,))

        assert operation.calls == FAST.attempts == 3
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_timeout_becomes_external_service_error(self):
        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(5)

        policy = RetryPolicy(timeout_seconds=0.01, max_retries=1, initial_backoff=0, max_backoff=0, jitter=0)
        with pytest.raises(ExternalServiceError, match="timed out"):
            await call_with_retry(slow, name="op", policy=policy)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self):
        operation = Flaky(1, KeyError("bad"))

        with pytest.raises(KeyError):
            await call_with_retry(operation, name="op", policy=FAST, retry_on=(ConnectionError,))
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(5)

        policy = RetryPolicy(timeout_seconds=10, max_retries=2)
        task = asyncio.create_task(call_with_retry(hang, name="op", policy=policy))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestRetryTransient:
    def test_retries_while_predicate_holds(self):
        calls = []

        @retry_transient(lambda e: isinstance(e, TimeoutError), attempts=3, initial_backoff=0, max_backoff=0)
        def read():
            calls.append(1)
            if len(calls) < 3:
                raise TimeoutError()
            return "item"

        assert read() == "item"
        assert len(calls) == 3

    def test_last_error_is_reraised(self):
        @retry_transient(lambda e: isinstance(e, TimeoutError), attempts=2, initial_backoff=0, max_backoff=0)
        def read():
            raise TimeoutError("still down")

        with pytest.raises(TimeoutError, match="still down"):
            read()


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _service(create: AsyncMock) -> AzureOpenAIClinicalTextService:
    client = MagicMock()
    client.chat.completions.create = create
    return AzureOpenAIClinicalTextService(lambda: client, "gpt-4o", FAST)


def _summary_request() -> VisitSummaryRequest:
    return VisitSummaryRequest(
        patient_name="Maria Lopez",
        doctor=Doctor(id="doc-1", first_name="Ana", last_name="Reyes", specialty="Cardiology"),
        context=PatientContext(),
        notes="",
        transcription="Chest tightness for two weeks.",
    )


class TestAzureOpenAIClinicalTextService:
    @pytest.mark.asyncio
    async def test_summarize_visit(self):
        create = AsyncMock(return_value=_completion("  S: chest tightness  "))

        summary = await _service(create).summarize_visit(_summary_request())

        assert summary == "S: chest tightness"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][0]["role"] == "system"
        assert "Chest tightness for two weeks." in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_classification_is_deterministic(self):
        create = AsyncMock(return_value=_completion("Cardiology"))

        assert await _service(create).classify_specialty("chest pain", ["Cardiology"]) == "Cardiology"
        assert create.call_args.kwargs["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_empty_response(self):
        create = AsyncMock(return_value=_completion("   "))

        with pytest.raises(ExternalServiceError, match="empty response"):
            await _service(create).answer("system", "hello")

    @pytest.mark.asyncio
    async def test_transient_sdk_error_is_retried(self):
        request = httpx.Request("POST", "https://example.openai.azure.com/")
        create = AsyncMock(side_effect=[
            openai.APIConnectionError(request=request),
            _completion("Dermatology"),
        ])

        assert await _service(create).classify_specialty("rash", ["Dermatology"]) == "Dermatology"
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_rejected_request(self):
        request = httpx.Request("POST", "https://example.openai.azure.com/")
        error = openai.BadRequestError(
            "content filtered", response=httpx.Response(400, request=request), body=None,
        )
        create = AsyncMock(side_effect=error)

        with pytest.raises(ExternalServiceError):
            await _service(create).answer("system", "hello")
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_unconfigured_client(self):
        def provider():
            raise ValueError("AZURE_OPENAI_ENDPOINT is not set")

        service = AzureOpenAIClinicalTextService(provider, "gpt-4o", FAST)

        with pytest.raises(ExternalServiceError) as exc_info:
            await service.answer("system", "hello")
        assert exc_info.value.user_safe is False
