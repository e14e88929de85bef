"""Tests for failure classification and the retry loop."""

from unittest.mock import AsyncMock

import httpx
import pytest

from docpreview.core.exceptions import (
    ConversionFailedError,
    NotFoundError,
    PermanentExternalError,
    TransientExternalError,
)
from docpreview.core.retry import (
    FailureKind,
    RetryPolicy,
    call_with_retry,
    classify_failure,
    classify_status,
    raise_for_conversion_status,
)


def http_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://convert.test/v2/jobs")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


class FlakyOperation:
    """Raises the queued errors in order, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestClassification:

    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (500, FailureKind.TRANSIENT),
            (502, FailureKind.TRANSIENT),
            (503, FailureKind.TRANSIENT),
            (404, FailureKind.PERMANENT),
            (400, FailureKind.PERMANENT),
            (401, FailureKind.PERMANENT),
            (422, FailureKind.PERMANENT),
        ],
    )
    def test_status_codes(self, status_code, expected):
        assert classify_status(status_code) is expected
        assert classify_failure(http_error(status_code)) is expected

    def test_transport_errors_are_transient(self):
        assert classify_failure(httpx.ConnectError("refused")) is FailureKind.TRANSIENT
        assert classify_failure(httpx.ReadTimeout("slow")) is FailureKind.TRANSIENT

    def test_application_errors(self):
        assert classify_failure(NotFoundError("gone")) is FailureKind.NOT_FOUND
        assert classify_failure(TransientExternalError("busy")) is FailureKind.TRANSIENT
        assert classify_failure(PermanentExternalError("bad input")) is FailureKind.PERMANENT

    def test_unknown_errors_are_permanent(self):
        assert classify_failure(ValueError("boom")) is FailureKind.PERMANENT


class TestRetryPolicy:

    def test_default_schedule(self):
        policy = RetryPolicy()
        assert [policy.delay_ms(attempt) for attempt in range(3)] == [1000, 2000, 4000]
        assert policy.total_wait_ms() == 3000

    def test_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=10)
        assert policy.delay_ms(5) == 30000
        assert policy.delay_ms(9) == 30000


class TestCallWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = AsyncMock()
        operation = FlakyOperation([])

        assert await call_with_retry(operation, RetryPolicy(), sleep=sleep) == "ok"
        assert operation.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        sleep = AsyncMock()
        operation = FlakyOperation([http_error(503), httpx.ConnectError("refused")], result=b"%PDF")

        assert await call_with_retry(operation, RetryPolicy(), sleep=sleep) == b"%PDF"
        assert operation.calls == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self):
        """Three 5xx responses: exactly three calls and 1s + 2s of waiting."""
        sleep = AsyncMock()
        operation = FlakyOperation([http_error(500)] * 5)

        with pytest.raises(ConversionFailedError) as exc_info:
            await call_with_retry(operation, RetryPolicy(), description="conversion", sleep=sleep)

        assert operation.calls == 3
        assert exc_info.value.attempts == 3
        assert "after 3 attempts" in str(exc_info.value)
        assert sum(call.args[0] for call in sleep.await_args_list) == 3.0

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self):
        sleep = AsyncMock()
        operation = FlakyOperation([http_error(422)])

        with pytest.raises(ConversionFailedError) as exc_info:
            await call_with_retry(operation, RetryPolicy(), sleep=sleep)

        assert operation.calls == 1
        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.original_error, httpx.HTTPStatusError)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permanent_application_error_passes_through(self):
        error = PermanentExternalError("not a PDF")
        operation = FlakyOperation([error])

        with pytest.raises(PermanentExternalError) as exc_info:
            await call_with_retry(operation, RetryPolicy(), sleep=AsyncMock())

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_missing_source_is_raised_immediately(self):
        sleep = AsyncMock()
        error = NotFoundError("source gone")
        operation = FlakyOperation([error])

        with pytest.raises(NotFoundError) as exc_info:
            await call_with_retry(operation, RetryPolicy(), sleep=sleep)

        assert operation.calls == 1
        sleep.assert_not_awaited()
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_converter_404_is_permanent_not_missing_source(self):
        sleep = AsyncMock()
        operation = FlakyOperation([http_error(404)])

        with pytest.raises(ConversionFailedError):
            await call_with_retry(operation, RetryPolicy(), sleep=sleep)

        assert operation.calls == 1
        sleep.assert_not_awaited()


class TestConversionStatus:

    @pytest.mark.parametrize("status_code", [400, 401, 404, 422])
    def test_client_errors_are_permanent(self, status_code):
        request = httpx.Request("POST", "https://convert.test/v2/jobs")
        response = httpx.Response(status_code, text="rejected", request=request)

        with pytest.raises(PermanentExternalError) as exc_info:
            raise_for_conversion_status(response, "CAD conversion API")

        assert str(status_code) in str(exc_info.value)
        assert classify_failure(exc_info.value) is FailureKind.PERMANENT

    def test_server_errors_raise_http_status_error(self):
        request = httpx.Request("POST", "https://convert.test/v2/jobs")
        response = httpx.Response(502, request=request)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            raise_for_conversion_status(response, "CAD conversion API")

        assert classify_failure(exc_info.value) is FailureKind.TRANSIENT

    def test_success_passes(self):
        request = httpx.Request("POST", "https://convert.test/v2/jobs")
        raise_for_conversion_status(httpx.Response(200, request=request), "CAD conversion API")
