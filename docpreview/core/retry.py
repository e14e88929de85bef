"""Failure classification and retry/backoff policy shared by all converters."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx

from docpreview.core.exceptions import (
    ConversionFailedError,
    NotFoundError,
    PermanentExternalError,
    TransientExternalError,
)
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


class FailureKind(Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    NOT_FOUND = "not_found"


def classify_status(status_code: int) -> FailureKind:
    """Classify a non-success HTTP status code from a conversion service.

    Only 5xx is worth retrying. Any 4xx, 404 included, is permanent: a missing
    source is reported by the storage gateway as NotFoundError, never by status.
    """
    if 500 <= status_code < 600:
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def classify_failure(error: BaseException) -> FailureKind:
    """Classify an exception raised by an external call.

    Transport failures (connection errors, timeouts) and 5xx responses are
    transient. NotFoundError from the storage gateway means the source is gone.
    Everything else, including 4xx responses, malformed responses and
    unexpected exceptions, is permanent.
    """
    if isinstance(error, NotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(error, TransientExternalError):
        return FailureKind.TRANSIENT
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)
    if isinstance(error, httpx.TransportError):
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def raise_for_conversion_status(response: httpx.Response, service: str) -> None:
    """Raise for a non-success response from a conversion service.

    Raises:
        PermanentExternalError: On any 4xx, so the call is not retried
        httpx.HTTPStatusError: On 5xx and other non-success statuses
    """
    if response.is_client_error:
        raise PermanentExternalError(
            f"{service} rejected the request with {response.status_code}: {response.text[:200]}"
        )
    response.raise_for_status()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    The delay before the retry that follows attempt ``n`` (0-based) is
    ``min(base_delay_ms * 2**n, max_delay_ms)``.
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def delay_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)

    def total_wait_ms(self) -> int:
        """Worst-case time spent sleeping across all retries."""
        return sum(self.delay_ms(attempt) for attempt in range(self.max_attempts - 1))

    @classmethod
    def from_settings(cls, conversion_settings) -> "RetryPolicy":
        return cls(
            max_attempts=conversion_settings.max_attempts,
            base_delay_ms=conversion_settings.base_delay_ms,
            max_delay_ms=conversion_settings.max_delay_ms,
        )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "external call",
    context: Optional[Dict[str, Any]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    classify: Callable[[BaseException], FailureKind] = classify_failure,
) -> T:
    """Run ``operation`` until it succeeds, fails permanently or runs out of attempts.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt bound and backoff schedule
        description: Human readable name used in logs and errors
        context: Extra log fields (document/version/team ids)
        sleep: Awaitable sleep, seconds
        classify: Failure classifier

    Returns:
        The operation's result

    Raises:
        NotFoundError: Re-raised when the storage gateway reports the source missing
        ConversionFailedError: On a permanent failure or when attempts are exhausted
    """
    context = context or {}

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as e:
            kind = classify(e)
            log_extra = {
                **context,
                "attempt": attempt + 1,
                "max_attempts": policy.max_attempts,
                "failure_kind": kind.value,
                "error": str(e),
            }

            if kind is FailureKind.NOT_FOUND:
                LOGGER.warning(f"{description} found the source missing", extra=log_extra)
                raise

            if kind is FailureKind.PERMANENT:
                LOGGER.error(f"{description} failed permanently", extra=log_extra)
                if isinstance(e, PermanentExternalError):
                    raise
                raise ConversionFailedError(
                    f"{description} failed: {e}", attempts=attempt + 1, original_error=e
                ) from e

            if attempt >= policy.max_attempts - 1:
                LOGGER.error(f"{description} failed after {policy.max_attempts} attempts", extra=log_extra)
                raise ConversionFailedError(
                    f"{description} failed after {policy.max_attempts} attempts: {e}",
                    attempts=attempt + 1,
                    original_error=e,
                ) from e

            delay_ms = policy.delay_ms(attempt)
            LOGGER.warning(
                f"Retrying {description} after {delay_ms}ms (attempt {attempt + 1}/{policy.max_attempts})",
                extra=log_extra,
            )
            await sleep(delay_ms / 1000)

    # max_attempts < 1
    raise ConversionFailedError(f"{description} was never attempted", attempts=0)
