"""Retry Policy — failure classification and exponential backoff.

Only rate-limit responses (HTTP 429) are retried. The n-th retry waits

    delay = base_delay * 2^(n - 1)

which with the defaults gives 10s, 20s, 40s, 80s, 160s. Once ``max_retries``
retries have been spent the next 429 becomes ``RateLimitExceeded``.

Every other failure is terminal and mapped to a ``GatewayError`` subclass.
The policy never touches request state; the scheduler applies the decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from bizplan.gateway.errors import (
    GatewayError,
    ModelUnavailable,
    PaymentRequired,
    RateLimitExceeded,
    RequestTimeout,
    Unauthorized,
    UpstreamError,
    UpstreamUnknown,
)
from bizplan.gateway.types import ErrorKind

logger = logging.getLogger(__name__)


MESSAGE_RATE_LIMIT_EXCEEDED = "API Error: Rate limit exceeded after maximum retries"
MESSAGE_PAYMENT_REQUIRED = (
    "OpenRouter API requires credits. Please visit https://openrouter.ai/settings/credits to add credits."
)
MESSAGE_UNAUTHORIZED = "Invalid OpenRouter API key. Please check your configuration."
MESSAGE_MODEL_UNAVAILABLE = "Selected AI model is not available. Please try again."
MESSAGE_TIMEOUT = "Request timed out. Please try again."
MESSAGE_UNKNOWN = "Failed to make OpenRouter request"

_STATUS_KINDS: dict[int, ErrorKind] = {
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
    402: ErrorKind.PAYMENT_REQUIRED,
    401: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.MODEL_UNAVAILABLE,
    408: ErrorKind.REQUEST_TIMEOUT,
}

_TERMINAL_ERRORS: dict[ErrorKind, tuple[type[GatewayError], str]] = {
    ErrorKind.RATE_LIMIT_EXCEEDED: (RateLimitExceeded, MESSAGE_RATE_LIMIT_EXCEEDED),
    ErrorKind.PAYMENT_REQUIRED: (PaymentRequired, MESSAGE_PAYMENT_REQUIRED),
    ErrorKind.UNAUTHORIZED: (Unauthorized, MESSAGE_UNAUTHORIZED),
    ErrorKind.MODEL_UNAVAILABLE: (ModelUnavailable, MESSAGE_MODEL_UNAVAILABLE),
    ErrorKind.REQUEST_TIMEOUT: (RequestTimeout, MESSAGE_TIMEOUT),
}


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of classifying a failed attempt."""

    retry: bool
    delay: float = 0.0  # Seconds to wait before re-queueing
    error: GatewayError | None = None  # Set when the failure is terminal


class RetryPolicy:
    """Classifies upstream failures and computes backoff.

    Usage:
        policy = RetryPolicy()

        decision = policy.decide(exc, retry_count=request.retry_count)
        if decision.retry:
            await asyncio.sleep(decision.delay)
            # re-queue at the front
        else:
            future.set_exception(decision.error)
    """

    def __init__(self, max_retries: int = 5, base_delay: float = 10.0):
        self.max_retries = max_retries
        self.base_delay = base_delay

    def backoff(self, retry_number: int) -> float:
        """Delay in seconds before the ``retry_number``-th retry (1-based)."""
        if retry_number < 1:
            raise ValueError("retry_number is 1-based")
        return self.base_delay * (2 ** (retry_number - 1))

    @staticmethod
    def classify(exc: BaseException) -> ErrorKind:
        """Map an exception from the upstream call to an error kind."""
        if isinstance(exc, GatewayError):
            return exc.kind
        if isinstance(exc, UpstreamError):
            if exc.timed_out:
                return ErrorKind.REQUEST_TIMEOUT
            return _STATUS_KINDS.get(exc.status_code, ErrorKind.UPSTREAM_UNKNOWN)
        if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
            return ErrorKind.REQUEST_TIMEOUT
        return ErrorKind.UPSTREAM_UNKNOWN

    def is_retryable(self, exc: BaseException, retry_count: int) -> bool:
        if isinstance(exc, GatewayError):
            return False
        return self.classify(exc) == ErrorKind.RATE_LIMIT_EXCEEDED and retry_count < self.max_retries

    def decide(self, exc: BaseException, retry_count: int) -> RetryDecision:
        """Decide whether a failed attempt is retried, and after how long."""
        if self.is_retryable(exc, retry_count):
            delay = self.backoff(retry_count + 1)
            logger.info(
                "Rate limited. Retrying in %.1fs (attempt %d/%d)",
                delay,
                retry_count + 1,
                self.max_retries,
            )
            return RetryDecision(retry=True, delay=delay)

        return RetryDecision(retry=False, error=self.to_gateway_error(exc))

    def to_gateway_error(self, exc: BaseException) -> GatewayError:
        """Build the terminal error a submitter receives for ``exc``."""
        if isinstance(exc, GatewayError):
            return exc

        kind = self.classify(exc)
        status_code = getattr(exc, "status_code", 0)

        if kind in _TERMINAL_ERRORS:
            error_cls, message = _TERMINAL_ERRORS[kind]
            if kind == ErrorKind.RATE_LIMIT_EXCEEDED:
                logger.error("Max retries reached. Giving up.")
            return error_cls(message, status_code=status_code)

        return UpstreamUnknown(str(exc) or MESSAGE_UNKNOWN, status_code=status_code)
