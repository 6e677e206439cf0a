from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from botocore.exceptions import ClientError, ConnectionClosedError, EndpointConnectionError, ReadTimeoutError

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "TooManyRequestsException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "ServiceUnavailable",
        "InternalFailure",
        "InternalServerError",
        "NetworkingError",
        "ECONNRESET",
        "ETIMEDOUT",
        "EPIPE",
    }
)

_TRANSIENT_EXCEPTIONS = (
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
    ConnectionError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter: float = 0.2

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based), capped and jittered."""

        delay = min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)
        spread = delay * self.jitter
        return max(0.0, delay + random.uniform(-spread, spread))


def _error_chain(exc: BaseException) -> list[BaseException]:
    # Adapters wrap provider errors with `raise ... from exc`; classify the whole chain.
    chain: list[BaseException] = []
    current: Optional[BaseException] = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def error_code(exc: BaseException) -> Optional[str]:
    """First provider error code found on `exc` or anything it was raised from."""

    for item in _error_chain(exc):
        if isinstance(item, ClientError):
            return item.response.get("Error", {}).get("Code")
        code = getattr(item, "code", None)
        if isinstance(code, str) and code:
            return code
    return None


def is_transient_error(exc: BaseException) -> bool:
    for item in _error_chain(exc):
        if isinstance(item, _TRANSIENT_EXCEPTIONS):
            return True
        if isinstance(item, ClientError):
            code = item.response.get("Error", {}).get("Code")
            status = item.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if code in TRANSIENT_ERROR_CODES:
                return True
            if isinstance(status, int) and status >= 500:
                return True
        code = getattr(item, "code", None)
        if isinstance(code, str) and code in TRANSIENT_ERROR_CODES:
            return True
    return False


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: Optional[RetryPolicy] = None,
    retryable: Optional[Callable[[BaseException], bool]] = None,
    label: str = "operation",
) -> Any:
    """Run `func` with bounded exponential backoff on transient failures only.

    Permanent errors (per `retryable`) are re-raised immediately; transient ones are
    re-raised once `policy.max_attempts` is exhausted.
    """

    policy = policy or RetryPolicy()
    retryable = retryable or is_transient_error
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= max(policy.max_attempts, 1) or not retryable(exc):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed with a transient error (attempt %d/%d), retrying in %.2fs: %s",
                label,
                attempt,
                policy.max_attempts,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
            attempt += 1
