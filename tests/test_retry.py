from __future__ import annotations

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from controlplane.services.cloudformation_service import CloudFormationServiceError
from controlplane.services.retry import RetryPolicy, error_code, is_transient_error, retry_async

FAST = RetryPolicy(max_attempts=3, base_delay_seconds=0.0, jitter=0.0)


def _client_error(code: str, status: int = 400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "CreateStack",
    )


def test_throttling_and_5xx_are_transient() -> None:
    assert is_transient_error(_client_error("ThrottlingException"))
    assert is_transient_error(_client_error("SomethingOdd", status=503))
    assert is_transient_error(EndpointConnectionError(endpoint_url="https://cloudformation.test"))
    assert not is_transient_error(_client_error("ValidationError"))
    assert not is_transient_error(ValueError("bad input"))


def test_classifier_sees_through_wrapped_errors() -> None:
    try:
        try:
            raise _client_error("RequestLimitExceeded")
        except ClientError as exc:
            raise CloudFormationServiceError("Failed to create stack") from exc
    except CloudFormationServiceError as wrapped:
        assert is_transient_error(wrapped)
        assert error_code(wrapped) == "RequestLimitExceeded"


@pytest.mark.asyncio
async def test_retry_async_retries_transient_then_succeeds() -> None:
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise _client_error("ThrottlingException")
        return "ok"

    assert await retry_async(flaky, policy=FAST) == "ok"
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_retry_async_gives_up_after_max_attempts() -> None:
    calls = {"count": 0}

    async def always_throttled() -> None:
        calls["count"] += 1
        raise _client_error("Throttling")

    with pytest.raises(ClientError):
        await retry_async(always_throttled, policy=FAST)
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_permanent_errors() -> None:
    calls = {"count": 0}

    async def invalid() -> None:
        calls["count"] += 1
        raise _client_error("ValidationError")

    with pytest.raises(ClientError):
        await retry_async(invalid, policy=FAST)
    assert calls["count"] == 1


def test_backoff_is_capped() -> None:
    policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=5.0, jitter=0.0)
    assert policy.delay_for(1) == 1.0
    assert policy.delay_for(2) == 2.0
    assert policy.delay_for(10) == 5.0
