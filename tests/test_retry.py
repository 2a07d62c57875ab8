"""Tests for retry with exponential backoff."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from qdrant_client.http.exceptions import UnexpectedResponse

from pdf_rag.services.retry import RetryPolicy, is_transient, retry_with_backoff


def _unexpected(status_code):
    return UnexpectedResponse(
        status_code=status_code,
        reason_phrase="error",
        content=b"",
        headers=httpx.Headers(),
    )


def test_delays_grow_exponentially():
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0)

    assert policy.delays() == [1.0, 2.0]


@pytest.mark.parametrize(
    "error,expected",
    [
        (ConnectionError("refused"), True),
        (httpx.ConnectError("refused"), True),
        (_unexpected(503), True),
        (_unexpected(429), True),
        (_unexpected(400), False),
        (ValueError("bad vector"), False),
    ],
)
def test_transient_classification(error, expected):
    assert is_transient(error) is expected


async def test_succeeds_after_transient_failures():
    func = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])
    retries = []
    policy = RetryPolicy(max_attempts=3, base_delay=0.5, multiplier=2.0)

    with patch("pdf_rag.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await policy.run(func, on_retry=lambda attempt, error: retries.append(attempt))

    assert result == "ok"
    assert func.await_count == 3
    assert retries == [1, 2]
    assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]


async def test_gives_up_after_max_attempts():
    func = AsyncMock(side_effect=ConnectionError("down"))
    policy = RetryPolicy(max_attempts=3, base_delay=0.0)

    with pytest.raises(ConnectionError):
        await policy.run(func)
    assert func.await_count == 3


async def test_permanent_errors_are_not_retried():
    func = AsyncMock(side_effect=_unexpected(400))
    policy = RetryPolicy(max_attempts=3, base_delay=0.0)

    with pytest.raises(UnexpectedResponse):
        await policy.run(func)
    assert func.await_count == 1


async def test_unlisted_exceptions_propagate_immediately():
    func = AsyncMock(side_effect=KeyError("missing"))

    with pytest.raises(KeyError):
        await retry_with_backoff(func, max_retries=2, delay=0.0, exceptions=(ConnectionError,))
    assert func.await_count == 1


async def test_plain_callables_are_supported():
    assert await retry_with_backoff(lambda: 42, max_retries=0, delay=0.0) == 42


def test_explicit_zero_multiplier_is_kept():
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=0.0)

    assert policy.multiplier == 0.0
    assert policy.delays() == [1.0, 0.0]


def test_fewer_than_one_attempt_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
