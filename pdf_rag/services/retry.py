"""Retry logic for failed operations."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from pdf_rag.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    asyncio.TimeoutError,
    httpx.TransportError,
    ResponseHandlingException,
)


async def retry_with_backoff(
    func: Callable[[], T],
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: Optional[float] = None,
    exceptions: tuple = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Retry a function with exponential backoff.

    Args:
        func: Async function to retry.
        max_retries: Maximum number of retry attempts after the first call.
        delay: Initial delay in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        exceptions: Tuple of exceptions to catch and retry.
        should_retry: Optional predicate that can veto a retry for a caught error.
        on_retry: Optional callback invoked with (attempt, error) before sleeping.

    Returns:
        Result of the function call.

    Raises:
        Last exception if all retries fail.
    """
    max_retries = settings.max_retries - 1 if max_retries is None else max_retries
    delay = settings.retry_delay_seconds if delay is None else delay
    backoff_multiplier = (
        settings.retry_backoff_multiplier
        if backoff_multiplier is None
        else backoff_multiplier
    )

    last_exception = None

    for attempt in range(max_retries + 1):
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except exceptions as e:
            last_exception = e
            if should_retry is not None and not should_retry(e):
                raise
            if attempt < max_retries:
                wait_time = delay * (backoff_multiplier ** attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{max_retries + 1} failed: {str(e)}. "
                    f"Retrying in {wait_time:.2f}s..."
                )
                if on_retry is not None:
                    on_retry(attempt + 1, e)
                await asyncio.sleep(wait_time)
            else:
                logger.error(
                    f"All {max_retries + 1} attempts failed. Last error: {str(e)}")

    raise last_exception


def is_transient(error: BaseException) -> bool:
    """
    Decide whether a storage error is worth retrying.

    Args:
        error: Exception raised by the storage client.

    Returns:
        True for connection-level failures and server-side 5xx/429 responses.
    """
    if isinstance(error, UnexpectedResponse):
        return error.status_code is None or error.status_code >= 500 or error.status_code == 429
    return isinstance(error, TRANSIENT_EXCEPTIONS)


class RetryPolicy:
    """Exponential backoff policy shared by vector store writes and searches."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        multiplier: Optional[float] = None,
        retryable: Tuple[Type[BaseException], ...] = TRANSIENT_EXCEPTIONS + (UnexpectedResponse,),
        should_retry: Callable[[BaseException], bool] = is_transient,
    ) -> None:
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first call.
            base_delay: Delay before the second attempt, in seconds.
            multiplier: Growth factor applied to the delay per attempt.
            retryable: Exception types eligible for retry.
            should_retry: Predicate refining which caught errors are retried.

        Raises:
            ValueError: If fewer than one attempt is requested.
        """
        self.max_attempts = settings.max_retries if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.base_delay = settings.retry_delay_seconds if base_delay is None else base_delay
        self.multiplier = (
            settings.retry_backoff_multiplier if multiplier is None else multiplier
        )
        self.retryable = retryable
        self.should_retry = should_retry

    def delays(self) -> list[float]:
        """Backoff delays applied between consecutive attempts."""
        return [
            self.base_delay * (self.multiplier ** attempt)
            for attempt in range(self.max_attempts - 1)
        ]

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        """
        Run an async callable under this policy.

        Args:
            func: Zero-argument coroutine function.
            on_retry: Optional callback invoked before each retry.

        Returns:
            Result of the first successful attempt.
        """
        return await retry_with_backoff(
            func,
            max_retries=self.max_attempts - 1,
            delay=self.base_delay,
            backoff_multiplier=self.multiplier,
            exceptions=self.retryable,
            should_retry=self.should_retry,
            on_retry=on_retry,
        )
