"""Tenacity retry wrapper driven by RetryConfig."""

from __future__ import annotations

from collections.abc import Callable

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import ProviderUnavailable


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (ProviderUnavailable,),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Only ``ProviderUnavailable`` is retried by default; auth and payload
    errors are never retried automatically.

    Usage::

        @with_retry(settings.retry)
        async def call_provider() -> dict[str, object]: ...
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        reraise=True,
    )
