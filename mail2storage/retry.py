"""Tenacity retry wrapper driven by RetryConfig."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from .config import RetryConfig
from .errors import PermanentStorageError, TransientStorageError

if TYPE_CHECKING:
    from .storage.base import StorageBackend

logger = structlog.get_logger()


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_scheduled",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
    )


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (TransientStorageError,),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Waits grow by ``multiplier`` from ``initial_interval_seconds`` up to
    ``max_interval_seconds``; retrying stops once ``max_elapsed_seconds``
    have passed (or after ``max_attempts`` when set).  The last exception
    is re-raised.

    Usage::

        @with_retry(config.retry)
        async def put() -> None: ...
    """
    stop = stop_after_delay(config.max_elapsed_seconds)
    if config.max_attempts is not None:
        stop = stop | stop_after_attempt(config.max_attempts)

    return retry(
        stop=stop,
        wait=wait_exponential(
            multiplier=config.initial_interval_seconds,
            exp_base=config.multiplier,
            max=config.max_interval_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )


async def put_with_retry(
    backend: StorageBackend,
    key: str,
    data: bytes,
    config: RetryConfig,
) -> None:
    """Store *data* at *key*, retrying transient failures.

    Raises :class:`PermanentStorageError` for permanent failures and once
    the retry budget for transient ones is used up.
    """

    @with_retry(config)
    async def _put() -> None:
        await backend.put(key, data)

    try:
        await _put()
    except TransientStorageError as exc:
        logger.error("retry_budget_exhausted", key=key, error=str(exc))
        raise PermanentStorageError(f"giving up after retries: {exc}") from exc
