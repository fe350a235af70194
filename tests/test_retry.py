"""Tests for mail2storage.retry."""

from __future__ import annotations

import pytest

from mail2storage.config import RetryConfig
from mail2storage.errors import PermanentStorageError, TransientStorageError
from mail2storage.retry import put_with_retry, with_retry
from tests.conftest import MemoryStorage


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, fast_retry: RetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert await fn() == "ok"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, fast_retry: RetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TransientStorageError("503")
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_attempts_and_reraises(self, fast_retry: RetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise TransientStorageError("still down")

        with pytest.raises(TransientStorageError, match="still down"):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self, fast_retry: RetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ValueError("bug")

        with pytest.raises(ValueError):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_elapsed_budget_stops_retrying(self):
        config = RetryConfig(
            initial_interval_seconds=0.01,
            multiplier=1.0,
            max_interval_seconds=0.01,
            max_elapsed_seconds=0.0,
        )
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise TransientStorageError("down")

        with pytest.raises(TransientStorageError):
            await fn()
        assert call_count == 1


class TestPutWithRetry:
    @pytest.mark.asyncio
    async def test_transient_then_success(self, fast_retry: RetryConfig):
        backend = MemoryStorage(
            failures={"a.pdf": [TransientStorageError("timeout"), TransientStorageError("503")]},
        )
        await put_with_retry(backend, "a.pdf", b"data", fast_retry)
        assert backend.calls == ["a.pdf", "a.pdf", "a.pdf"]
        assert backend.objects == {"a.pdf": b"data"}

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self, fast_retry: RetryConfig):
        backend = MemoryStorage(failures={"a.pdf": [PermanentStorageError("403")]})
        with pytest.raises(PermanentStorageError, match="403"):
            await put_with_retry(backend, "a.pdf", b"data", fast_retry)
        assert backend.calls == ["a.pdf"]

    @pytest.mark.asyncio
    async def test_exhausted_budget_becomes_permanent(self, fast_retry: RetryConfig):
        backend = MemoryStorage(
            failures={"a.pdf": [TransientStorageError(f"503 #{i}") for i in range(5)]},
        )
        with pytest.raises(PermanentStorageError, match="giving up") as exc_info:
            await put_with_retry(backend, "a.pdf", b"data", fast_retry)
        assert isinstance(exc_info.value.__cause__, TransientStorageError)
        assert len(backend.calls) == 3
        assert backend.objects == {}
