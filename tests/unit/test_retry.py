"""
Unit tests for with_retry.
"""

from unittest.mock import AsyncMock, patch

import pytest

from authcore.domain.exceptions import DatabaseOperationException, StoreUnavailableError
from authcore.shared.utils.retry import RetryPolicy, with_retry


class TestWithRetry:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value="ok")
        assert await with_retry(operation, RetryPolicy(base_delay=0)) == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_three_times_with_doubling_delay(self):
        operation = AsyncMock(side_effect=StoreUnavailableError())

        with patch("authcore.shared.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(StoreUnavailableError):
                await with_retry(operation, RetryPolicy(retries=3, base_delay=1.0))

        assert operation.await_count == 4
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        operation = AsyncMock(side_effect=[StoreUnavailableError(), StoreUnavailableError(), "ok"])
        assert await with_retry(operation, RetryPolicy(base_delay=0)) == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        operation = AsyncMock(side_effect=DatabaseOperationException("constraint violated"))

        with pytest.raises(DatabaseOperationException):
            await with_retry(operation, RetryPolicy(base_delay=0))
        assert operation.await_count == 1
