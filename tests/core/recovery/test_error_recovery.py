"""
Tests for the Error Recovery System

Tests for error classification and the retry policy.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from l2restaking.core.recovery import (
    AuthorizationError,
    ContractRevertError,
    IntegrityError,
    LedgerConflictError,
    MessageNotFoundError,
    NetworkError,
    RateLimitError,
    ReceiptNotFoundError,
    RecoverableError,
    RetryConfig,
    RetryStrategy,
    RpcTimeoutError,
    SigningRejectedError,
    UnrecoverableError,
    ValidationError,
    classify_error,
)
from l2restaking.core.recovery.errors import ErrorCategory


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://ccip.chain.link/api/h/atlas/message/0x01")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_rate_limit_error(self):
        error = RateLimitError(retry_after=30.0, provider="rpc")

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.retry_after == 30.0
        assert error.context.provider == "rpc"

    def test_receipt_not_found_is_recoverable(self):
        error = ReceiptNotFoundError("0xabc", chain_id=84532)

        assert error.category == ErrorCategory.NOT_FOUND
        assert error.context.recoverable is True
        assert error.context.tx_hash == "0xabc"

    @pytest.mark.parametrize(
        "error,category",
        [
            (ValidationError("bad address", field_name="staker"), ErrorCategory.VALIDATION),
            (AuthorizationError(operator="0x01"), ErrorCategory.AUTHORIZATION),
            (IntegrityError("messageId equals txHash", tx_hash="0x01"), ErrorCategory.INTEGRITY),
            (LedgerConflictError("duplicate messageId"), ErrorCategory.CONFLICT),
            (ContractRevertError("execution reverted"), ErrorCategory.CONTRACT),
            (MessageNotFoundError("0x02"), ErrorCategory.NOT_FOUND),
            (SigningRejectedError(), ErrorCategory.USER_REJECTED),
        ],
    )
    def test_unrecoverable_variants(self, error, category):
        assert isinstance(error, UnrecoverableError)
        assert error.category == category
        assert classify_error(error).recoverable is False

    def test_classify_timeout(self):
        context = classify_error(httpx.ReadTimeout("slow"))
        assert context.category == ErrorCategory.TIMEOUT
        assert context.recoverable is True

        assert classify_error(asyncio.TimeoutError()).category == ErrorCategory.TIMEOUT

    def test_classify_rate_limit_status(self):
        context = classify_error(_status_error(429))
        assert context.category == ErrorCategory.RATE_LIMIT
        assert context.recoverable is True

    def test_classify_server_and_client_errors(self):
        assert classify_error(_status_error(503)).recoverable is True
        assert classify_error(_status_error(400)).recoverable is False

    def test_classify_connection_error(self):
        context = classify_error(httpx.ConnectError("refused"))
        assert context.category == ErrorCategory.NETWORK
        assert context.recoverable is True

    def test_message_text_is_not_inspected(self):
        context = classify_error(Exception("429 Too Many Requests"))
        assert context.category == ErrorCategory.UNKNOWN
        assert context.recoverable is False


# =============================================================================
# Retry Strategy Tests
# =============================================================================

class TestRetryStrategy:
    """Tests for retry strategies."""

    @pytest.mark.asyncio
    async def test_successful_operation(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=3))
        operation = AsyncMock(return_value="success")

        assert await strategy.execute(operation) == "success"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retry_recoverable_error(self):
        sleep = AsyncMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=3, jitter=False), sleep=sleep)
        operation = AsyncMock(side_effect=[NetworkError("down"), NetworkError("down"), "success"])

        assert await strategy.execute(operation) == "success"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_retry_unrecoverable(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=3), sleep=AsyncMock())
        operation = AsyncMock(side_effect=ContractRevertError("execution reverted"))

        with pytest.raises(ContractRevertError):
            await strategy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=3), sleep=AsyncMock())
        operation = AsyncMock(side_effect=NetworkError("Always fails"))

        with pytest.raises(NetworkError):
            await strategy.execute(operation)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_retry_on_narrows_errors(self):
        strategy = RetryStrategy(
            RetryConfig(max_attempts=4),
            retry_on=(ReceiptNotFoundError,),
            sleep=AsyncMock(),
        )
        operation = AsyncMock(side_effect=RpcTimeoutError("slow"))

        with pytest.raises(RpcTimeoutError):
            await strategy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        sleep = AsyncMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=2), sleep=sleep)
        operation = AsyncMock(side_effect=[RateLimitError(retry_after=7.0), "ok"])

        assert await strategy.execute(operation) == "ok"
        sleep.assert_awaited_once_with(7.0)

    def test_should_retry_recoverable(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        assert strategy.should_retry(NetworkError("test"), attempt=0) is True
        assert strategy.should_retry(NetworkError("test"), attempt=2) is False
        assert strategy.should_retry(ValidationError("test"), attempt=0) is False
        assert strategy.should_retry(httpx.ConnectError("refused"), attempt=0) is True
        assert strategy.should_retry(KeyError("x"), attempt=0) is False


# =============================================================================
# Exponential Backoff Tests
# =============================================================================

class TestExponentialBackoff:
    """Tests for the exponential backoff schedule."""

    def test_backoff_increases(self):
        config = RetryConfig(max_attempts=5, initial_delay_seconds=0.01, max_delay_seconds=1.0)

        delays = [config.get_delay(i) for i in range(5)]

        # Each delay should be roughly 2x the previous (with jitter)
        for i in range(1, 4):
            assert delays[i] >= delays[i - 1] * 0.8

    def test_max_delay_enforced(self):
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=10.0, exponential_base=2.0)

        assert config.get_delay(100) <= 10.0 * 1.1

    def test_receipt_schedule_without_jitter(self):
        config = RetryConfig(initial_delay_seconds=1.0, exponential_base=2.0, jitter=False)
        assert [config.get_delay(i) for i in range(3)] == [1.0, 2.0, 4.0]
