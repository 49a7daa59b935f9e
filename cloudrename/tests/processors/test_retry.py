"""Unit tests for the retry policy."""

import asyncio

import pytest

from cloudrename.errors import NetworkError, ProviderAPIError
from cloudrename.models.file import ErrorInfo, ErrorKind, RenameResult
from cloudrename.processors.retry import RetryPolicy, is_transient_code
from cloudrename.tests.fixtures import SleepRecorder


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def policy(sleeper):
    return RetryPolicy(max_retries=3, base_delay=1.0, sleep=sleeper)


class TestClassify:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("connection reset"),
            ConnectionError("refused"),
            TimeoutError(),
            asyncio.TimeoutError(),
            RuntimeError("Failed to fetch"),
        ],
    )
    def test_transport_errors_are_retryable(self, policy, error):
        """Test that network-transport failures are always retried."""
        assert policy.classify(error) is True

    @pytest.mark.parametrize(
        "code,platform",
        [(429, None), (500, None), (503, "quark"), (4, "baidu"), (110, "baidu"), ("TooManyRequests", "aliyun")],
    )
    def test_transient_api_codes_are_retryable(self, policy, code, platform):
        """Test that rate-limit, 5xx and provider transient codes are retried."""
        assert policy.classify(ProviderAPIError(code, "transient", platform)) is True

    @pytest.mark.parametrize(
        "code,platform",
        [(403, None), (404, "quark"), (1002, "quark"), (-8, "baidu"), ("AlreadyExist.File", "aliyun")],
    )
    def test_permanent_api_codes_are_not_retryable(self, policy, code, platform):
        """Test that permission, not-found, invalid-name and exists errors are not retried."""
        assert policy.classify(ProviderAPIError(code, "permanent", platform)) is False

    def test_classifies_error_info(self, policy):
        """Test classification of serialised errors carried in results."""
        assert policy.classify(ErrorInfo(kind=ErrorKind.TIMEOUT, message="slow")) is True
        assert policy.classify(ErrorInfo(kind=ErrorKind.API, code=403, message="denied")) is False
        assert policy.classify(ErrorInfo(kind=ErrorKind.NAME_MISMATCH, message="network")) is False

    def test_baidu_codes_not_transient_elsewhere(self):
        """Test that provider-specific codes only apply to their provider."""
        assert is_transient_code(110, "baidu") is True
        assert is_transient_code(110, "quark") is False


class TestBackoff:
    """Tests for backoff delay computation."""

    @pytest.mark.parametrize("attempt,expected", [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0), (5, 10.0), (10, 10.0)])
    def test_exponential_with_cap(self, policy, attempt, expected):
        """Test that delays double per attempt and are capped at 10 seconds."""
        assert policy.backoff_delay(attempt) == expected

    def test_rejects_zero_retries(self):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=0)


class TestCall:
    """Tests for the retrying call wrapper."""

    @pytest.mark.asyncio
    async def test_always_retryable_error_attempts_max_retries(self, policy, sleeper):
        """Test exactly 3 attempts with 1s then 2s backoff before giving up."""
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise NetworkError("network down")

        result = await policy.call(operation, description="a.txt")

        assert calls == 3
        assert sleeper.delays == [1.0, 2.0]
        assert result.success is False
        assert result.error.kind == ErrorKind.NETWORK
        assert policy.stats.exhausted == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_attempts_once(self, policy, sleeper):
        """Test that permission-denied stops after a single attempt."""
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise ProviderAPIError(403, "Permission denied")

        result = await policy.call(operation)

        assert calls == 1
        assert sleeper.delays == []
        assert result.success is False
        assert result.error.code == 403

    @pytest.mark.asyncio
    async def test_failed_result_with_transient_error_is_retried(self, policy, sleeper):
        """Test that a failed RenameResult carrying a rate-limit error is retried until success."""
        outcomes = [
            RenameResult.failure(ErrorInfo(kind=ErrorKind.API, code=429, message="Too many requests")),
            RenameResult(success=True, new_name="b.txt"),
        ]

        async def operation():
            return outcomes.pop(0)

        result = await policy.call(operation)

        assert result.success is True
        assert sleeper.delays == [1.0]
        assert policy.stats.successful_retries == 1

    @pytest.mark.asyncio
    async def test_exhausted_failed_result_returns_last_result(self, sleeper):
        """Test that exhaustion on failed results yields the last failed result."""
        policy = RetryPolicy(max_retries=2, sleep=sleeper)

        async def operation():
            return RenameResult.failure(ErrorInfo(kind=ErrorKind.API, code=500, message="Server error"))

        result = await policy.call(operation)

        assert result.success is False
        assert result.error.code == 500
        assert sleeper.delays == [1.0]

    @pytest.mark.asyncio
    async def test_permanent_failed_result_returned_immediately(self, policy, sleeper):
        """Test that a failed result with a permanent error is not retried."""
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            return RenameResult.failure(ErrorInfo(kind=ErrorKind.API, code=404, message="Not found"))

        result = await policy.call(operation)

        assert calls == 1
        assert result.error.code == 404

    @pytest.mark.asyncio
    async def test_on_retry_callback_receives_attempt_info(self, sleeper):
        """Test the retry notification hook."""
        notices = []
        policy = RetryPolicy(max_retries=2, sleep=sleeper, on_retry=lambda *args: notices.append(args))

        async def operation():
            raise TimeoutError("timed out")

        await policy.call(operation)

        assert len(notices) == 1
        attempt, max_retries, delay, error = notices[0]
        assert (attempt, max_retries, delay) == (1, 2, 1.0)
        assert isinstance(error, TimeoutError)
