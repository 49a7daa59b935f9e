"""Retry policy for rename calls: error classification and exponential backoff."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from cloudrename.errors import NetworkError, ProviderAPIError
from cloudrename.models.file import ErrorInfo, ErrorKind, RenameResult


# Maximum attempts per rename (first try included)
DEFAULT_MAX_RETRIES = 3

# Delay before the first retry; doubles on every further retry
DEFAULT_BASE_DELAY_SECONDS = 1.0

# Upper bound for a single backoff delay
MAX_BACKOFF_SECONDS = 10.0

# Provider codes that mean "try again later", returned inside an otherwise normal response.
# Baidu: 4 network timeout, 110-112 session/token expired.
TRANSIENT_API_CODES: dict[str, set[int | str]] = {
    "baidu": {4, 110, 111, 112},
    "aliyun": {"TooManyRequests", "InternalError.Timeout", "ServiceUnavailable"},
    "quark": {429, 500},
}

NETWORK_HINTS = ("network", "timeout", "fetch", "connection")


def is_transient_code(code: int | str | None, platform: str | None = None) -> bool:
    """Return True for rate-limit (429), server-fault (5xx) and provider-specific transient codes."""
    if code is None:
        return False
    if platform and code in TRANSIENT_API_CODES.get(platform, set()):
        return True
    try:
        status = int(code)
    except (TypeError, ValueError):
        return False
    return status == 429 or 500 <= status <= 599


def _mentions_network(message: str) -> bool:
    lowered = message.lower()
    return any(hint in lowered for hint in NETWORK_HINTS)


RetryCallback = Callable[[int, int, float, BaseException | ErrorInfo | None], None]


@dataclass
class RetryStats:
    """Counts retry activity across calls made through one policy."""

    total_retries: int = 0
    successful_retries: int = 0
    exhausted: int = 0

    def reset(self) -> None:
        self.total_retries = 0
        self.successful_retries = 0
        self.exhausted = 0


class RetryPolicy:
    """Classifies rename errors and retries transient ones with capped exponential backoff."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        max_delay: float = MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: RetryCallback | None = None,
    ) -> None:
        """Initialize the policy.

        Args:
            max_retries: Maximum number of attempts per call, first attempt included.
            base_delay: Seconds to wait before the first retry.
            max_delay: Cap for any single delay.
            sleep: Coroutine used to wait between attempts (injectable for tests).
            on_retry: Called as ``on_retry(attempt, max_retries, delay, error)`` before each backoff sleep.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.on_retry = on_retry
        self.stats = RetryStats()

    def classify(self, error: BaseException | ErrorInfo) -> bool:
        """Return True if ``error`` is worth retrying."""
        if isinstance(error, ErrorInfo):
            if error.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT):
                return True
            if error.kind == ErrorKind.API:
                return is_transient_code(error.code, error.platform)
            if error.kind == ErrorKind.NAME_MISMATCH:
                return False
            return _mentions_network(error.message)

        if isinstance(error, ProviderAPIError):
            return is_transient_code(error.code, error.platform)
        if isinstance(error, (NetworkError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
            return True
        return _mentions_network(str(error))

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _is_retryable_result(self, result: RenameResult) -> bool:
        if result.success:
            return False
        return result.error is not None and self.classify(result.error)

    @staticmethod
    def _last_error(retry_state: RetryCallState) -> BaseException | ErrorInfo | None:
        outcome = retry_state.outcome
        if outcome is None:
            return None
        if outcome.failed:
            return outcome.exception()
        return outcome.result().error

    async def call(self, operation: Callable[[], Awaitable[RenameResult]], description: str = "") -> RenameResult:
        """Run ``operation`` until it succeeds, fails permanently or runs out of attempts.

        Both raised exceptions and failed RenameResults are classified. The
        returned result is never raised: a permanent failure or exhaustion
        yields a failed RenameResult carrying the last error.

        Args:
            operation: Zero-argument coroutine function performing one attempt.
            description: Short label (usually the target file name) used in log messages.

        Returns:
            The successful result, or a failed one.
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            delay = getattr(retry_state.next_action, "sleep", 0) if retry_state.next_action else 0
            error = self._last_error(retry_state)
            self.stats.total_retries += 1
            logger.warning(
                "Transient error on {}: {}. Retrying in {:.1f}s (attempt {}/{})",
                description,
                error,
                delay,
                retry_state.attempt_number,
                self.max_retries,
            )
            if self.on_retry is not None:
                self.on_retry(retry_state.attempt_number, self.max_retries, delay, error)

        def _give_up(retry_state: RetryCallState) -> RenameResult:
            self.stats.exhausted += 1
            error = self._last_error(retry_state)
            logger.error("All {} attempts failed for {}: {}", self.max_retries, description, error)
            outcome = retry_state.outcome
            if outcome is not None and not outcome.failed:
                return outcome.result()
            return RenameResult.failure(error if error is not None else ErrorInfo(message="All retries failed"))

        attempts = 0

        async def _attempt() -> RenameResult:
            nonlocal attempts
            attempts += 1
            return await operation()

        retrying = AsyncRetrying(
            retry=retry_if_exception(self.classify) | retry_if_result(self._is_retryable_result),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            sleep=self.sleep,
            before_sleep=_log_retry,
            retry_error_callback=_give_up,
        )

        try:
            result = await retrying(_attempt)
        except Exception as e:
            logger.info("Non-retryable error on {}: {}", description, e)
            return RenameResult.failure(e)

        if result.success and attempts > 1:
            self.stats.successful_retries += 1
            logger.info("Retry succeeded for {} on attempt {}", description, attempts)
        elif not result.success and result.error is not None and not self.classify(result.error):
            logger.info("Non-retryable error on {}: {}", description, result.error)
        return result
