"""Sequential, rate-limited batch rename executor."""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from cloudrename.adapters.base import PlatformAdapter
from cloudrename.models.file import FileItem, PlatformConfig, RenameResult
from cloudrename.models.operation import BatchResults, ProgressEvent, RenameTask, TaskRecord
from cloudrename.models.rule import RuleConfig
from cloudrename.processors.retry import DEFAULT_BASE_DELAY_SECONDS, DEFAULT_MAX_RETRIES, RetryPolicy
from cloudrename.rules import apply_rule


# Minimum spacing between two provider calls; providers throttle aggressively
DEFAULT_REQUEST_INTERVAL_SECONDS = 0.8

ProgressCallback = Callable[[ProgressEvent], Any]
CompleteCallback = Callable[[BatchResults], Any]
TaskDoneCallback = Callable[[RenameTask, RenameResult], Any]
RenameFn = Callable[[RenameTask], Awaitable[RenameResult]]


class ExecutorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExecutorConfig(BaseModel):
    """Tuning knobs for one batch."""

    request_interval: float = Field(default=DEFAULT_REQUEST_INTERVAL_SECONDS, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    base_delay: float = Field(default=DEFAULT_BASE_DELAY_SECONDS, ge=0)
    skip_unchanged: bool = Field(default=False, description="Record unchanged names as skipped without an API call")

    @classmethod
    def from_platform(cls, platform_config: PlatformConfig, **overrides: Any) -> "ExecutorConfig":
        """Build a config from an adapter's settings; ``overrides`` win."""
        values: dict[str, Any] = {
            "request_interval": platform_config.request_interval,
            "max_retries": platform_config.max_retries,
        }
        values.update(overrides)
        return cls(**values)


class RateLimiter:
    """Enforces a minimum interval between consecutive calls."""

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self.clock = clock
        self.sleep = sleep
        self._last_call: float | None = None

    async def wait(self) -> None:
        """Sleep until ``interval`` has passed since the previous call, then record this one."""
        if self.interval > 0 and self._last_call is not None:
            remaining = self.interval - (self.clock() - self._last_call)
            if remaining > 0:
                await self.sleep(remaining)
        self._last_call = self.clock()


async def notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sync or async event callback. Callback errors are logged, never raised."""
    if callback is None:
        return
    try:
        outcome = callback(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("Event callback {} failed", getattr(callback, "__name__", callback))


class BatchExecutor:
    """Renames files one at a time with rate limiting, retries, pause and cancel.

    Example:
        executor = BatchExecutor(files, rule, adapter, on_progress=print)
        results = await executor.execute()
    """

    def __init__(
        self,
        files: list[FileItem],
        rule: RuleConfig,
        adapter: PlatformAdapter,
        config: ExecutorConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        tasks: list[RenameTask] | None = None,
        on_task_done: TaskDoneCallback | None = None,
        rename_fn: RenameFn | None = None,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            files: Files to rename, in processing order.
            rule: Naming rule used when ``tasks`` is not given.
            adapter: Platform adapter performing the renames.
            config: Batch settings; derived from ``adapter.get_config()`` when omitted.
            on_progress: Called with a ProgressEvent after every file.
            on_complete: Called once with the BatchResults when the batch ends.
            tasks: Precomputed tasks (e.g. after conflict resolution); overrides ``rule``.
            on_task_done: Awaited after every file with the task and its result, before progress is emitted.
            rename_fn: Replaces the plain ``adapter.rename_file`` call for one attempt.
            retry_policy: Retry policy; built from ``config`` when omitted.
            rate_limiter: Rate limiter; built from ``config`` when omitted.

        Raises:
            ValueError: If there is nothing to rename.
        """
        if not files and not tasks:
            raise ValueError("Files list cannot be empty")

        self.files = files
        self.rule = rule
        self.adapter = adapter
        self.config = config or ExecutorConfig.from_platform(adapter.get_config())
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_task_done = on_task_done
        self.rename_fn = rename_fn or self._rename
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.max_retries,
            base_delay=self.config.base_delay,
        )
        self.rate_limiter = rate_limiter or RateLimiter(self.config.request_interval)

        self.state = ExecutorState.IDLE
        self.results = BatchResults()
        self.tasks: list[RenameTask] = list(tasks) if tasks is not None else []
        self._precomputed = tasks is not None
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._cancel_requested = False
        self._start_time = 0.0

    def prepare_tasks(self) -> list[RenameTask]:
        """Apply the naming rule to every file, numbering by position."""
        total = len(self.files)
        return [
            RenameTask(file=file, new_name=apply_rule(self.rule, file, ix, total), index=ix)
            for ix, file in enumerate(self.files)
        ]

    async def execute(self) -> BatchResults:
        """Run the batch to completion or cancellation.

        Returns:
            BatchResults, also passed to ``on_complete``.

        Raises:
            RuntimeError: If the executor is already running.
            InvalidRuleError: If the rule cannot be applied (raised before any rename).
        """
        if self.state in (ExecutorState.RUNNING, ExecutorState.PAUSED):
            raise RuntimeError("Executor is already running")

        if not self._precomputed:
            self.tasks = self.prepare_tasks()

        self.state = ExecutorState.RUNNING
        self.results = BatchResults()
        self._cancel_requested = False
        self._resume_event.set()
        self._start_time = time.monotonic()

        logger.info("Starting batch of {} renames", len(self.tasks))

        for task in self.tasks:
            await self._resume_event.wait()
            if self._cancel_requested:
                break
            await self._process(task)

        if self._cancel_requested and self.results.completed < len(self.tasks):
            self.state = ExecutorState.CANCELLED
            self.results.cancelled = True
            logger.info("Batch cancelled after {}/{} files", self.results.completed, len(self.tasks))
        else:
            self.state = ExecutorState.COMPLETED
            logger.info(
                "Batch finished: {} succeeded, {} failed",
                self.results.success_count,
                self.results.failed_count,
            )

        await notify(self.on_complete, self.results)
        return self.results

    def pause(self) -> None:
        """Pause before the next file; an in-flight rename still completes."""
        if self.state != ExecutorState.RUNNING:
            return
        self.state = ExecutorState.PAUSED
        self._resume_event.clear()

    def resume(self) -> None:
        if self.state != ExecutorState.PAUSED:
            return
        self.state = ExecutorState.RUNNING
        self._resume_event.set()

    def cancel(self) -> None:
        """Stop after the current file. ``on_complete`` still fires.

        Like ``pause``, this only applies to a running or paused batch and is
        ignored otherwise, including before ``execute`` is called.
        """
        if self.state not in (ExecutorState.RUNNING, ExecutorState.PAUSED):
            return
        self._cancel_requested = True
        if self.state == ExecutorState.PAUSED:
            self.state = ExecutorState.RUNNING
        self._resume_event.set()

    async def _rename(self, task: RenameTask) -> RenameResult:
        return await self.adapter.rename_file(task.file.id, task.new_name)

    async def _attempt(self, task: RenameTask) -> RenameResult:
        await self.rate_limiter.wait()
        return await self.rename_fn(task)

    async def _process(self, task: RenameTask) -> None:
        if self.config.skip_unchanged and task.unchanged:
            result = RenameResult(success=True, new_name=task.new_name, skipped=True, reason="unchanged")
        else:
            result = await self.retry_policy.call(lambda: self._attempt(task), description=task.file.name)

        record = TaskRecord(
            index=task.index,
            file_id=task.file.id,
            original=task.file.name,
            new_name=task.new_name,
            skipped=result.skipped,
            error=None if result.success else result.error_message,
        )
        if result.success:
            self.results.succeeded.append(record)
        else:
            self.results.failed.append(record)
            logger.warning("Rename of '{}' to '{}' failed: {}", task.file.name, task.new_name, record.error)

        await notify(self.on_task_done, task, result)
        await notify(
            self.on_progress,
            ProgressEvent(
                completed=self.results.completed,
                total=len(self.tasks),
                success=self.results.success_count,
                failed=self.results.failed_count,
                current_file=task.file.name,
                file_id=task.file.id,
                new_name=task.new_name,
                status="success" if result.success else "failed",
                error=record.error,
            ),
        )

    def estimated_time_remaining(self) -> float:
        """Seconds left, extrapolated from the average time per file so far."""
        completed = self.results.completed
        if completed == 0:
            return 0.0
        elapsed = time.monotonic() - self._start_time
        return (elapsed / completed) * (len(self.tasks) - completed)

    def statistics(self) -> dict[str, Any]:
        completed = self.results.completed
        total = len(self.tasks) or len(self.files)
        elapsed = time.monotonic() - self._start_time if self._start_time else 0.0
        return {
            "completed": completed,
            "total": total,
            "success": self.results.success_count,
            "failed": self.results.failed_count,
            "percentage": (completed / total) * 100 if total else 0.0,
            "elapsed": elapsed,
            "estimated_remaining": self.estimated_time_remaining(),
            "avg_time_per_file": elapsed / completed if completed else 0.0,
        }
