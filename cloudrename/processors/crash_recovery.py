"""Crash recovery: persisted operation state and safe resumption of interrupted batches."""

import inspect
import time
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import ValidationError

from cloudrename.adapters.base import PlatformAdapter
from cloudrename.models.file import ErrorInfo, ErrorKind, FileItem, RenameResult
from cloudrename.models.operation import BatchResults, OperationState, RecoveryInfo, RenameTask
from cloudrename.models.rule import RuleConfig
from cloudrename.processors.executor import (
    BatchExecutor,
    CompleteCallback,
    ExecutorConfig,
    ProgressCallback,
    RateLimiter,
    notify,
)
from cloudrename.rules import apply_rule, preview
from cloudrename.store import KeyValueStore


STORAGE_KEY = "rename_operation_state"

# Persisted operations older than this are not offered for resumption
MAX_AGE_MINUTES = 30

ConfirmCallback = Callable[[OperationState], bool | Awaitable[bool]]


class CrashRecoveryManager:
    """Persists batch progress and resumes interrupted batches.

    Assumes a single writer per store key: two batches sharing one store
    would corrupt each other's index lists.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = STORAGE_KEY,
        max_age_minutes: float = MAX_AGE_MINUTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.key = key
        self.max_age_minutes = max_age_minutes
        self.clock = clock
        self.active_executor: BatchExecutor | None = None

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def save_operation_state(self, state: OperationState) -> bool:
        """Stamp ``state`` with the current time and persist it.

        Returns:
            False if the store rejected the write. The failure is logged, not raised.
        """
        state.timestamp = self._now_ms()
        try:
            await self.store.set(self.key, state.model_dump(mode="json"))
        except Exception as e:
            logger.error("Failed to save operation state: {}", e)
            return False
        return True

    async def start_operation(
        self,
        platform: str,
        files: list[FileItem],
        rule: RuleConfig,
        new_names: list[str] | None = None,
    ) -> OperationState:
        """Create and persist the state for a new batch."""
        if new_names is not None and len(new_names) != len(files):
            raise ValueError(f"Got {len(new_names)} names for {len(files)} files")
        state = OperationState(platform=platform, files=files, rule=rule, new_names=new_names)
        await self.save_operation_state(state)
        return state

    async def _load(self) -> OperationState | None:
        try:
            raw = await self.store.get(self.key)
        except Exception as e:
            logger.error("Failed to read operation state: {}", e)
            return None
        if raw is None:
            return None
        try:
            return OperationState.model_validate(raw)
        except ValidationError as e:
            logger.error("Discarding unreadable operation state: {}", e)
            await self.clear_operation_state()
            return None

    async def check_recoverable_operation(self) -> OperationState | None:
        """Return the persisted operation if it is recent and unfinished.

        Stale or already finished records are removed.
        """
        state = await self._load()
        if state is None:
            return None

        age = state.age_minutes(self.clock())
        if age > self.max_age_minutes:
            logger.info("Saved operation is {:.1f} minutes old, clearing", age)
            await self.clear_operation_state()
            return None

        if state.is_finished:
            logger.info("Saved operation had already finished, clearing")
            await self.clear_operation_state()
            return None

        logger.info(
            "Recoverable operation found: age={:.1f}min files={} completed={} failed={}",
            age,
            len(state.files),
            len(state.completed),
            len(state.failed),
        )
        return state

    async def clear_operation_state(self) -> None:
        try:
            await self.store.remove(self.key)
        except Exception as e:
            logger.error("Failed to clear operation state: {}", e)

    async def mark_as_completed(self, index: int) -> None:
        await self._mark(index, failed=False)

    async def mark_as_failed(self, index: int) -> None:
        await self._mark(index, failed=True)

    async def _mark(self, index: int, failed: bool) -> None:
        state = await self._load()
        if state is None:
            return
        try:
            changed = state.mark_failed(index) if failed else state.mark_completed(index)
        except IndexError as e:
            logger.error("Cannot record outcome: {}", e)
            return
        if not changed:
            logger.warning("Index {} is already recorded, ignoring", index)
            return
        if state.is_finished:
            await self.clear_operation_state()
        else:
            await self.save_operation_state(state)

    def get_pending_files(self, state: OperationState) -> list[FileItem]:
        return [state.files[ix] for ix in state.pending_indices()]

    def build_tasks(self, state: OperationState, indices: list[int]) -> list[RenameTask]:
        """Tasks for ``indices``, named from the persisted names or else from the rule.

        Rule-derived names use the file's original index so numbering does
        not shift on resume.
        """
        total = len(state.files)
        use_saved = state.new_names is not None and len(state.new_names) == total
        tasks = []
        for ix in indices:
            file = state.files[ix]
            new_name = state.new_names[ix] if use_saved else apply_rule(state.rule, file, ix, total)
            tasks.append(RenameTask(file=file, new_name=new_name, index=ix))
        return tasks

    async def rename_with_idempotency(
        self,
        file_id: str,
        expected_old_name: str,
        new_name: str,
        adapter: PlatformAdapter,
        rate_limiter: RateLimiter | None = None,
    ) -> RenameResult:
        """Rename only if the live file still carries ``expected_old_name``.

        The lookup and the rename are two provider calls; when ``rate_limiter``
        is given it is waited on between them.

        - live name == ``new_name``: an earlier attempt already succeeded;
          returns a skipped success without calling ``rename_file``.
        - live name matches neither: the file changed elsewhere; returns a
          ``name_mismatch`` failure instead of forcing the rename.
        """
        try:
            current = await adapter.get_file_info(file_id)
        except Exception as e:
            logger.error("Could not look up file {} before renaming: {}", file_id, e)
            return RenameResult.failure(e)

        if current.name == new_name:
            logger.info("File {} already renamed to '{}'", file_id, new_name)
            return RenameResult(success=True, new_name=new_name, skipped=True, reason="already_renamed")

        if current.name != expected_old_name:
            logger.warning(
                "File name mismatch for {}: expected '{}', got '{}'", file_id, expected_old_name, current.name
            )
            return RenameResult.failure(
                ErrorInfo(
                    kind=ErrorKind.NAME_MISMATCH,
                    message=f"Expected '{expected_old_name}', got '{current.name}'",
                ),
                reason="name_mismatch",
            )

        if rate_limiter is not None:
            await rate_limiter.wait()
        return await adapter.rename_file(file_id, new_name)

    async def _run(
        self,
        state: OperationState,
        adapter: PlatformAdapter,
        indices: list[int],
        idempotent: bool,
        on_progress: ProgressCallback | None,
        on_complete: CompleteCallback | None,
        config: ExecutorConfig | None,
        recovery_info: RecoveryInfo | None = None,
    ) -> BatchResults:
        tasks = self.build_tasks(state, indices)

        async def _record(task: RenameTask, result: RenameResult) -> None:
            if result.success:
                state.mark_completed(task.index)
                await self.mark_as_completed(task.index)
            else:
                state.mark_failed(task.index)
                await self.mark_as_failed(task.index)

        async def _rename(task: RenameTask) -> RenameResult:
            return await self.rename_with_idempotency(
                task.file.id, task.file.name, task.new_name, adapter, rate_limiter=executor.rate_limiter
            )

        async def _complete(results: BatchResults) -> None:
            results.recovered_from = recovery_info
            if not results.cancelled:
                await self.clear_operation_state()
            await notify(on_complete, results)

        executor = BatchExecutor(
            [task.file for task in tasks],
            state.rule,
            adapter,
            config,
            on_progress=on_progress,
            on_complete=_complete,
            tasks=tasks,
            on_task_done=_record,
            rename_fn=_rename if idempotent else None,
        )
        self.active_executor = executor
        try:
            return await executor.execute()
        finally:
            self.active_executor = None

    async def run_operation(
        self,
        adapter: PlatformAdapter,
        files: list[FileItem],
        rule: RuleConfig,
        new_names: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        config: ExecutorConfig | None = None,
    ) -> BatchResults:
        """Start a new persisted batch and run it.

        Args:
            adapter: Platform adapter.
            files: Files to rename.
            rule: Naming rule (persisted for resumption).
            new_names: Final, conflict-resolved names parallel to ``files``.
            on_progress: Progress callback.
            on_complete: Completion callback.
            config: Executor settings.

        Returns:
            The batch results.

        Raises:
            ValueError: If ``files`` is empty.
            InvalidRuleError: If ``rule`` cannot be applied. Nothing is persisted in that case.
        """
        if not files:
            raise ValueError("Files list cannot be empty")
        if new_names is None:
            preview(rule, files)

        state = await self.start_operation(adapter.get_config().platform, files, rule, new_names)
        return await self._run(
            state,
            adapter,
            list(range(len(files))),
            idempotent=False,
            on_progress=on_progress,
            on_complete=on_complete,
            config=config,
        )

    async def resume_operation(
        self,
        state: OperationState,
        adapter: PlatformAdapter,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        config: ExecutorConfig | None = None,
    ) -> BatchResults | None:
        """Run the pending part of a persisted operation.

        Each pending file is renamed through ``rename_with_idempotency``.
        Outcomes are recorded in ``state`` itself as well as in the store, so
        resuming the same state again issues no further renames.

        Returns:
            Results of the resumed batch (with ``recovered_from`` set), or None
            if nothing was pending.
        """
        pending = state.pending_indices()
        if not pending:
            await self.clear_operation_state()
            return None

        logger.info(
            "Resuming operation: pending={} completed={} failed={}",
            len(pending),
            len(state.completed),
            len(state.failed),
        )
        recovery_info = RecoveryInfo(
            total=len(state.files),
            pending=len(pending),
            previously_completed=len(state.completed),
            previously_failed=len(state.failed),
        )
        await self.save_operation_state(state)
        return await self._run(
            state,
            adapter,
            pending,
            idempotent=True,
            on_progress=on_progress,
            on_complete=on_complete,
            config=config,
            recovery_info=recovery_info,
        )

    async def recover_on_startup(
        self,
        adapter: PlatformAdapter,
        confirm: ConfirmCallback,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        config: ExecutorConfig | None = None,
    ) -> BatchResults | None:
        """Offer a recoverable operation to the user and resume or discard it."""
        state = await self.check_recoverable_operation()
        if state is None:
            return None

        answer = confirm(state)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.info("User declined to resume, clearing saved operation")
            await self.clear_operation_state()
            return None

        return await self.resume_operation(state, adapter, on_progress, on_complete, config)

    def describe(self, state: OperationState) -> str:
        """Human-readable summary of a saved operation."""
        age = int(state.age_minutes(self.clock()))
        pending = len(state.files) - state.processed_count
        return "\n".join(
            [
                f"Platform: {state.platform}",
                f"Rule: {state.rule}",
                f"Total files: {len(state.files)}",
                f"Completed: {len(state.completed)}",
                f"Failed: {len(state.failed)}",
                f"Pending: {pending}",
                f"Started: {age} minute(s) ago",
            ]
        )
