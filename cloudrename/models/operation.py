"""Batch execution and crash-recovery state models."""

from typing import Literal

from pydantic import BaseModel, Field

from cloudrename.models.file import FileItem
from cloudrename.models.rule import RuleConfig


class RenameTask(BaseModel):
    """One planned rename. ``index`` points into the operation's file list."""

    file: FileItem
    new_name: str
    index: int

    @property
    def unchanged(self) -> bool:
        return self.new_name == self.file.name


class OperationState(BaseModel):
    """Persisted record of a batch's progress, used for crash recovery.

    ``completed`` and ``failed`` hold indices into ``files``. They only grow
    and never share an index; anything in neither list is still pending.
    """

    timestamp: int = Field(default=0, description="Epoch milliseconds of the last save")
    platform: str
    files: list[FileItem]
    rule: RuleConfig
    completed: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    new_names: list[str] | None = Field(
        default=None,
        description="Conflict-resolved target names, parallel to files",
    )

    @property
    def processed_count(self) -> int:
        return len(self.completed) + len(self.failed)

    @property
    def is_finished(self) -> bool:
        return self.processed_count >= len(self.files)

    def is_recorded(self, index: int) -> bool:
        return index in self.completed or index in self.failed

    def pending_indices(self) -> list[int]:
        done = set(self.completed) | set(self.failed)
        return [ix for ix in range(len(self.files)) if ix not in done]

    def age_minutes(self, now: float) -> float:
        """Age in minutes relative to ``now`` (epoch seconds)."""
        return (now * 1000 - self.timestamp) / 60000

    def mark_completed(self, index: int) -> bool:
        """Record ``index`` as completed. Returns False if it was already recorded."""
        return self._mark(self.completed, index)

    def mark_failed(self, index: int) -> bool:
        """Record ``index`` as failed. Returns False if it was already recorded."""
        return self._mark(self.failed, index)

    def _mark(self, target: list[int], index: int) -> bool:
        if not 0 <= index < len(self.files):
            raise IndexError(f"Index {index} out of range for {len(self.files)} files")
        if self.is_recorded(index):
            return False
        target.append(index)
        return True


class ProgressEvent(BaseModel):
    """Emitted once per resolved rename attempt."""

    completed: int = Field(description="Number of files resolved so far (success + failed)")
    total: int
    success: int
    failed: int
    current_file: str
    file_id: str | None = None
    new_name: str | None = None
    status: Literal["success", "failed"] = "success"
    error: str | None = None

    @property
    def percentage(self) -> float:
        return (self.completed / self.total) * 100 if self.total else 0.0


class TaskRecord(BaseModel):
    """Per-file entry in the batch results."""

    index: int
    file_id: str
    original: str
    new_name: str
    skipped: bool = False
    error: str | None = None


class RecoveryInfo(BaseModel):
    """Describes where a resumed batch picked up."""

    total: int = Field(description="Files in the original operation")
    pending: int = Field(description="Files still pending when the batch resumed")
    previously_completed: int = 0
    previously_failed: int = 0


class BatchResults(BaseModel):
    """Final report passed to ``on_complete``."""

    succeeded: list[TaskRecord] = Field(default_factory=list)
    failed: list[TaskRecord] = Field(default_factory=list)
    cancelled: bool = False
    recovered_from: RecoveryInfo | None = None

    @property
    def completed(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def skipped_count(self) -> int:
        return sum(1 for record in self.succeeded if record.skipped)

    def recovered_summary(self) -> str | None:
        """Return 'recovered N of M' for resumed batches, None otherwise."""
        if self.recovered_from is None:
            return None
        return f"recovered {self.success_count} of {self.recovered_from.pending}"

    def summary(self) -> str:
        lines = [
            "Rename Summary:",
            f"  Completed: {self.completed}",
            f"  Succeeded: {self.success_count} ({self.skipped_count} skipped)",
            f"  Failed: {self.failed_count}",
        ]
        if self.cancelled:
            lines.append("  Cancelled before all files were processed")
        recovered = self.recovered_summary()
        if recovered:
            lines.append(f"  Resumed operation: {recovered}")
        return "\n".join(lines)
