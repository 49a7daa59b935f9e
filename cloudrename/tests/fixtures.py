"""Test doubles shared across the test suite."""

from collections import defaultdict

from cloudrename.adapters.base import PlatformAdapter
from cloudrename.models.file import FileItem, PlatformConfig, RenameResult


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeAdapter(PlatformAdapter):
    """In-memory adapter with scriptable failures.

    ``failures`` maps a file id to a list of outcomes consumed one per
    ``rename_file`` call: an exception instance is raised, a RenameResult is
    returned as-is. Once the list is exhausted, renames succeed.
    """

    platform = "fake"

    def __init__(
        self,
        files: list[FileItem],
        existing_names: set[str] | None = None,
        failures: dict[str, list] | None = None,
    ) -> None:
        super().__init__(PlatformConfig(platform=self.platform, request_interval=0, max_retries=3))
        self.names = {file.id: file.name for file in files}
        self.parents = {file.id: file.parent_id for file in files}
        self.existing_names = set(existing_names or ())
        self.failures = defaultdict(list, {key: list(value) for key, value in (failures or {}).items()})
        self.rename_calls: list[tuple[str, str]] = []
        self.info_calls: list[str] = []
        self.conflict_calls: list[tuple[str, str]] = []
        self.conflict_error: Exception | None = None

    async def get_selected_files(self) -> list[FileItem]:
        return [
            FileItem.from_name(id=file_id, name=name, parent_id=self.parents[file_id])
            for file_id, name in self.names.items()
        ]

    async def get_all_files(self, parent_id: str | None = None) -> list[FileItem]:
        files = await self.get_selected_files()
        return [file for file in files if parent_id is None or file.parent_id == parent_id]

    async def rename_file(self, file_id: str, new_name: str) -> RenameResult:
        self.rename_calls.append((file_id, new_name))
        if self.failures[file_id]:
            outcome = self.failures[file_id].pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        self.names[file_id] = new_name
        return RenameResult(success=True, new_name=new_name)

    async def check_name_conflict(self, name: str, parent_id: str) -> bool:
        self.conflict_calls.append((name, parent_id))
        if self.conflict_error is not None:
            raise self.conflict_error
        return name in self.existing_names

    async def get_file_info(self, file_id: str) -> FileItem:
        self.info_calls.append(file_id)
        return FileItem.from_name(id=file_id, name=self.names[file_id], parent_id=self.parents[file_id])


def make_files(*names: str, parent_id: str = "root") -> list[FileItem]:
    """Build FileItems with ids ``f0``, ``f1``, ..."""
    return [FileItem.from_name(id=f"f{ix}", name=name, parent_id=parent_id) for ix, name in enumerate(names)]
