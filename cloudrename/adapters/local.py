"""Reference adapter backed by a directory on the local filesystem.

File ids are inode numbers, so they survive renames just like a cloud
provider's file ids do.
"""

import asyncio
from pathlib import Path

from cloudrename.adapters.base import PlatformAdapter
from cloudrename.errors import ProviderAPIError
from cloudrename.models.file import ErrorInfo, ErrorKind, FileItem, PlatformConfig, RenameResult


# Local renames are cheap, so no spacing is needed between calls
LOCAL_REQUEST_INTERVAL_SECONDS = 0.0


class LocalFolderAdapter(PlatformAdapter):
    """Adapter renaming files inside a single local directory."""

    platform = "local"

    def __init__(
        self,
        root: str | Path,
        selected: list[str] | None = None,
        config: PlatformConfig | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            root: Directory holding the files.
            selected: File names treated as the user's selection. All files
                      in ``root`` are selected when omitted.
            config: Request settings; defaults to no request spacing.
        """
        super().__init__(
            config or PlatformConfig(platform=self.platform, request_interval=LOCAL_REQUEST_INTERVAL_SECONDS)
        )
        self.root = Path(root)
        self.selected = selected

    def _to_item(self, path: Path) -> FileItem:
        stat = path.stat()
        return FileItem.from_name(
            id=str(stat.st_ino),
            name=path.name,
            parent_id=str(path.parent),
            size=stat.st_size,
            mtime=stat.st_mtime * 1000,
        )

    def _scan(self, directory: Path) -> list[FileItem]:
        if not directory.is_dir():
            raise ProviderAPIError(404, f"Folder not found: {directory}", self.platform)
        return [self._to_item(path) for path in sorted(directory.iterdir()) if path.is_file()]

    def _find(self, file_id: str) -> Path:
        for path in self.root.iterdir():
            if path.is_file() and str(path.stat().st_ino) == file_id:
                return path
        raise ProviderAPIError(404, f"File not found: {file_id}", self.platform)

    def _error(self, message: str, code: int) -> ErrorInfo:
        return ErrorInfo(kind=ErrorKind.API, message=message, code=code, platform=self.platform)

    def _rename(self, file_id: str, new_name: str) -> RenameResult:
        if not new_name or "/" in new_name or "\0" in new_name or new_name in (".", ".."):
            return RenameResult.failure(self._error(f"Invalid file name: {new_name!r}", 400))
        source = self._find(file_id)
        target = source.with_name(new_name)
        if target.exists() and target != source:
            return RenameResult.failure(self._error(f"Target already exists: {new_name}", 409))
        try:
            source.rename(target)
        except PermissionError as e:
            raise ProviderAPIError(403, str(e), self.platform) from e
        return RenameResult(success=True, new_name=new_name)

    async def get_selected_files(self) -> list[FileItem]:
        files = await asyncio.to_thread(self._scan, self.root)
        if self.selected is None:
            return files
        wanted = set(self.selected)
        return [item for item in files if item.name in wanted]

    async def get_all_files(self, parent_id: str | None = None) -> list[FileItem]:
        directory = Path(parent_id) if parent_id else self.root
        return await asyncio.to_thread(self._scan, directory)

    async def rename_file(self, file_id: str, new_name: str) -> RenameResult:
        return await asyncio.to_thread(self._rename, file_id, new_name)

    async def check_name_conflict(self, name: str, parent_id: str) -> bool:
        directory = Path(parent_id) if parent_id else self.root
        return await asyncio.to_thread((directory / name).exists)

    async def get_file_info(self, file_id: str) -> FileItem:
        path = await asyncio.to_thread(self._find, file_id)
        return await asyncio.to_thread(self._to_item, path)
