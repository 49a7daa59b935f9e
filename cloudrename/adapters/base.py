"""Platform adapter interface consumed by the rename engine."""

from abc import ABC, abstractmethod

from cloudrename.models.file import FileItem, PlatformConfig, RenameResult, split_name


class PlatformAdapter(ABC):
    """Base class for storage providers.

    Adapters own everything provider-specific: listing, authentication,
    request timeouts and the raw rename call. The engine only sees these
    async methods.
    """

    platform: str = "unknown"

    def __init__(self, config: PlatformConfig | None = None) -> None:
        self.config = config or PlatformConfig(platform=self.platform)

    @abstractmethod
    async def get_selected_files(self) -> list[FileItem]:
        """Return the files the user selected."""

    @abstractmethod
    async def get_all_files(self, parent_id: str | None = None) -> list[FileItem]:
        """Return every file in ``parent_id`` (or the current folder)."""

    @abstractmethod
    async def rename_file(self, file_id: str, new_name: str) -> RenameResult:
        """Rename one file.

        Implementations may either return a failed RenameResult or raise;
        the retry layer classifies both.
        """

    @abstractmethod
    async def check_name_conflict(self, name: str, parent_id: str) -> bool:
        """Return True if ``name`` already exists in ``parent_id``."""

    @abstractmethod
    async def get_file_info(self, file_id: str) -> FileItem:
        """Return the live state of one file."""

    def get_config(self) -> PlatformConfig:
        return self.config

    @staticmethod
    def extract_extension(file_name: str) -> str:
        return split_name(file_name)[1]
