"""Unit tests for the local folder adapter."""

from pathlib import Path

import pytest

from cloudrename.adapters.local import LocalFolderAdapter
from cloudrename.errors import ProviderAPIError
from cloudrename.models.rule import RuleConfig, RuleType
from cloudrename.processors.crash_recovery import CrashRecoveryManager
from cloudrename.processors.executor import ExecutorConfig
from cloudrename.store import MemoryStore


@pytest.fixture
def folder(tmp_path: Path) -> Path:
    for name in ("b.txt", "a.txt", "c.log"):
        (tmp_path / name).write_text(name, encoding="utf-8")
    (tmp_path / "subdir").mkdir()
    return tmp_path


class TestListing:
    """Tests for file listing."""

    @pytest.mark.asyncio
    async def test_lists_files_sorted(self, folder):
        """Test that only regular files are listed, in name order."""
        files = await LocalFolderAdapter(folder).get_selected_files()

        assert [file.name for file in files] == ["a.txt", "b.txt", "c.log"]
        assert files[0].ext == ".txt"
        assert files[0].parent_id == str(folder)

    @pytest.mark.asyncio
    async def test_selection(self, folder):
        files = await LocalFolderAdapter(folder, selected=["c.log"]).get_selected_files()

        assert [file.name for file in files] == ["c.log"]

    @pytest.mark.asyncio
    async def test_missing_folder(self, tmp_path):
        with pytest.raises(ProviderAPIError) as exc_info:
            await LocalFolderAdapter(tmp_path / "nope").get_all_files()

        assert exc_info.value.code == 404


class TestRename:
    """Tests for renaming and lookups."""

    @pytest.mark.asyncio
    async def test_id_survives_rename(self, folder):
        """Test that the file id stays valid after a rename."""
        adapter = LocalFolderAdapter(folder)
        file = (await adapter.get_selected_files())[0]

        result = await adapter.rename_file(file.id, "renamed.txt")
        info = await adapter.get_file_info(file.id)

        assert result.success is True
        assert info.name == "renamed.txt"
        assert (folder / "renamed.txt").read_text(encoding="utf-8") == "a.txt"

    @pytest.mark.asyncio
    async def test_existing_target_is_not_overwritten(self, folder):
        adapter = LocalFolderAdapter(folder)
        file = (await adapter.get_selected_files())[0]

        result = await adapter.rename_file(file.id, "b.txt")

        assert result.success is False
        assert result.error.code == 409
        assert (folder / "a.txt").exists()

    @pytest.mark.asyncio
    async def test_invalid_name(self, folder):
        adapter = LocalFolderAdapter(folder)
        file = (await adapter.get_selected_files())[0]

        result = await adapter.rename_file(file.id, "x/y.txt")

        assert result.error.code == 400

    @pytest.mark.asyncio
    async def test_unknown_id(self, folder):
        with pytest.raises(ProviderAPIError):
            await LocalFolderAdapter(folder).get_file_info("0")

    @pytest.mark.asyncio
    async def test_check_name_conflict(self, folder):
        adapter = LocalFolderAdapter(folder)

        assert await adapter.check_name_conflict("a.txt", str(folder)) is True
        assert await adapter.check_name_conflict("z.txt", str(folder)) is False


class TestEndToEnd:
    """Tests running a persisted batch against a real directory."""

    @pytest.mark.asyncio
    async def test_numbering_batch(self, folder):
        """Test a numbered rename of every file with no state left behind."""
        adapter = LocalFolderAdapter(folder)
        store = MemoryStore()
        manager = CrashRecoveryManager(store)
        files = await adapter.get_selected_files()
        rule = RuleConfig(type=RuleType.NUMBERING, params={"digits": 2, "separator": " - "})

        results = await manager.run_operation(adapter, files, rule, config=ExecutorConfig(request_interval=0))

        assert results.success_count == 3
        assert sorted(path.name for path in folder.iterdir() if path.is_file()) == [
            "01 - a.txt",
            "02 - b.txt",
            "03 - c.log",
        ]
        assert await manager.check_recoverable_operation() is None
