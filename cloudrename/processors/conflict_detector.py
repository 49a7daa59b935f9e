"""Detection and resolution of naming conflicts before a batch runs."""

import asyncio
import inspect
from collections import Counter, defaultdict
from collections.abc import Awaitable, Callable

from loguru import logger

from cloudrename.adapters.base import PlatformAdapter
from cloudrename.errors import CloudRenameError
from cloudrename.models.conflict import ConflictResolution, ConflictResult, ConflictType
from cloudrename.models.file import FileItem, split_name


# Upper bound on numbered candidates tried per file when re-checking against the provider
MAX_NUMBERING_ATTEMPTS = 100

ResolveConflictCallback = Callable[[int], ConflictResolution | None | Awaitable[ConflictResolution | None]]


def number_name(name: str, number: int) -> str:
    """Insert ``(number)`` before the extension: ``a.txt`` -> ``a(1).txt``."""
    stem, ext = split_name(name)
    return f"{stem}({number}){ext}"


async def check_single_conflict(
    name: str,
    parent_id: str,
    adapter: PlatformAdapter,
    assume_conflict_on_error: bool = True,
) -> ConflictResult:
    """Ask the adapter whether ``name`` already exists in ``parent_id``.

    When the adapter call fails the result follows ``assume_conflict_on_error``.
    """
    try:
        exists = await adapter.check_name_conflict(name, parent_id)
    except Exception as e:
        logger.error("Failed to check name conflict for '{}': {}", name, e)
        return ConflictResult.name_exists(name) if assume_conflict_on_error else ConflictResult.none()

    return ConflictResult.name_exists(name) if exists else ConflictResult.none()


def find_batch_duplicates(files: list[FileItem], names: list[str]) -> dict[str, ConflictResult]:
    """Flag every file whose proposed name is proposed more than once in the batch.

    Args:
        files: Files being renamed.
        names: Proposed new names, parallel to ``files``.

    Returns:
        Mapping of file id to its ConflictResult (NONE or DUPLICATE_IN_BATCH).
    """
    _check_lengths(files, names)
    counts = Counter(names)
    originals: dict[str, list[str]] = defaultdict(list)
    for file, name in zip(files, names):
        originals[name].append(file.name)

    results: dict[str, ConflictResult] = {}
    for file, name in zip(files, names):
        if counts[name] > 1:
            results[file.id] = ConflictResult.duplicate(name, originals[name])
        else:
            results[file.id] = ConflictResult.none()
    return results


def _check_lengths(files: list[FileItem], names: list[str]) -> None:
    if len(files) != len(names):
        raise ValueError(f"Got {len(names)} names for {len(files)} files")


def _next_free(name: str, start: int, taken: set[str]) -> tuple[str, int]:
    number = start
    candidate = number_name(name, number)
    while candidate in taken:
        number += 1
        candidate = number_name(name, number)
    return candidate, number


class ConflictDetector:
    """Finds and resolves naming conflicts for one adapter."""

    def __init__(self, adapter: PlatformAdapter, assume_conflict_on_error: bool = True) -> None:
        """Initialize the detector.

        Args:
            adapter: Platform adapter used for existence checks.
            assume_conflict_on_error: Treat a failed existence check as a conflict.
        """
        self.adapter = adapter
        self.assume_conflict_on_error = assume_conflict_on_error

    async def detect_conflicts(self, files: list[FileItem], names: list[str]) -> dict[str, ConflictResult]:
        """Find in-batch duplicates and names that already exist at the destination.

        External checks run concurrently; files already flagged as duplicates,
        or whose name does not change, are not checked.
        """
        logger.info("Starting conflict detection for {} files", len(files))
        results = find_batch_duplicates(files, names)

        async def _check(file: FileItem, name: str) -> tuple[str, ConflictResult]:
            result = await check_single_conflict(name, file.parent_id, self.adapter, self.assume_conflict_on_error)
            return file.id, result

        checks = [
            _check(file, name)
            for file, name in zip(files, names)
            if not results[file.id].has_conflict and name != file.name
        ]
        for file_id, result in await asyncio.gather(*checks):
            results[file_id] = result

        conflict_count = self.count_conflicts(results)
        if conflict_count:
            logger.info("Detected {} conflicting names", conflict_count)
        return results

    @staticmethod
    def count_conflicts(conflicts: dict[str, ConflictResult]) -> int:
        return sum(1 for result in conflicts.values() if result.has_conflict)

    def resolve_conflicts(
        self,
        files: list[FileItem],
        names: list[str],
        conflicts: dict[str, ConflictResult],
        strategy: ConflictResolution,
    ) -> list[str]:
        """Turn proposed names into final names according to ``strategy``.

        AUTO_NUMBER numbers each conflicting file ``name(n).ext`` with ``n``
        counting from 1 per distinct name, skipping numbers whose result is
        already used in the batch. It does not consult the provider; see
        ``resolve_conflicts_checked`` for that.
        """
        _check_lengths(files, names)

        if strategy == ConflictResolution.OVERWRITE:
            return list(names)

        if strategy == ConflictResolution.SKIP:
            return [
                file.name if conflicts.get(file.id, ConflictResult.none()).has_conflict else name
                for file, name in zip(files, names)
            ]

        taken = set(names)
        next_number: dict[str, int] = defaultdict(lambda: 1)
        resolved: list[str] = []
        for file, name in zip(files, names):
            if not conflicts.get(file.id, ConflictResult.none()).has_conflict:
                resolved.append(name)
                continue
            candidate, number = _next_free(name, next_number[name], taken)
            next_number[name] = number + 1
            taken.add(candidate)
            resolved.append(candidate)
            logger.debug("Conflict on '{}' resolved as '{}'", name, candidate)
        return resolved

    async def resolve_conflicts_checked(
        self,
        files: list[FileItem],
        names: list[str],
        conflicts: dict[str, ConflictResult],
    ) -> list[str]:
        """AUTO_NUMBER resolution that also verifies each numbered name with the provider.

        Candidates are checked one at a time so two files never claim the
        same free number.

        Raises:
            CloudRenameError: If no free name is found within MAX_NUMBERING_ATTEMPTS.
        """
        _check_lengths(files, names)
        taken = set(names)
        next_number: dict[str, int] = defaultdict(lambda: 1)
        resolved: list[str] = []

        for file, name in zip(files, names):
            if not conflicts.get(file.id, ConflictResult.none()).has_conflict:
                resolved.append(name)
                continue

            number = next_number[name]
            for _ in range(MAX_NUMBERING_ATTEMPTS):
                candidate, number = _next_free(name, number, taken)
                check = await check_single_conflict(
                    candidate, file.parent_id, self.adapter, self.assume_conflict_on_error
                )
                if check.type == ConflictType.NONE:
                    break
                taken.add(candidate)
            else:
                raise CloudRenameError(
                    f"No free numbered name for '{name}' after {MAX_NUMBERING_ATTEMPTS} attempts"
                )

            next_number[name] = number + 1
            taken.add(candidate)
            resolved.append(candidate)

        return resolved

    async def choose_resolution(
        self,
        conflicts: dict[str, ConflictResult],
        resolve_conflict: ResolveConflictCallback,
    ) -> ConflictResolution | None:
        """Ask the caller how to resolve conflicts.

        Returns OVERWRITE without asking when there is nothing to resolve
        (names pass through unchanged), and None if the caller declines.
        """
        count = self.count_conflicts(conflicts)
        if count == 0:
            return ConflictResolution.OVERWRITE

        answer = resolve_conflict(count)
        if inspect.isawaitable(answer):
            answer = await answer
        return answer
