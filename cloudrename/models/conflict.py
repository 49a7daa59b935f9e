"""Naming conflict data models."""

from enum import Enum

from pydantic import BaseModel, Field


class ConflictType(str, Enum):
    NONE = "none"
    NAME_EXISTS = "name_exists"
    DUPLICATE_IN_BATCH = "duplicate_in_batch"


class ConflictResolution(str, Enum):
    """How to deal with conflicting target names."""

    AUTO_NUMBER = "auto_number"
    SKIP = "skip"
    OVERWRITE = "overwrite"


class ConflictResult(BaseModel):
    """Conflict status of one file's proposed name."""

    type: ConflictType = ConflictType.NONE
    has_conflict: bool = False
    conflicting_name: str | None = Field(default=None, description="The proposed name that collides")
    conflicting_files: list[str] | None = Field(
        default=None,
        description="Original names of every file in the batch mapped to the same target name",
    )

    @classmethod
    def none(cls) -> "ConflictResult":
        return cls()

    @classmethod
    def name_exists(cls, name: str) -> "ConflictResult":
        return cls(type=ConflictType.NAME_EXISTS, has_conflict=True, conflicting_name=name)

    @classmethod
    def duplicate(cls, name: str, files: list[str]) -> "ConflictResult":
        return cls(
            type=ConflictType.DUPLICATE_IN_BATCH,
            has_conflict=True,
            conflicting_name=name,
            conflicting_files=list(files),
        )
