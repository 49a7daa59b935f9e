"""Naming rule configuration model."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RuleType(str, Enum):
    REPLACE = "replace"
    REGEX = "regex"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    NUMBERING = "numbering"
    SANITIZE = "sanitize"


class RuleConfig(BaseModel):
    """A naming rule: its type plus free-form parameters.

    Parameter names are documented on the matching rule in ``cloudrename.rules``.
    """

    type: RuleType
    params: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        params = ", ".join(f"{key}={value!r}" for key, value in self.params.items())
        return f"{self.type.value}({params})"
