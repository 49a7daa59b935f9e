"""Naming rules: pure functions from (rule, file, index) to a new file name.

Every rule works on the stem only and keeps the extension, except ``regex``
with ``include_extension=True``.

Parameters per rule type:

- ``replace``: ``search``, ``replace``, ``case_sensitive`` (False), ``global`` (False)
- ``regex``: ``pattern``, ``replace``, ``case_sensitive`` (False), ``global`` (False),
  ``include_extension`` (False)
- ``prefix``: ``prefix``, ``separator`` ("")
- ``suffix``: ``suffix``, ``separator`` ("")
- ``numbering``: ``start_number`` (1), ``digits`` (3), ``position`` ("prefix"),
  ``format`` ("{num}"), ``separator`` ("_")
- ``sanitize``: ``remove_chars`` (""), ``remove_illegal`` (True)
"""

import re
from collections.abc import Callable
from typing import Any

from cloudrename.errors import InvalidRuleError
from cloudrename.models.file import FileItem, split_name
from cloudrename.models.rule import RuleConfig, RuleType


ILLEGAL_CHARS = re.compile(r'[/\\:*?"<>|]')

# Used when sanitizing leaves nothing of the stem
FALLBACK_NAME = "renamed_file"


def _compile(pattern: str, case_sensitive: bool) -> re.Pattern:
    return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)


def _replace(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    search = params.get("search")
    if not isinstance(search, str) or not search:
        raise InvalidRuleError("replace rule requires a non-empty 'search'")
    pattern = _compile(re.escape(search), params.get("case_sensitive", False))
    replacement = str(params.get("replace", ""))
    count = 0 if params.get("global", False) else 1
    return pattern.sub(lambda _: replacement, name, count=count) + ext


def _regex(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    raw = params.get("pattern")
    if not isinstance(raw, str) or not raw:
        raise InvalidRuleError("regex rule requires a non-empty 'pattern'")
    try:
        pattern = _compile(raw, params.get("case_sensitive", False))
    except re.error as e:
        raise InvalidRuleError(f"Invalid regular expression '{raw}': {e}") from e
    replacement = str(params.get("replace", ""))
    count = 0 if params.get("global", False) else 1
    try:
        if params.get("include_extension", False):
            return pattern.sub(replacement, name + ext, count=count)
        return pattern.sub(replacement, name, count=count) + ext
    except re.error as e:
        raise InvalidRuleError(f"Invalid replacement '{replacement}': {e}") from e


def _prefix(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    prefix = params.get("prefix")
    if not isinstance(prefix, str) or not prefix:
        raise InvalidRuleError("prefix rule requires a non-empty 'prefix'")
    return f"{prefix}{params.get('separator', '')}{name}{ext}"


def _suffix(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    suffix = params.get("suffix")
    if not isinstance(suffix, str) or not suffix:
        raise InvalidRuleError("suffix rule requires a non-empty 'suffix'")
    return f"{name}{params.get('separator', '')}{suffix}{ext}"


def _numbering(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    try:
        start = int(params.get("start_number", 1))
        digits = int(params.get("digits", 3))
    except (TypeError, ValueError) as e:
        raise InvalidRuleError(f"numbering rule has a non-numeric parameter: {e}") from e
    position = params.get("position", "prefix")
    if digits < 1 or position not in ("prefix", "suffix"):
        raise InvalidRuleError("numbering rule requires digits >= 1 and position 'prefix' or 'suffix'")

    number = str(start + index).zfill(digits)
    formatted = str(params.get("format", "{num}")).replace("{num}", number)
    separator = params.get("separator", "_")
    if position == "prefix":
        return f"{formatted}{separator}{name}{ext}"
    return f"{name}{separator}{formatted}{ext}"


def _sanitize(name: str, ext: str, index: int, params: dict[str, Any]) -> str:
    cleaned = name
    if params.get("remove_illegal", True):
        cleaned = ILLEGAL_CHARS.sub("_", cleaned)
    remove_chars = params.get("remove_chars", "")
    if remove_chars:
        cleaned = re.sub(f"[{re.escape(remove_chars)}]", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return f"{cleaned or FALLBACK_NAME}{ext}"


_RULES: dict[RuleType, Callable[[str, str, int, dict[str, Any]], str]] = {
    RuleType.REPLACE: _replace,
    RuleType.REGEX: _regex,
    RuleType.PREFIX: _prefix,
    RuleType.SUFFIX: _suffix,
    RuleType.NUMBERING: _numbering,
    RuleType.SANITIZE: _sanitize,
}


def apply_rule(rule: RuleConfig, file: FileItem, index: int, total: int | None = None) -> str:
    """Compute the new name for ``file`` at position ``index`` of the batch.

    Args:
        rule: Rule configuration.
        file: File to rename.
        index: Position of the file in the original operation (drives numbering).
        total: Number of files in the batch. Currently unused by the built-in rules.

    Returns:
        The new file name, extension included.

    Raises:
        InvalidRuleError: If the rule type is unknown or its parameters are invalid.
    """
    handler = _RULES.get(rule.type)
    if handler is None:
        raise InvalidRuleError(f"Unknown rule type: {rule.type}")
    name, ext = split_name(file.name)
    return handler(name, ext, index, rule.params)


def validate_rule(rule: RuleConfig) -> bool:
    """Check that a rule can be applied, using a throwaway file name."""
    try:
        apply_rule(rule, FileItem.from_name(id="probe", name="probe.txt"), 0, 1)
    except InvalidRuleError:
        return False
    return True


def preview(rule: RuleConfig, files: list[FileItem]) -> list[str]:
    """Apply ``rule`` to every file in order."""
    return [apply_rule(rule, file, ix, len(files)) for ix, file in enumerate(files)]
