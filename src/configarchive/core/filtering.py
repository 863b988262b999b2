"""Filtering helpers that normalize raw device dumps into diffable text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from configarchive.core.models import FilterSpec


class PatternError(ValueError):
    """Raised when a removal or replace pattern is not a valid regex."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"failed to compile regex '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason


@dataclass(slots=True, frozen=True)
class CompiledFilter:
    """A :class:`FilterSpec` with every pattern resolved to a matcher."""

    trim_head: int
    trim_tail: int
    removal_patterns: tuple[re.Pattern[str], ...]
    replace_rules: tuple[tuple[re.Pattern[str], str], ...]


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise PatternError(pattern, str(exc)) from exc


def compile_filter(spec: FilterSpec) -> CompiledFilter:
    """Compile every pattern of ``spec``.

    The first invalid pattern, removal patterns first, raises
    :class:`PatternError`.
    """

    removal = tuple(_compile(pattern) for pattern in spec.removal_patterns)
    replacements = tuple((_compile(pattern), replacement) for pattern, replacement in spec.replace_rules)
    return CompiledFilter(
        trim_head=spec.trim_head,
        trim_tail=spec.trim_tail,
        removal_patterns=removal,
        replace_rules=replacements,
    )


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` and drop a trailing ``\\r`` from each line.

    A final newline does not produce an empty trailing line.
    """

    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _replace(line: str, rules: tuple[tuple[re.Pattern[str], str], ...]) -> str:
    for regex, replacement in rules:
        line = regex.sub(replacement, line)
    return line


def _is_removed(line: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def apply_filter(
    compiled: CompiledFilter,
    raw: str,
    logger: logging.Logger | None = None,
    log_extra: dict[str, Any] | None = None,
) -> str:
    """Apply ``compiled`` to a raw dump.

    - drop ``trim_head`` leading lines
    - run replace rules in order on each line
    - drop lines matching any removal pattern
    - rstrip each line
    - drop ``trim_tail`` trailing lines
    """

    lines = split_lines(raw)[compiled.trim_head:]
    lines = [_replace(line, compiled.replace_rules) for line in lines]
    lines = [line.rstrip() for line in lines if not _is_removed(line, compiled.removal_patterns)]

    if compiled.trim_tail >= len(lines):
        (logger or logging.getLogger(__name__)).warning(
            "no lines remain after trimming lines=%d trim_tail=%d",
            len(lines),
            compiled.trim_tail,
            extra=log_extra or {},
        )
        return ""

    return "\n".join(lines[: len(lines) - compiled.trim_tail])
