"""Data models for the device inventory."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class FilterSpec:
    """Rules used to normalize a raw device dump."""

    trim_head: int = 0
    trim_tail: int = 0
    removal_patterns: tuple[str, ...] = ()
    replace_rules: tuple[tuple[str, str], ...] = ()


@dataclass(slots=True, frozen=True)
class DeviceSpec:
    """Representation of a network device handled by an expect script."""

    host: str
    model: str
    user: str
    password_file: str
    cipher: str | None = None
    kex_algorithm: str | None = None
    hostkey_algorithm: str | None = None
    extra_params: tuple[str, ...] = ()
    filter_spec: FilterSpec | None = None
