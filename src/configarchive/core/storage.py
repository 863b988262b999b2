"""Storage helpers for writing device dumps into the archive."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_LOCAL_CONFIG = PROJECT_ROOT / "config" / "local.yml"


class PersistenceError(RuntimeError):
    """Raised when a dump cannot be written to the archive directory."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"cannot write archive file {path}: {reason}")
        self.path = path
        self.reason = reason


def dump_path(state_dir: Path, host: str) -> Path:
    """Return the archive file for ``host``. The host is used verbatim."""

    return Path(state_dir) / host


def write_dump(state_dir: Path, host: str, content: str) -> Path:
    """Overwrite the archive file for ``host`` with ``content``."""

    path = dump_path(state_dir, host)
    try:
        path.write_text(content, encoding="utf-8", newline="")
    except OSError as exc:
        raise PersistenceError(path, exc.strerror or str(exc)) from exc
    return path


def load_local_config(
    config_path: str | Path | None = None, logger: logging.Logger | None = None
) -> Mapping[str, Any] | None:
    """Load local.yml if it exists and return the mapping."""

    config_file = Path(config_path) if config_path else DEFAULT_LOCAL_CONFIG
    if not config_file.is_absolute():
        config_file = PROJECT_ROOT / config_file

    if logger:
        logger.debug("loading local config from %s", config_file)

    if not config_file.exists():
        if logger:
            logger.debug("local config not found at %s", config_file)
        return None

    try:
        with config_file.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        if logger:
            logger.warning("unable to read local config file=%s reason=\"%s\"", config_file, exc)
        return None

    return data if isinstance(data, Mapping) else None
