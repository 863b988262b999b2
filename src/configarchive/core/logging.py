"""Logging setup for ConfigArchive runs.

Every record carries a ``device`` field: ``<seq>:<host>`` for messages logged
by a fetch unit and ``-`` for everything else, so lines from units running in
parallel can be told apart. Records go to stdout and to a log file whose
location and level come from the ``logging`` section of ``config/local.yml``.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from configarchive.core.storage import load_local_config

LOGGER_NAME = "configarchive"
LOG_FORMAT = "%(asctime)s | %(levelname)s | device=%(device)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FALLBACK_LOG_DIR = Path("logs")


@dataclass(slots=True)
class LogSettings:
    directory: Path = field(default_factory=lambda: Path("/var/log/configarchive"))
    filename: str = "configarchive.log"
    level: int = logging.INFO

    @classmethod
    def from_local_config(cls, local_cfg: Mapping[str, Any] | None) -> "LogSettings":
        settings = cls()
        section = local_cfg.get("logging") if isinstance(local_cfg, Mapping) else None
        if not isinstance(section, Mapping):
            return settings

        if section.get("directory"):
            settings.directory = Path(str(section["directory"])).expanduser()
        if section.get("filename"):
            settings.filename = str(section["filename"])
        settings.level = parse_level(section.get("level"), settings.level)
        return settings


def parse_level(value: Any, default: int) -> int:
    """Accept a level name (any case) or number; anything else gives ``default``."""

    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = logging.getLevelName(value.strip().upper())
        if isinstance(level, int):
            return level
    return default


class DeviceContextFilter(logging.Filter):
    """Give records logged outside a fetch unit ``device=-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "device", None):
            record.device = "-"
        return True


def open_log_file(settings: LogSettings) -> tuple[logging.FileHandler, bool]:
    """Open the configured log file, or ``logs/<filename>`` when that fails.

    The flag is true when the fallback location is used.
    """

    try:
        settings.directory.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(settings.directory / settings.filename, encoding="utf-8"), False
    except OSError:
        FALLBACK_LOG_DIR.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(FALLBACK_LOG_DIR / settings.filename, encoding="utf-8"), True


def setup_logging(config_path: str | Path | None = None, cli_level: int | None = None) -> logging.Logger:
    """Install the stdout and file handlers on the root logger.

    ``config_path`` defaults to ``config/local.yml``; ``cli_level`` (``--debug``)
    wins over ``logging.level`` from that file. Existing root handlers are
    closed and replaced.
    """

    local_cfg = load_local_config(config_path)
    settings = LogSettings.from_local_config(local_cfg)
    if cli_level is not None:
        settings.level = cli_level

    file_handler, fell_back = open_log_file(settings)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    context = DeviceContextFilter()

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in (file_handler, logging.StreamHandler(sys.stdout)):
        handler.setFormatter(formatter)
        handler.addFilter(context)
        root.addHandler(handler)
    root.setLevel(settings.level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.level)

    if local_cfg is None:
        logger.info("no usable local config, logging with defaults")
    if fell_back:
        logger.warning("log directory %s is not writable, using %s", settings.directory, FALLBACK_LOG_DIR)
    logger.info("logging to %s level=%s", file_handler.baseFilename, logging.getLevelName(settings.level))
    return logger
