#!/usr/bin/env python3
"""Entry point for ConfigArchive."""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

# Ensure src/ is on sys.path for local imports when running as a script
ROOT_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from configarchive.common.pipeline import run_archive  # noqa: E402
from configarchive.core.config import ArchiveSettings, ConfigLoadError, load_devices, resolve_settings  # noqa: E402
from configarchive.core.logging import setup_logging  # noqa: E402
from configarchive.core.models import DeviceSpec  # noqa: E402
from configarchive.core.storage import load_local_config  # noqa: E402
from configarchive.expect.client import script_arguments, script_path  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    paths_parent = argparse.ArgumentParser(add_help=False)
    paths_parent.add_argument(
        "--scripts-dir",
        "--expect-scripts-dir",
        type=Path,
        default=argparse.SUPPRESS,
        help="Directory holding the <model>.exp scripts",
    )
    paths_parent.add_argument(
        "--devices",
        type=Path,
        default=argparse.SUPPRESS,
        help="Path to the device list (YAML or JSON)",
    )
    paths_parent.add_argument(
        "--state-dir",
        "--backup-dir",
        type=Path,
        default=argparse.SUPPRESS,
        help="Git working tree where one file per device is written",
    )
    paths_parent.add_argument(
        "--no-push",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Commit changes but do not push them",
    )
    paths_parent.add_argument(
        "--summary-dir",
        type=Path,
        default=argparse.SUPPRESS,
        help="Directory where a JSON run summary is written",
    )

    parser = argparse.ArgumentParser(
        description=(
            "Fetch running configurations with per-model expect scripts, "
            "filter them and commit them into a git archive."
        ),
        parents=[paths_parent],
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting. Overrides config/local.yml logging.level.",
    )

    subcommands = parser.add_subparsers(dest="command", title="commands")

    backup_parser = subcommands.add_parser(
        "backup",
        help="Fetch, filter and commit configurations for all configured devices (default)",
        parents=[paths_parent],
    )
    backup_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which scripts would run without executing them",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = setup_logging(cli_level=logging.DEBUG if args.debug else None)
    logger.info("ConfigArchive run started.")

    if args.command in (None, "backup"):
        exit_code = _run_backup(args, logger)
        logger.info("ConfigArchive run finished exit_code=%d.", exit_code)
        return exit_code

    parser.error(f"Unknown command: {args.command}")
    return 2


def _resolve(args: argparse.Namespace, logger: logging.Logger) -> ArchiveSettings:
    local_config_path = ROOT_DIR / "config" / "local.yml"
    local_config = load_local_config(local_config_path, logger)
    if local_config is not None:
        logger.debug("local config loaded from %s", local_config_path)

    return resolve_settings(
        scripts_dir=getattr(args, "scripts_dir", None),
        devices=getattr(args, "devices", None),
        state_dir=getattr(args, "state_dir", None),
        no_push=getattr(args, "no_push", False),
        summary_dir=getattr(args, "summary_dir", None),
        local_cfg=local_config,
        logger=logger,
    )


def _run_backup(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the fetch-filter-commit workflow for all configured devices."""

    settings = _resolve(args, logger)
    logger.debug("loading devices from %s", settings.devices)
    try:
        devices = load_devices(settings.devices, logger)
    except ConfigLoadError as exc:
        logger.error("Failed to load devices configuration: %s", exc)
        return 1

    for model, count in sorted(Counter(device.model for device in devices).items()):
        logger.debug("%s devices selected=%d", model, count)

    if getattr(args, "dry_run", False):
        _log_dry_run(devices, settings, logger)
        return 0

    summary = run_archive(devices, settings, logger)

    if settings.summary_dir is not None:
        try:
            summary.save(settings.summary_dir, logger)
        except OSError as exc:
            logger.warning("unable to save run summary dir=%s reason=\"%s\"", settings.summary_dir, exc)

    return 1 if summary.failed else 0


def _log_dry_run(devices: list[DeviceSpec], settings: ArchiveSettings, logger: logging.Logger) -> None:
    logger.info("Dry run requested. %d device(s) would be fetched.", len(devices))
    for seq, device in enumerate(devices, start=1):
        logger.info(
            "Device %d: would run %s %s -> %s",
            seq,
            script_path(device, settings.scripts_dir),
            " ".join(script_arguments(device)),
            settings.state_dir / device.host,
            extra={"device": f"{seq}:{device.host}"},
        )
    logger.info("push %s", "enabled" if settings.push else "disabled")


if __name__ == "__main__":
    raise SystemExit(main())
