"""Fetch every device, then commit the archive."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from configarchive.archive.committer import GitCommandError, RepoStateError, commit_archive
from configarchive.common.orchestrator import run_fetch_units
from configarchive.common.run_summary import RunSummaryBuilder
from configarchive.core.config import ArchiveSettings
from configarchive.core.models import DeviceSpec


def _run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")


def run_archive(
    devices: Sequence[DeviceSpec], settings: ArchiveSettings, logger: logging.Logger
) -> RunSummaryBuilder:
    """Run the fetch phase and, once every unit is done, the commit phase.

    The commit phase always runs, even when some devices failed.
    """

    run_id = _run_id()
    summary = RunSummaryBuilder(
        run_id=run_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        push_enabled=settings.push,
    )
    summary.set_devices_total(len(devices))

    summary.add_devices(run_fetch_units(devices, settings.scripts_dir, settings.state_dir, logger))

    try:
        result = commit_archive(settings.state_dir, settings.push, logger)
    except (RepoStateError, GitCommandError) as exc:
        logger.error("commit phase failed: %s", exc)
        summary.set_commit_error(str(exc))
    else:
        summary.set_commit(result)

    summary.log(logger)
    return summary
