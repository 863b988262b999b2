"""Run one fetch unit per device concurrently."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

from configarchive.common.run_summary import DeviceResultData
from configarchive.core.models import DeviceSpec
from configarchive.expect.backup import backup_device, device_log_extra


def _collect(
    seq: int, device: DeviceSpec, future: Future[DeviceResultData], logger: logging.Logger
) -> DeviceResultData:
    try:
        return future.result()
    except Exception as exc:
        logger.exception("Device %d: unexpected failure", seq, extra=device_log_extra(seq, device))
        return DeviceResultData(seq=seq, host=device.host, model=device.model, status="failed", error=repr(exc))


def run_fetch_units(
    devices: Sequence[DeviceSpec], scripts_dir: Path, state_dir: Path, logger: logging.Logger
) -> list[DeviceResultData]:
    """Fetch every device in parallel and return results in device-list order.

    One worker per device; no unit can cancel or delay the others, and the
    call returns only after every unit has finished.
    """

    if not devices:
        return []

    logger.info("fetching configs for %d devices", len(devices))
    with ThreadPoolExecutor(max_workers=len(devices), thread_name_prefix="fetch") as executor:
        futures = [
            (seq, device, executor.submit(backup_device, seq, device, scripts_dir, state_dir, logger))
            for seq, device in enumerate(devices, start=1)
        ]
        return [_collect(seq, device, future, logger) for seq, device, future in futures]
