"""Fetch unit: fetch, filter and persist one device dump."""

from __future__ import annotations

import logging
from pathlib import Path

from configarchive.common.run_summary import DeviceResultData
from configarchive.core.filtering import PatternError, apply_filter, compile_filter
from configarchive.core.models import DeviceSpec
from configarchive.core.storage import PersistenceError, write_dump
from configarchive.expect.client import FetchError, fetch_dump


def device_log_extra(seq: int, device: DeviceSpec) -> dict[str, str]:
    return {"device": f"{seq}:{device.host}"}


def fetch_filtered_dump(
    seq: int, device: DeviceSpec, scripts_dir: Path, logger: logging.Logger
) -> str:
    """Return the device dump, filtered when the device has a filter spec."""

    log_extra = device_log_extra(seq, device)
    # Compile before the script runs.
    compiled = compile_filter(device.filter_spec) if device.filter_spec is not None else None

    logger.info("Device %d: fetching running-config", seq, extra=log_extra)
    raw = fetch_dump(device, scripts_dir, logger, log_extra)
    if compiled is None:
        return raw
    return apply_filter(compiled, raw, logger, log_extra)


def backup_device(
    seq: int, device: DeviceSpec, scripts_dir: Path, state_dir: Path, logger: logging.Logger
) -> DeviceResultData:
    """Fetch and store one device dump, turning expected failures into a result."""

    log_extra = device_log_extra(seq, device)
    try:
        dump = fetch_filtered_dump(seq, device, scripts_dir, logger)
        logger.info("Device %d: writing running-config to '%s'", seq, Path(state_dir) / device.host, extra=log_extra)
        saved_path = write_dump(state_dir, device.host, dump)
    except (PatternError, FetchError, PersistenceError) as exc:
        logger.error("Device %d: %s", seq, exc, extra=log_extra)
        return DeviceResultData(seq=seq, host=device.host, model=device.model, status="failed", error=str(exc))

    size = len(dump.encode("utf-8"))
    logger.debug("Device %d: saved bytes=%d", seq, size, extra=log_extra)
    return DeviceResultData(
        seq=seq,
        host=device.host,
        model=device.model,
        status="success",
        saved_path=str(saved_path),
        size_bytes=size,
    )
