"""Helpers for building and persisting machine-readable run summaries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from configarchive.archive.committer import CommitResult


@dataclass(slots=True)
class DeviceResultData:
    """Outcome of a single fetch unit."""

    seq: int
    host: str
    model: str
    status: str
    saved_path: str | None = None
    size_bytes: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, object]:
        return {
            "seq": self.seq,
            "host": self.host,
            "model": self.model,
            "status": self.status,
            "saved_path": self.saved_path,
            "size_bytes": self.size_bytes,
            "error": self.error,
        }



class RunSummaryBuilder:
    """Accumulate per-run data and store it as JSON."""

    def __init__(self, *, run_id: str, timestamp: str, push_enabled: bool) -> None:
        self.run_id = run_id
        self.timestamp = timestamp
        self.push_enabled = push_enabled
        self.devices_total = 0
        self.devices_success = 0
        self.devices_failed = 0
        self.commit = CommitResult()
        self.commit_error: str | None = "commit phase not run"
        self._devices: list[DeviceResultData] = []

    def set_devices_total(self, total: int) -> None:
        self.devices_total = max(0, total)

    def add_devices(self, devices: Iterable[DeviceResultData]) -> None:
        for device in devices:
            self.add_device(device)

    def add_device(self, device: DeviceResultData) -> None:
        self._devices.append(device)
        if device.succeeded:
            self.devices_success += 1
        else:
            self.devices_failed += 1

    def set_commit(self, commit: CommitResult) -> None:
        self.commit = commit
        self.commit_error = None

    def set_commit_error(self, error: str) -> None:
        self.commit_error = error

    @property
    def failed(self) -> bool:
        return self.devices_failed > 0 or self.commit_error is not None

    def build(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "push_enabled": self.push_enabled,
            "totals": {
                "devices_total": self.devices_total,
                "devices_success": self.devices_success,
                "devices_failed": self.devices_failed,
                "files_committed": len(self.commit.committed),
                "pushed": self.commit.pushed,
            },
            "commit": {
                "committed": list(self.commit.committed),
                "pushed": self.commit.pushed,
                "error": self.commit_error,
            },
            "devices": [device.to_dict() for device in self._devices],
        }

    def log(self, logger: logging.Logger) -> None:
        logger.info(
            "run finished devices_total=%d success=%d failed=%d committed=%d pushed=%s",
            self.devices_total,
            self.devices_success,
            self.devices_failed,
            len(self.commit.committed),
            self.commit.pushed,
        )
        for device in self._devices:
            if not device.succeeded:
                logger.error(
                    "Device %d: failed: %s", device.seq, device.error, extra={"device": device.host}
                )

    def save(self, summary_dir: Path, logger: logging.Logger) -> Path:
        summary_dir.mkdir(parents=True, exist_ok=True)

        target = summary_dir / f"run_{self.run_id}.json"
        target.write_text(json.dumps(self.build(), indent=2, ensure_ascii=False), encoding="utf-8")

        logger.info("run_summary_json_saved path=%s", target)
        return target
