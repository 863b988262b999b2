"""Client that runs the model-specific expect script for a device."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any

from configarchive.core.models import DeviceSpec

SCRIPT_SUFFIX = ".exp"


class FetchError(RuntimeError):
    """Base exception for expect script errors."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path


class LaunchFailedError(FetchError):
    """Raised when the script cannot be started (missing, not executable)."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"failed to run expect script {path}: {reason}")
        self.reason = reason


class ScriptFailedError(FetchError):
    """Raised when the script exits with a non-zero status."""

    def __init__(self, path: Path, returncode: int, stderr: str) -> None:
        super().__init__(path, f"expect script failed {path} (exit status {returncode}):\n{stderr}")
        self.returncode = returncode
        self.stderr = stderr


class InvalidOutputError(FetchError):
    """Raised when the script output is not valid UTF-8."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"expect script {path} produced invalid output: {reason}")
        self.reason = reason


def script_path(device: DeviceSpec, scripts_dir: Path) -> Path:
    return Path(scripts_dir) / f"{device.model}{SCRIPT_SUFFIX}"


def script_arguments(device: DeviceSpec) -> list[str]:
    """Positional arguments passed to the expect script.

    ``user password_file host [kex_algorithm] [cipher] [hostkey_algorithm] extra_params...``
    """

    optional = [device.kex_algorithm, device.cipher, device.hostkey_algorithm]
    return [
        device.user,
        device.password_file,
        device.host,
        *(value for value in optional if value is not None),
        *device.extra_params,
    ]


def masked_command(command: list[str], device: DeviceSpec) -> list[str]:
    """Copy of ``command`` with the device's extra parameters replaced by ``***``."""

    if not device.extra_params:
        return list(command)
    keep = len(command) - len(device.extra_params)
    return [*command[:keep], *("***" for _ in device.extra_params)]


def _decode_stderr(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return "<invalid utf8>"


def fetch_dump(
    device: DeviceSpec,
    scripts_dir: Path,
    logger: logging.Logger,
    log_extra: dict[str, Any] | None = None,
) -> str:
    """Run the expect script for ``device`` and return its standard output."""

    log_extra = log_extra or {}
    path = script_path(device, scripts_dir)
    command = [str(path), *script_arguments(device)]
    logger.debug("running script: %s", masked_command(command, device), extra=log_extra)

    try:
        completed = subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as exc:
        raise LaunchFailedError(path, exc.strerror or str(exc)) from exc

    if completed.returncode != 0:
        raise ScriptFailedError(path, completed.returncode, _decode_stderr(completed.stderr))

    try:
        output = completed.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidOutputError(path, str(exc)) from exc

    logger.debug("dump received bytes=%d", len(completed.stdout), extra=log_extra)
    return output
