"""Shared fixtures for tests that run fake expect scripts."""

from __future__ import annotations

import stat
from pathlib import Path

ECHO_ARGS = '#!/bin/sh\nprintf "%s\\n" "$@"\n'


def write_script(scripts_dir: Path, model: str, body: str) -> Path:
    """Create an executable ``<model>.exp`` shell script."""

    path = scripts_dir / f"{model}.exp"
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
