"""Record archive changes as git history, one commit per changed file."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import git


class RepoStateError(RuntimeError):
    """Raised when the archive directory does not exist."""


class GitCommandError(RuntimeError):
    """Raised when a git command exits with a failure status."""

    def __init__(self, command: str, status: Any, detail: str) -> None:
        super().__init__(f"git command failed ({status}): {command}\n{detail}".rstrip())
        self.command = command
        self.status = status
        self.detail = detail


@dataclass(slots=True)
class CommitResult:
    """Files committed during a run and whether the push step ran."""

    committed: list[str] = field(default_factory=list)
    pushed: bool = False


def _command_text(command: Any) -> str:
    if isinstance(command, (list, tuple)):
        return " ".join(str(part) for part in command)
    return str(command)


_LABELLED_STREAM = re.compile(r"\s*(?:stdout|stderr): '(.*)'\s*", re.DOTALL)


def _stream_text(value: Any) -> str:
    """Captured output without the ``stderr: '...'`` wrapper GitPython adds."""

    if not value:
        return ""
    text = str(value)
    match = _LABELLED_STREAM.fullmatch(text)
    return (match.group(1) if match else text).strip()


def _run(step: Callable[..., str], *args: Any, **kwargs: Any) -> str:
    try:
        return step(*args, **kwargs)
    except git.exc.CommandError as exc:
        detail = "\n".join(part for part in (_stream_text(exc.stdout), _stream_text(exc.stderr)) if part)
        raise GitCommandError(_command_text(exc.command), exc.status, detail) from exc


def list_changed_files(repo: git.Git) -> list[str]:
    """Modified and untracked, non-ignored files in git's own order."""

    output = _run(repo.ls_files, "-z", modified=True, others=True, exclude_standard=True)
    return [name for name in output.split("\0") if name]


def commit_archive(state_dir: Path, push: bool, logger: logging.Logger) -> CommitResult:
    """Commit every changed file in ``state_dir`` separately, then optionally push.

    Commands run strictly one after another; the first failing command raises
    :class:`GitCommandError` and nothing after it runs.
    """

    state_dir = Path(state_dir)
    if not state_dir.is_dir():
        raise RepoStateError(f"archive directory does not exist: {state_dir}")

    repo = git.Git(str(state_dir))
    result = CommitResult()

    changed = list_changed_files(repo)
    logger.debug("changed files=%d", len(changed))

    for name in changed:
        logger.info("committing changes to file '%s'", state_dir / name)
        _run(repo.add, "--", name)
        _run(repo.commit, message=f"Update {name}")
        result.committed.append(name)

    if push:
        logger.info("pushing archive %s", state_dir)
        _run(repo.push)
        result.pushed = True
    else:
        logger.info("push disabled (skipping)")

    return result
