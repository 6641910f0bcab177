"""Git metadata lookup: always yields a GitInfo, never raises."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from visreg.errors import GitContextUnavailableError
from visreg.models.git import GitInfo

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 10


def _run_git(args: list[str], cwd: Path | None) -> str:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise GitContextUnavailableError(f"git {' '.join(args)} failed: {e}") from e
    return proc.stdout.strip()


def fetch_git_info(cwd: str | Path | None = None) -> GitInfo:
    """Read the current commit's metadata, or the "unknown" sentinel on failure."""
    cwd = Path(cwd) if cwd else None
    try:
        return GitInfo(
            sha=_run_git(["rev-parse", "HEAD"], cwd),
            short_sha=_run_git(["rev-parse", "--short", "HEAD"], cwd),
            author=_run_git(["log", "-1", "--pretty=format:%an"], cwd),
            email=_run_git(["log", "-1", "--pretty=format:%ae"], cwd),
            date=_run_git(["log", "-1", "--pretty=format:%aI"], cwd),
            message=_run_git(["log", "-1", "--pretty=format:%s"], cwd),
            branch=_run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd),
        )
    except GitContextUnavailableError as e:
        logger.warning("Git information unavailable: %s. Using 'unknown'.", e)
        return GitInfo.unknown()
