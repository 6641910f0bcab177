"""History store: bounded, commit-keyed ledger of approval decisions."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from visreg.errors import HistoryCorruptError, PersistenceError
from visreg.models.git import GitInfo
from visreg.models.history import (
    DEFAULT_MAX_HISTORY,
    Decision,
    HistoryCommit,
    HistoryData,
    HistorySummary,
)
from visreg.utils.json_io import write_json_atomic

logger = logging.getLogger(__name__)


class HistoryStoreManager:
    """Manages the history.json file.

    Each call loads, mutates and atomically rewrites the file. One process per
    report directory is assumed; concurrent writers can lose updates.
    """

    def __init__(self, history_path: Path, max_history: int = DEFAULT_MAX_HISTORY):
        self.path = Path(history_path)
        self.max_history = max_history

    def load(self) -> HistoryData:
        """Load history from disk, or start an empty one."""
        if not self.path.exists():
            return HistoryData(max_history=self.max_history)
        try:
            return self._parse()
        except HistoryCorruptError as e:
            logger.warning("%s. Starting a new history.", e)
            return HistoryData(max_history=self.max_history)

    def _parse(self) -> HistoryData:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return HistoryData.model_validate(data)
        except (json.JSONDecodeError, ValidationError, UnicodeDecodeError) as e:
            raise HistoryCorruptError(self.path, e) from e
        except OSError as e:
            raise PersistenceError(self.path, e, action="read") from e

    def save(self, history: HistoryData) -> None:
        """Persist history to disk."""
        write_json_atomic(self.path, history.to_json_dict())
        logger.debug("Saved history (%d commits) to %s", len(history.commits), self.path)

    def record_approvals(
        self,
        decisions: dict[str, Decision],
        git_info: GitInfo,
        total_tests: int | None = None,
    ) -> HistoryData:
        """Record the current commit's decisions and persist the trimmed ledger."""
        history = self.load()
        history.max_history = self.max_history
        commit = build_commit(decisions, git_info, total_tests)
        upsert_commit(history, commit)
        self.save(history)
        logger.info(
            "Recorded %d decisions for commit %s (%d accepted, %d rejected)",
            len(decisions), commit.short_sha, commit.summary.accepted, commit.summary.rejected,
        )
        return history


def build_commit(
    decisions: dict[str, Decision], git_info: GitInfo, total_tests: int | None = None,
) -> HistoryCommit:
    accepted = sum(1 for d in decisions.values() if d.action == "accept")
    rejected = sum(1 for d in decisions.values() if d.action == "reject")
    total = max(total_tests if total_tests is not None else 0, len(decisions))

    # Derived from the decisions themselves so re-recording is idempotent.
    approval_timestamp = max((d.timestamp for d in decisions.values()), default=git_info.date)

    return HistoryCommit(
        short_sha=git_info.short_sha,
        full_sha=git_info.sha,
        author=git_info.author,
        email=git_info.email,
        date=git_info.date,
        message=git_info.message,
        branch=git_info.branch,
        approval_timestamp=approval_timestamp,
        approvals=dict(sorted(decisions.items())),
        summary=HistorySummary(
            total_tests=total,
            accepted=accepted,
            rejected=rejected,
            pending=total - accepted - rejected,
        ),
    )


def upsert_commit(history: HistoryData, commit: HistoryCommit) -> HistoryData:
    """Replace the commit with the same short SHA in place, or prepend it; then trim."""
    for i, existing in enumerate(history.commits):
        if existing.short_sha == commit.short_sha:
            history.commits[i] = commit
            break
    else:
        history.commits.insert(0, commit)

    if len(history.commits) > history.max_history:
        dropped = history.commits[history.max_history:]
        history.commits = history.commits[:history.max_history]
        logger.debug("Trimmed %d old commits from history", len(dropped))
    return history
