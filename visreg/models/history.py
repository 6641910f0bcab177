"""Approval history data structures."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from visreg.models.base import CamelModel

DEFAULT_MAX_HISTORY = 5


class Decision(BaseModel):
    action: Literal["accept", "reject"]
    timestamp: str  # ISO timestamp of the reviewer action


class HistorySummary(CamelModel):
    total_tests: int = 0
    accepted: int = 0
    rejected: int = 0
    pending: int = 0


class HistoryCommit(CamelModel):
    short_sha: str
    full_sha: str
    author: str
    email: str
    date: str
    message: str
    branch: str
    approval_timestamp: str
    approvals: dict[str, Decision] = Field(default_factory=dict)
    summary: HistorySummary = Field(default_factory=HistorySummary)


class HistoryData(CamelModel):
    max_history: int = Field(default=DEFAULT_MAX_HISTORY, ge=1)
    commits: list[HistoryCommit] = Field(default_factory=list)  # newest first

    def decisions_for(self, short_sha: str) -> dict[str, Decision]:
        """Decisions already recorded for a commit, empty when it has none."""
        for commit in self.commits:
            if commit.short_sha == short_sha:
                return dict(commit.approvals)
        return {}
