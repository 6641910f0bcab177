"""Source-control metadata consumed as a read-only fact sheet."""

from __future__ import annotations

from visreg.models.base import CamelModel

UNKNOWN = "unknown"


class GitInfo(CamelModel):
    sha: str = UNKNOWN
    short_sha: str = UNKNOWN
    author: str = UNKNOWN
    email: str = UNKNOWN
    date: str = UNKNOWN
    message: str = UNKNOWN
    branch: str = UNKNOWN

    @classmethod
    def unknown(cls) -> "GitInfo":
        """Sentinel used whenever git metadata cannot be read."""
        return cls()

    @property
    def is_unknown(self) -> bool:
        return self.sha == UNKNOWN
