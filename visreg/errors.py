"""Error taxonomy for the visual regression workflow."""

from __future__ import annotations

from pathlib import Path


class VisRegError(Exception):
    """Base class for all visual regression errors."""


class BaselineMissingError(VisRegError):
    """No baseline image exists yet. Usually a signal to bootstrap one."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"Baseline image not found: {self.path}")


class CandidateMissingError(VisRegError):
    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"Comparison image not found: {self.path}")


class ImageDecodeError(VisRegError):
    def __init__(self, path: str | Path, cause: Exception):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Could not decode image {self.path}: {cause}")


class IncompatibleDimensionsError(VisRegError):
    def __init__(self, baseline_size: tuple[int, int], compare_size: tuple[int, int]):
        self.baseline_size = baseline_size
        self.compare_size = compare_size
        super().__init__(
            f"Image dimensions differ: baseline {baseline_size[0]}x{baseline_size[1]}, "
            f"candidate {compare_size[0]}x{compare_size[1]}"
        )


class EngineUnavailableError(VisRegError):
    def __init__(self, engine: str, reason: str = "not implemented"):
        self.engine = engine
        super().__init__(f"Comparison engine '{engine}' unavailable: {reason}")


class HistoryCorruptError(VisRegError):
    def __init__(self, path: str | Path, cause: Exception):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"History file {self.path} is malformed: {cause}")


class GitContextUnavailableError(VisRegError):
    """Raised internally when git metadata cannot be read."""


class PersistenceError(VisRegError):
    """A report or history file could not be read or written. Fatal to the invocation."""

    def __init__(self, path: str | Path, cause: Exception, action: str = "write"):
        self.path = Path(path)
        self.cause = cause
        self.action = action
        super().__init__(f"Failed to {action} {self.path}: {cause}")


class ReportCorruptError(VisRegError):
    def __init__(self, path: str | Path, cause: Exception):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Report file {self.path} is malformed: {cause}. Run 'visreg compare' again.")


class UnknownTestError(VisRegError):
    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"Not in the current report: {', '.join(names)}")
