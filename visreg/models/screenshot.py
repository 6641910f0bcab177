"""Screenshot identity and baseline resolution data structures."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel

from visreg.models.config import FrameworkName


class ScreenshotIdentity(BaseModel):
    framework: FrameworkName
    name: str
    branch: str


class BaselineResolution(BaseModel):
    should_use_baseline: bool
    baseline_path: Path
    compare_path: Path
    is_default_branch: bool


class CaptureOutcome(BaseModel):
    identity: ScreenshotIdentity
    resolution: BaselineResolution
    path: Path  # where the captured bytes were written
    is_baseline: bool
