"""Configuration model for the visual regression workflow."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "visreg.config.json"

FrameworkName = Literal["playwright", "cypress", "puppeteer", "selenium"]


class VisRegConfig(BaseModel):
    # Screenshot source
    framework: FrameworkName = "playwright"

    # Storage locations
    baseline_dir: str = ".visreg/baseline"
    compare_dir: str = ".visreg/compare"
    report_dir: str = ".visreg/reports"

    # Comparison
    diff_threshold: float = 0.1  # max fraction of differing pixels
    pixel_tolerance: float = 0.1  # per-pixel colour sensitivity for the engine
    engine: str = "pixelmatch"
    update_baselines: bool = False

    # Branch handling
    default_branch: str = "main"
    branch: Optional[str] = None  # overrides git, e.g. on detached CI checkouts

    # History
    max_history: int = Field(default=5, ge=1)

    @field_validator("diff_threshold", "pixel_tolerance")
    @classmethod
    def check_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"must be between 0 and 1, got {v}")
        return v

    @field_validator("engine")
    @classmethod
    def normalize_engine(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def baseline_path(self) -> Path:
        return Path(self.baseline_dir)

    @property
    def compare_path(self) -> Path:
        return Path(self.compare_dir)

    @property
    def report_path(self) -> Path:
        return Path(self.report_dir)

    @classmethod
    def load(cls, path: str | Path) -> "VisRegConfig":
        """Load config from a JSON file, then apply environment overrides."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        data.update(env_overrides())
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)


def env_overrides(environ: dict[str, str] | None = None) -> dict:
    """Collect VISREG_* environment overrides as config fields."""
    env = os.environ if environ is None else environ
    overrides: dict = {}

    threshold = env.get("VISREG_DIFF_THRESHOLD")
    if threshold is not None:
        try:
            overrides["diff_threshold"] = float(threshold)
        except ValueError:
            logger.warning("Ignoring invalid VISREG_DIFF_THRESHOLD=%r", threshold)

    update = env.get("VISREG_UPDATE_BASELINES")
    if update is not None:
        overrides["update_baselines"] = update.strip().lower() in ("1", "true", "yes")

    engine = env.get("VISREG_ENGINE")
    if engine:
        overrides["engine"] = engine

    return overrides
