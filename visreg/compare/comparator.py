"""Screenshot comparator: diffs a candidate against its baseline and writes the diff artifact."""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from visreg.compare.engines import DEFAULT_ENGINE, EngineOutput, default_engine, resolve_engine
from visreg.errors import (
    BaselineMissingError,
    CandidateMissingError,
    EngineUnavailableError,
    ImageDecodeError,
    IncompatibleDimensionsError,
)
from visreg.models.comparison import ComparisonResult

logger = logging.getLogger(__name__)


def _load_image(path: Path) -> Image.Image:
    try:
        with Image.open(path) as img:
            return img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ImageDecodeError(path, e) from e


def read_dimensions(path: str | Path) -> tuple[int, int] | None:
    """Width and height of an image file, or None if it cannot be read."""
    try:
        with Image.open(path) as img:
            return img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.debug("Could not read dimensions of %s: %s", path, e)
        return None


def compare_screenshots(
    baseline_path: str | Path,
    compare_path: str | Path,
    diff_path: str | Path,
    threshold: float,
    engine: str = DEFAULT_ENGINE,
    tolerance: float = 0.1,
) -> ComparisonResult:
    """Compare a candidate screenshot against its baseline.

    ``threshold`` is the largest acceptable fraction of differing pixels;
    ``tolerance`` is handed to the engine and controls per-pixel sensitivity.
    The diff image is written to ``diff_path`` whether or not the comparison
    passes. Nothing is written when an input is missing, undecodable, or the
    two images differ in size.
    """
    baseline_path = Path(baseline_path)
    compare_path = Path(compare_path)
    diff_path = Path(diff_path)

    if not baseline_path.exists():
        raise BaselineMissingError(baseline_path)
    if not compare_path.exists():
        raise CandidateMissingError(compare_path)

    baseline = _load_image(baseline_path)
    candidate = _load_image(compare_path)
    if baseline.size != candidate.size:
        raise IncompatibleDimensionsError(baseline.size, candidate.size)

    output = _run_engine(engine, baseline, candidate, tolerance)

    width, height = baseline.size
    total = width * height
    diff_percentage = output.diff_count / total if total else 0.0
    passed = diff_percentage <= threshold

    diff_path.parent.mkdir(parents=True, exist_ok=True)
    output.diff_image.save(diff_path, format="PNG")

    logger.debug(
        "Compared %s: %d/%d pixels differ (%.2f%%, threshold %.2f%%)",
        baseline_path.stem, output.diff_count, total, diff_percentage * 100, threshold * 100,
    )
    return ComparisonResult(
        name=baseline_path.stem,
        baseline_path=str(baseline_path),
        compare_path=str(compare_path),
        diff_path=str(diff_path),
        passed=passed,
        diff_percentage=diff_percentage,
        threshold=threshold,
        width=width,
        height=height,
    )


def _run_engine(name: str, baseline: Image.Image, candidate: Image.Image, tolerance: float) -> EngineOutput:
    engine = resolve_engine(name)
    try:
        return engine.compare(baseline, candidate, tolerance)
    except EngineUnavailableError as e:
        logger.warning("%s; falling back to %s", e, DEFAULT_ENGINE)
        return default_engine().compare(baseline, candidate, tolerance)
