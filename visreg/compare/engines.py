"""Comparison engines: pluggable per-pixel diff algorithms keyed by name."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
from PIL import Image

from visreg.errors import EngineUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "pixelmatch"

DIFF_COLOR = (255, 0, 0, 255)

# YIQ delta between pure black and pure white; scales the per-pixel tolerance.
MAX_YIQ_DELTA = 35215.0

# Neighbour visiting order matters for tie-breaking in anti-aliasing detection.
_NEIGHBOUR_OFFSETS = [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)]


@dataclass
class EngineOutput:
    diff_count: int
    diff_image: Image.Image  # RGBA, transparent where pixels match


class ComparisonEngine:
    """Base class for comparison engines."""

    name = "base"
    available = True

    def compare(self, img1: Image.Image, img2: Image.Image, tolerance: float = 0.1) -> EngineOutput:
        raise NotImplementedError


class DeferredEngine(ComparisonEngine):
    """An engine that is declared but not implemented yet."""

    available = False

    def __init__(self, name: str):
        self.name = name

    def compare(self, img1: Image.Image, img2: Image.Image, tolerance: float = 0.1) -> EngineOutput:
        raise EngineUnavailableError(self.name)


# ---------------------------------------------------------------------------
# pixelmatch
# ---------------------------------------------------------------------------

# Working-set bounds: rows per colour-delta band, pixels per anti-aliasing batch.
_BAND_ROWS = 256
_AA_BATCH = 1 << 18


def _to_array(img: Image.Image) -> np.ndarray:
    return np.asarray(img.convert("RGBA"), dtype=np.uint8)


def _blend_on_white(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.float64)
    alpha = rgba[..., 3:4].astype(np.float64) / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _rgb2y(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.29889531 + rgb[..., 1] * 0.58662247 + rgb[..., 2] * 0.11448223


def _rgb2i(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.59597799 - rgb[..., 1] * 0.27417610 - rgb[..., 2] * 0.32180189


def _rgb2q(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.21147017 - rgb[..., 1] * 0.52261711 + rgb[..., 2] * 0.31114694


def _yiq_delta(rgb1: np.ndarray, rgb2: np.ndarray) -> np.ndarray:
    y = _rgb2y(rgb1) - _rgb2y(rgb2)
    i = _rgb2i(rgb1) - _rgb2i(rgb2)
    q = _rgb2q(rgb1) - _rgb2q(rgb2)
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q


def _changed_mask(a: np.ndarray, b: np.ndarray, max_delta: float) -> np.ndarray:
    """Pixels whose YIQ delta exceeds ``max_delta``, computed one row band at a time."""
    changed = np.zeros(a.shape[:2], dtype=bool)
    for top in range(0, a.shape[0], _BAND_ROWS):
        band = slice(top, top + _BAND_ROWS)
        changed[band] = _yiq_delta(_blend_on_white(a[band]), _blend_on_white(b[band])) > max_delta
    return changed


def _brightness(raw: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    return _rgb2y(_blend_on_white(raw[ys, xs]))


def _inside(h: int, w: int, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    return (ys >= 0) & (ys < h) & (xs >= 0) & (xs < w)


def _on_edge(h: int, w: int, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    return (ys == 0) | (ys == h - 1) | (xs == 0) | (xs == w - 1)


def _has_many_siblings(raw: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    """True where more than two neighbours (edges count as one) share the exact RGBA value."""
    h, w = raw.shape[:2]
    pixel = raw[ys, xs]
    count = _on_edge(h, w, ys, xs).astype(np.int32)
    for dx, dy in _NEIGHBOUR_OFFSETS:
        ny, nx = ys + dy, xs + dx
        inside = _inside(h, w, ny, nx)
        same = np.zeros(len(ys), dtype=bool)
        same[inside] = np.all(raw[ny[inside], nx[inside]] == pixel[inside], axis=1)
        count += same
    return count > 2


def _antialiased(raw: np.ndarray, other: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    """Flag which of the pixels at (ys, xs) look like anti-aliasing in ``raw``.

    A pixel qualifies when it sits between a darkest and a brightest neighbour
    (with at most two identical neighbours) and one of those extremes lies in
    a flat region in both images. Only the given pixels and their neighbours
    are read.
    """
    h, w = raw.shape[:2]
    n = len(ys)
    y = _brightness(raw, ys, xs)
    zeroes = _on_edge(h, w, ys, xs).astype(np.int32)
    rejected = np.zeros(n, dtype=bool)
    min_delta = np.zeros(n)
    max_delta = np.zeros(n)
    min_x, min_y = xs.copy(), ys.copy()
    max_x, max_y = xs.copy(), ys.copy()

    for dx, dy in _NEIGHBOUR_OFFSETS:
        ny, nx = ys + dy, xs + dx
        active = _inside(h, w, ny, nx) & ~rejected
        delta = np.zeros(n)
        delta[active] = y[active] - _brightness(raw, ny[active], nx[active])

        is_zero = active & (delta == 0)
        zeroes += is_zero
        rejected |= is_zero & (zeroes > 2)

        lower = active & ~is_zero & (delta < min_delta)
        higher = active & ~is_zero & ~lower & (delta > max_delta)
        min_delta[lower] = delta[lower]
        min_x[lower] = nx[lower]
        min_y[lower] = ny[lower]
        max_delta[higher] = delta[higher]
        max_x[higher] = nx[higher]
        max_y[higher] = ny[higher]

    flagged = np.zeros(n, dtype=bool)
    idx = np.flatnonzero(~rejected & (min_delta != 0) & (max_delta != 0))
    if idx.size:
        lo_y, lo_x = min_y[idx], min_x[idx]
        hi_y, hi_x = max_y[idx], max_x[idx]
        flagged[idx] = (
            (_has_many_siblings(raw, lo_y, lo_x) & _has_many_siblings(other, lo_y, lo_x))
            | (_has_many_siblings(raw, hi_y, hi_x) & _has_many_siblings(other, hi_y, hi_x))
        )
    return flagged


class PixelmatchEngine(ComparisonEngine):
    """Per-pixel RGBA comparison in YIQ space with anti-aliasing detection.

    ``tolerance`` (0..1) tunes per-pixel colour sensitivity: smaller values
    flag subtler colour changes. Anti-aliased pixels are not counted unless
    ``include_aa`` is set. Anti-aliasing is only checked for pixels that
    already exceed the colour tolerance.
    """

    name = "pixelmatch"

    def __init__(self, include_aa: bool = False):
        self.include_aa = include_aa

    def compare(self, img1: Image.Image, img2: Image.Image, tolerance: float = 0.1) -> EngineOutput:
        a = _to_array(img1)
        b = _to_array(img2)
        if a.shape != b.shape:
            raise ValueError(f"Image buffers differ in shape: {a.shape} vs {b.shape}")

        h, w = a.shape[:2]
        diff = np.zeros((h, w, 4), dtype=np.uint8)
        if np.array_equal(a, b):
            return EngineOutput(0, Image.fromarray(diff))

        max_delta = MAX_YIQ_DELTA * tolerance * tolerance
        changed = _changed_mask(a, b, max_delta)

        if not self.include_aa:
            ys, xs = np.nonzero(changed)
            for start in range(0, ys.size, _AA_BATCH):
                by = ys[start:start + _AA_BATCH]
                bx = xs[start:start + _AA_BATCH]
                aa = _antialiased(a, b, by, bx) | _antialiased(b, a, by, bx)
                changed[by[aa], bx[aa]] = False

        diff[changed] = DIFF_COLOR
        return EngineOutput(int(changed.sum()), Image.fromarray(diff))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_REGISTRY: dict[str, Callable[[], ComparisonEngine]] = {
    "pixelmatch": PixelmatchEngine,
    "default": PixelmatchEngine,
    "opencv": lambda: DeferredEngine("opencv"),
    "perceptual": lambda: DeferredEngine("perceptual"),
}


def register_engine(name: str, factory: Callable[[], ComparisonEngine]) -> None:
    _REGISTRY[name.strip().lower()] = factory


def declared_engines() -> list[str]:
    return sorted(_REGISTRY)


def available_engines() -> list[str]:
    return sorted(name for name, factory in _REGISTRY.items() if factory().available)


def default_engine() -> ComparisonEngine:
    return _REGISTRY[DEFAULT_ENGINE]()


def resolve_engine(name: str | None) -> ComparisonEngine:
    """Look up an engine; unknown or unimplemented names fall back to pixelmatch."""
    key = (name or DEFAULT_ENGINE).strip().lower()
    factory = _REGISTRY.get(key)
    if factory is None:
        logger.warning("Unknown comparison engine '%s'; falling back to %s", key, DEFAULT_ENGINE)
        return default_engine()
    engine = factory()
    if not engine.available:
        logger.warning(
            "Comparison engine '%s' is not implemented yet; falling back to %s", key, DEFAULT_ENGINE,
        )
        return default_engine()
    return engine
