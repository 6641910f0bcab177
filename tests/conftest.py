"""Pytest configuration and shared fixtures."""

import struct
import zlib
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from PIL import Image
from playwright.async_api import Page

from visreg.models.config import VisRegConfig
from visreg.models.git import GitInfo
from visreg.models.history import Decision


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def visreg_config(tmp_path: Path) -> VisRegConfig:
    """Create a config with every directory under tmp_path."""
    return VisRegConfig(
        framework="playwright",
        baseline_dir=str(tmp_path / "baseline"),
        compare_dir=str(tmp_path / "compare"),
        report_dir=str(tmp_path / "reports"),
        diff_threshold=0.1,
    )


@pytest.fixture(autouse=True)
def clear_visreg_env(monkeypatch):
    """Keep VISREG_* variables from the developer's shell out of tests."""
    for var in ("VISREG_DIFF_THRESHOLD", "VISREG_UPDATE_BASELINES", "VISREG_ENGINE"):
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# Git Fixtures
# ============================================================================


@pytest.fixture
def git_info() -> GitInfo:
    """Create git metadata for a commit on main."""
    return create_git_info()


@pytest.fixture
def feature_git_info() -> GitInfo:
    """Create git metadata for a commit on a feature branch."""
    return create_git_info("def5678", branch="feature/x")


# ============================================================================
# Helper Functions
# ============================================================================


def create_git_info(short_sha: str = "abc1234", branch: str = "main", **overrides) -> GitInfo:
    """Create git metadata whose full SHA is the short SHA padded with zeros."""
    fields = {
        "sha": f"{short_sha}{'0' * (40 - len(short_sha))}",
        "short_sha": short_sha,
        "author": "Jane Dev",
        "email": "jane@example.com",
        "date": "2025-01-01T00:00:00+00:00",
        "message": "Update header styles",
        "branch": branch,
    }
    fields.update(overrides)
    return GitInfo(**fields)


def create_accept(timestamp: str = "2025-01-01T10:00:00Z") -> Decision:
    return Decision(action="accept", timestamp=timestamp)


def create_reject(timestamp: str = "2025-01-01T10:00:00Z") -> Decision:
    return Decision(action="reject", timestamp=timestamp)


def create_solid_image(size=(10, 10), color=(255, 255, 255, 255)) -> Image.Image:
    return Image.new("RGBA", size, color)


def save_png_image(path: Path, img: Image.Image) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, format="PNG")
    return path


def fill_block(img: Image.Image, box, color=(0, 0, 0, 255)) -> Image.Image:
    """Copy of img with the (x0, y0, x1, y1) box filled, end exclusive."""
    out = img.copy()
    x0, y0, x1, y1 = box
    for x in range(x0, x1):
        for y in range(y0, y1):
            out.putpixel((x, y), color)
    return out


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))


def write_oversized_png(path: Path, width: int = 20000, height: int = 20000) -> Path:
    """Write a PNG whose header declares width x height RGBA pixels but carries almost no data."""
    path.parent.mkdir(parents=True, exist_ok=True)
    header = struct.pack(">IIBBBBB", width, height, 8, 6, 0, 0, 0)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )
    return path


@pytest.fixture
def make_git_info():
    """Fixture that provides the create_git_info function."""
    return create_git_info


@pytest.fixture
def accept():
    """Fixture that provides the create_accept function."""
    return create_accept


@pytest.fixture
def reject():
    """Fixture that provides the create_reject function."""
    return create_reject


@pytest.fixture
def solid_image():
    """Fixture that provides the create_solid_image function."""
    return create_solid_image


@pytest.fixture
def save_png():
    """Fixture that provides the save_png_image function."""
    return save_png_image


@pytest.fixture
def with_block():
    """Fixture that provides the fill_block function."""
    return fill_block


@pytest.fixture
def oversized_png():
    """Fixture that provides the write_oversized_png function."""
    return write_oversized_png


# ============================================================================
# Browser Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright Page returning a small PNG."""
    page = AsyncMock(spec=Page)
    page.screenshot.return_value = b"\x89PNG\r\n\x1a\npage"
    page.url = "https://example.com/products/list"
    return page
