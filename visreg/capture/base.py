"""Capture capability: the narrow interface every driver adapter implements."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from pydantic import BaseModel


class CaptureOptions(BaseModel):
    full_page: bool = False
    selector: Optional[str] = None  # screenshot a single element instead of the page


class ScreenshotCapturer(Protocol):
    framework: str

    async def capture(self, target: Any, options: CaptureOptions) -> bytes:
        """Return PNG bytes for the driver handle ``target``."""
        ...
