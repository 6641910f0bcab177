"""Playwright capture adapter."""

from __future__ import annotations

import logging

from playwright.async_api import Page

from visreg.capture.base import CaptureOptions

logger = logging.getLogger(__name__)


class PlaywrightCapturer:
    """Takes deterministic PNG screenshots from a Playwright page."""

    framework = "playwright"

    async def capture(self, target: Page, options: CaptureOptions) -> bytes:
        if target is None or not hasattr(target, "screenshot"):
            raise TypeError("Expected a Playwright page with a screenshot() method")

        # Animations off and caret hidden keep consecutive captures identical.
        if options.selector:
            logger.debug("Capturing element %s", options.selector)
            return await target.locator(options.selector).screenshot(
                type="png", animations="disabled", caret="hide",
            )
        return await target.screenshot(
            type="png", full_page=options.full_page, animations="disabled", caret="hide",
        )
