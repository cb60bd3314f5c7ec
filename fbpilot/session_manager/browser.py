"""Camoufox browser lifecycle: one context, one long-lived page."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import BrowserContext, Page

from ..config import (
    BROWSER_HEADLESS,
    BROWSER_LOCALE,
    BROWSER_TIMEOUT,
    VIEWPORT_HEIGHT,
    VIEWPORT_WIDTH,
)

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class BrowserSession:
    """Owns the Camoufox process and the single page the controller drives."""

    def __init__(self):
        self._camoufox = None
        self._browser = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def is_running(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Optional[Page]:
        return self._page

    async def start(self, headless: Optional[bool] = None) -> Page:
        """Launch Camoufox and open the page. Idempotent while running."""
        if self._page is not None:
            return self._page

        use_headless = headless if headless is not None else BROWSER_HEADLESS
        logger.info(f"Launching Camoufox (headless={use_headless})...")

        try:
            self._camoufox = AsyncCamoufox(
                headless=use_headless,
                humanize=True,
                geoip=True,
                locale=BROWSER_LOCALE,
                i_know_what_im_doing=True,
            )
            self._browser = await self._camoufox.__aenter__()
            self._context = await self._browser.new_context(
                viewport={"width": VIEWPORT_WIDTH, "height": VIEWPORT_HEIGHT},
                user_agent=None,  # Let Camoufox handle fingerprinting
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(BROWSER_TIMEOUT)
        except Exception:
            logger.error("Failed to start browser", exc_info=True)
            await self.stop()
            raise

        logger.info("Browser ready.")
        return self._page

    async def cookie_count(self) -> int:
        if self._context is None:
            return 0
        try:
            return len(await self._context.cookies())
        except Exception:
            return 0

    async def stop(self):
        """Close context and browser; errors are logged, not raised."""
        logger.info("Stopping browser session...")
        try:
            if self._context:
                await self._context.close()
        except Exception as e:
            logger.warning(f"Error closing context: {e}")
        finally:
            self._context = None
            self._page = None

        try:
            if self._camoufox:
                await self._camoufox.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(f"Error closing camoufox: {e}")
        finally:
            self._camoufox = None
            self._browser = None

        logger.info("Browser session stopped.")
