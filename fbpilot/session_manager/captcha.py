"""Captcha / security-checkpoint detection.

Checks run cheapest first and stop at the first positive tier:

1. page URL looks like a checkpoint
2. an embedded frame's URL belongs to a challenge widget
3. a readable embedded frame contains a challenge phrase
4. a high-confidence challenge selector is present (iframes decisive,
   anything else must also contain a challenge phrase)
5. the page body contains a challenge phrase

A failing check counts as "no match"; detect() never raises.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from ..constants import (
    CAPTCHA_PHRASES_EN,
    CAPTCHA_PHRASES_FA,
    CAPTCHA_SELECTORS,
    CHALLENGE_FRAME_PATTERNS,
    CHECKPOINT_URL_PATTERN,
)
from ..models.results import CaptchaMethod, CaptchaResult
from . import dom
from .screenshots import ScreenshotCapture

logger = logging.getLogger(__name__)
# MCP servers MUST NOT write to stdout
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

SNIPPET_LIMIT = 2000


def _matching_phrase(text: str) -> Optional[str]:
    return dom.find_phrase(text, CAPTCHA_PHRASES_EN, CAPTCHA_PHRASES_FA)


class CaptchaDetector:
    """Classifies the current page as challenge / no challenge."""

    def __init__(self, capture: Optional[ScreenshotCapture] = None):
        self._capture = capture

    async def detect(self, page) -> CaptchaResult:
        checks = (
            self._check_url,
            self._check_frame_urls,
            self._check_frame_text,
            self._check_selectors,
            self._check_body_text,
        )
        for check in checks:
            try:
                result = await check(page)
            except Exception as e:
                # Navigation mid-check, detached frames, closed page...
                logger.debug(f"{check.__name__} failed, treating as no match: {e}")
                continue
            if result is not None:
                logger.warning(f"Captcha detected by {result.method.value}: {result.match}")
                await self._attach_screenshot(page, result)
                return result
        return CaptchaResult.not_detected()

    # ── Tiers ────────────────────────────────────────────────────────────────

    async def _check_url(self, page) -> Optional[CaptchaResult]:
        url = page.url or ""
        if url and CHECKPOINT_URL_PATTERN.search(url):
            return CaptchaResult(detected=True, method=CaptchaMethod.URL, match=url)
        return None

    @staticmethod
    def _embedded_frames(page) -> list:
        main = page.main_frame
        return [f for f in page.frames if f is not main]

    async def _check_frame_urls(self, page) -> Optional[CaptchaResult]:
        # Frame URLs are readable even for cross-origin frames
        for frame in self._embedded_frames(page):
            frame_url = frame.url or ""
            if any(rx.search(frame_url) for rx in CHALLENGE_FRAME_PATTERNS):
                return CaptchaResult(
                    detected=True, method=CaptchaMethod.FRAME_URL, match=frame_url
                )
        return None

    async def _check_frame_text(self, page) -> Optional[CaptchaResult]:
        for frame in self._embedded_frames(page):
            try:
                text = await dom.body_text(frame)
            except Exception:
                continue  # cross-origin
            if _matching_phrase(text):
                return CaptchaResult(
                    detected=True,
                    method=CaptchaMethod.FRAME_TEXT,
                    match=frame.url or "",
                    snippet=text[:SNIPPET_LIMIT],
                )
        return None

    async def _check_selectors(self, page) -> Optional[CaptchaResult]:
        for selector in CAPTCHA_SELECTORS:
            try:
                element = await page.query_selector(selector)
                if not element:
                    continue
                if selector.startswith("iframe"):
                    return CaptchaResult(
                        detected=True, method=CaptchaMethod.SELECTOR, match=selector
                    )
                text = await dom.element_text(element)
                if _matching_phrase(text):
                    return CaptchaResult(
                        detected=True,
                        method=CaptchaMethod.SELECTOR_TEXT,
                        match=selector,
                        snippet=text[:SNIPPET_LIMIT],
                    )
            except Exception as e:
                logger.debug(f"Selector check error for {selector}: {e}")
        return None

    async def _check_body_text(self, page) -> Optional[CaptchaResult]:
        text = await dom.body_text(page)
        phrase = _matching_phrase(text)
        if phrase:
            return CaptchaResult(
                detected=True,
                method=CaptchaMethod.TEXT,
                match=phrase,
                snippet=text[:SNIPPET_LIMIT],
            )
        return None

    async def _attach_screenshot(self, page, result: CaptchaResult) -> None:
        if self._capture is None:
            return
        try:
            shot = await self._capture.capture(page, f"captcha-by-{result.method.value}")
        except Exception as e:
            logger.debug(f"Captcha screenshot failed: {e}")
            return
        if shot.success:
            result.screenshot = shot.url_path
