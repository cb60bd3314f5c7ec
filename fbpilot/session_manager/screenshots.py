"""Diagnostic screenshots for failure paths."""

from __future__ import annotations

import logging
import time
from datetime import date
from pathlib import Path

from ..models.results import CaptureResult

logger = logging.getLogger(__name__)


class ScreenshotCapture:
    """Writes full-page screenshots under ``<base_dir>/<YYYY-MM-DD>/``.

    ``url_path`` in the result is relative to the ``/screenshots`` static
    route of the command surface.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    async def capture(self, page, label: str = "screenshot") -> CaptureResult:
        day = date.today().isoformat()
        filename = f"{label}-{int(time.time() * 1000)}.png"
        target = self.base_dir / day / filename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(target), full_page=True)
        except Exception as e:
            logger.debug(f"Screenshot '{label}' failed: {e}")
            return CaptureResult(success=False, error=str(e))
        logger.info(f"Screenshot saved: {target}")
        return CaptureResult(
            success=True, path=str(target), url_path=f"/screenshots/{day}/{filename}"
        )
