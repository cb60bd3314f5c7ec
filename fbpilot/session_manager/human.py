"""Human-like typing rhythm and incidental pointer movement."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

from ..config import TYPING_MAX_DELAY_MS, TYPING_MIN_DELAY_MS

logger = logging.getLogger(__name__)

BODY_BOX_JS = """() => {
  const el = document.querySelector("body");
  if (!el) return null;
  const rect = el.getBoundingClientRect();
  return { w: rect.width, h: rect.height };
}"""


class HumanPacer:
    """Paces all input sent to one page."""

    def __init__(
        self,
        page,
        min_delay_ms: int = TYPING_MIN_DELAY_MS,
        max_delay_ms: int = TYPING_MAX_DELAY_MS,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_delay_ms > max_delay_ms:
            raise ValueError("min_delay_ms must not exceed max_delay_ms")
        self.page = page
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def type_into(self, target, text: str) -> None:
        """Focus ``target`` (handle or selector) and type ``text`` one character at a time."""
        handle = await self.page.query_selector(target) if isinstance(target, str) else target
        if handle is None:
            raise LookupError(f"type_into: no element for {target!r}")
        await handle.focus()
        for ch in text:
            await self.page.keyboard.type(ch)
            await self._sleep(self._rng.uniform(self.min_delay_ms, self.max_delay_ms) / 1000)

    async def small_move(self) -> None:
        """Drift the pointer somewhere in the central 60% of the page body."""
        try:
            box = await self.page.evaluate(BODY_BOX_JS)
            if not box:
                return
            x = box["w"] * 0.2 + self._rng.random() * box["w"] * 0.6
            y = box["h"] * 0.2 + self._rng.random() * box["h"] * 0.6
            await self.page.mouse.move(int(x), int(y), steps=10)
        except Exception as e:
            logger.debug(f"small_move ignored: {e}")

    async def pause(self, min_ms: int, max_ms: int) -> float:
        """Sleep a random duration in [min_ms, max_ms]; returns the seconds slept."""
        seconds = self._rng.uniform(min_ms, max_ms) / 1000
        await self._sleep(seconds)
        return seconds
