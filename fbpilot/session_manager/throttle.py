"""Minimum spacing between consecutive actions on the same session."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..config import MIN_ACTION_INTERVAL_MS

logger = logging.getLogger(__name__)


class ActionThrottle:
    """Per-session-key action spacing. Sessions never delay each other."""

    def __init__(
        self,
        min_interval_ms: int = MIN_ACTION_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval_ms = min_interval_ms
        self._clock = clock
        self._sleep = sleep
        self._last_action_at: dict[str, float] = {}

    def last_action_at(self, session_key: str) -> Optional[float]:
        return self._last_action_at.get(session_key)

    async def throttle(self, session_key: str) -> float:
        """Wait out the rest of the interval, then stamp now. Returns seconds waited."""
        waited = 0.0
        last = self._last_action_at.get(session_key)
        if last is not None:
            elapsed_ms = (self._clock() - last) * 1000
            wait_ms = self.min_interval_ms - elapsed_ms
            if wait_ms > 0:
                logger.info(f"Throttling '{session_key}' for {wait_ms:.0f}ms")
                waited = wait_ms / 1000
                await self._sleep(waited)
        self._last_action_at[session_key] = self._clock()
        return waited
