"""Resolve a logical UI target to a visible element handle.

Each target kind owns an ordered list of strategies. The first strategy
that yields a visible element wins; order is priority, not collection.
Editable targets additionally get one broad scan of the document's
editable regions, ranked by how much they look like the target.

Not finding anything is a normal outcome: locate() returns None.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from ..config import LOCATOR_TIMEOUT_MS
from ..constants import (
    ADD_FRIEND_SELECTORS,
    MESSAGE_INPUT_KEYWORDS,
    MESSAGE_INPUT_SELECTORS,
    SEARCH_BOX_SELECTORS,
    SELECTORS,
)
from . import dom

logger = logging.getLogger(__name__)

# Per-strategy wait cap, the slice of the budget kept for the fallback scan,
# and how often the scan is repeated while that slice lasts
STRATEGY_CAP_MS = 2000
SCAN_RESERVE = 0.25
SCAN_POLL_MS = 300


class TargetKind(str, Enum):
    MESSAGE_INPUT = "message-input"
    SEARCH_BOX = "search-box"
    ADD_FRIEND_BUTTON = "add-friend-button"


@dataclass(frozen=True)
class SelectorStrategy:
    """Wait for ``selector`` to become visible, then take the first visible match."""

    name: str
    selector: str

    async def find(self, page, timeout_ms: float):
        try:
            await page.wait_for_selector(self.selector, state="visible", timeout=timeout_ms)
            # Playwright's notion of visible ignores aria-hidden subtrees
            return await dom.first_visible(page, self.selector)
        except PlaywrightError:
            # Timeouts and mid-navigation failures both mean "not this strategy"
            return None


@dataclass(frozen=True)
class Target:
    kind: TargetKind
    strategies: tuple
    scan_keywords: Optional[re.Pattern] = None


def _selectors(kind: TargetKind, selectors: list[str]) -> tuple:
    return tuple(
        SelectorStrategy(name=f"{kind.value}#{i}", selector=sel)
        for i, sel in enumerate(selectors)
    )


DEFAULT_TARGETS = {
    TargetKind.MESSAGE_INPUT: Target(
        TargetKind.MESSAGE_INPUT,
        _selectors(TargetKind.MESSAGE_INPUT, MESSAGE_INPUT_SELECTORS),
        scan_keywords=MESSAGE_INPUT_KEYWORDS,
    ),
    TargetKind.SEARCH_BOX: Target(
        TargetKind.SEARCH_BOX,
        _selectors(TargetKind.SEARCH_BOX, SEARCH_BOX_SELECTORS),
    ),
    TargetKind.ADD_FRIEND_BUTTON: Target(
        TargetKind.ADD_FRIEND_BUTTON,
        _selectors(TargetKind.ADD_FRIEND_BUTTON, ADD_FRIEND_SELECTORS),
    ),
}


async def score_candidate(handle, keywords: Optional[re.Pattern]) -> int:
    """Rank an editable candidate: textbox role > keyword label > plain editable."""
    role = await handle.get_attribute("role") or ""
    if role == "textbox" or await handle.get_attribute("data-lexical-editor") == "true":
        return 3
    label = await handle.get_attribute("aria-label") or ""
    placeholder = await handle.get_attribute("placeholder") or ""
    if keywords is not None and (keywords.search(label) or keywords.search(placeholder)):
        return 2
    return 1


class ElementLocator:
    """Runs the strategy cascade for one page. No retries; callers own retry policy."""

    def __init__(
        self,
        page,
        targets: Optional[dict] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.page = page
        self.targets = dict(DEFAULT_TARGETS if targets is None else targets)
        self.clock = clock
        self.sleep = sleep

    async def locate(self, kind: TargetKind, timeout_ms: float = LOCATOR_TIMEOUT_MS):
        """Return a visible handle for ``kind`` or None once the budget is spent."""
        target = self.targets[kind]
        start = self.clock()

        def remaining() -> float:
            return max(0.0, timeout_ms - (self.clock() - start) * 1000)

        strategy_budget = timeout_ms * (1 - SCAN_RESERVE) if target.scan_keywords else timeout_ms
        strategies = target.strategies
        for i, strategy in enumerate(strategies):
            left = strategy_budget - (timeout_ms - remaining())
            if left <= 0:
                break
            share = min(STRATEGY_CAP_MS, left / (len(strategies) - i))
            handle = await strategy.find(self.page, share)
            if handle is not None:
                logger.debug(f"Located {kind.value} via {strategy.name} ({strategy.selector})")
                return handle

        if target.scan_keywords is not None:
            # Keep rescanning until the budget is gone; late renders still count
            while True:
                handle = await self._scan(target)
                if handle is not None:
                    logger.debug(f"Located {kind.value} via editable scan")
                    return handle
                left = remaining()
                if left < 1:
                    break
                await self.sleep(min(SCAN_POLL_MS, left) / 1000)

        logger.info(f"No visible {kind.value} found within {timeout_ms:.0f}ms")
        return None

    async def _scan(self, target: Target):
        best, best_score = None, 0
        try:
            candidates = await self.page.query_selector_all(SELECTORS["editable_scan"])
        except Exception as e:
            logger.debug(f"Editable scan failed: {e}")
            return None
        for handle in candidates:
            if not await dom.is_visible(handle):
                continue
            try:
                score = await score_candidate(handle, target.scan_keywords)
            except Exception:
                continue
            # Strict '>' keeps document order among equal scores
            if score > best_score:
                best, best_score = handle, score
        return best
