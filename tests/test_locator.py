"""Tests for the ElementLocator strategy cascade and editable fallback scan.

Run: python -m pytest tests/test_locator.py -v
"""

from __future__ import annotations

import pytest

from fbpilot.constants import ADD_FRIEND_SELECTORS, MESSAGE_INPUT_SELECTORS, SELECTORS
from fbpilot.constants import MESSAGE_INPUT_KEYWORDS
from fbpilot.session_manager.locator import (
    STRATEGY_CAP_MS,
    ElementLocator,
    TargetKind,
    score_candidate,
)
from tests.fakes import FakeClock, FakeElement, FakePage

EDITABLE = SELECTORS["editable_scan"]


def _locator(page: FakePage, clock: FakeClock) -> ElementLocator:
    return ElementLocator(page, clock=clock, sleep=clock.sleep)


# -- Cascade order -----------------------------------------------------------


@pytest.mark.asyncio
async def test_first_strategy_in_priority_order_wins(page, clock) -> None:
    """When several strategies would match, the highest-priority one is used."""
    later = FakeElement(MESSAGE_INPUT_SELECTORS[3], attrs={"aria-label": "Message"})
    first = FakeElement(MESSAGE_INPUT_SELECTORS[0])
    page.add(later, first)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is first


@pytest.mark.asyncio
async def test_hidden_match_falls_through_to_next_strategy(page, clock) -> None:
    """Hidden candidates are never returned."""
    hidden = FakeElement(MESSAGE_INPUT_SELECTORS[0], visible=False)
    shown = FakeElement(MESSAGE_INPUT_SELECTORS[1])
    page.add(hidden, shown)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is shown


@pytest.mark.asyncio
async def test_add_friend_button_found_by_text_strategy(page, clock) -> None:
    """Later strategies are reached when earlier ones time out."""
    button = FakeElement(ADD_FRIEND_SELECTORS[3], text="Add friend")
    page.add(button)

    found = await _locator(page, clock).locate(TargetKind.ADD_FRIEND_BUTTON, 10000)

    assert found is button


# -- Fallback scan -----------------------------------------------------------


@pytest.mark.asyncio
async def test_scan_prefers_keyword_labelled_editable(page, clock) -> None:
    """The scan ranks a 'message' labelled region over a bare one."""
    bare = FakeElement(EDITABLE)
    labelled = FakeElement(EDITABLE, attrs={"aria-label": "Write a message..."})
    page.add(bare, labelled)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is labelled


@pytest.mark.asyncio
async def test_scan_prefers_textbox_role_and_keeps_document_order(page, clock) -> None:
    """Textbox role beats labels; ties go to the earlier element."""
    labelled = FakeElement(EDITABLE, attrs={"placeholder": "Message"})
    box_a = FakeElement(EDITABLE, attrs={"role": "textbox"})
    box_b = FakeElement(EDITABLE, attrs={"role": "textbox"})
    hidden_box = FakeElement(EDITABLE, attrs={"role": "textbox"}, visible=False)
    page.add(hidden_box, labelled, box_a, box_b)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is box_a


@pytest.mark.asyncio
async def test_search_box_has_no_fallback_scan(page, clock) -> None:
    """Editable regions never stand in for the search box."""
    page.add(FakeElement(EDITABLE, attrs={"role": "textbox"}))

    found = await _locator(page, clock).locate(TargetKind.SEARCH_BOX, 5000)

    assert found is None


# -- Budget ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_not_found_returns_none_within_budget(page, clock) -> None:
    """Nothing visible means None, not an exception, and the budget holds."""
    start = clock()

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 6000)

    assert found is None
    assert clock() - start == pytest.approx(6.0, abs=1e-3)
    assert page.wait_calls
    assert all(timeout <= STRATEGY_CAP_MS for _, timeout in page.wait_calls)


class _LateComposerPage(FakePage):
    """Renders a textbox editable once the clock passes ``appear_at``."""

    def __init__(self, clock: FakeClock, appear_at: float) -> None:
        super().__init__(clock=clock)
        self.appear_at = appear_at
        self.late = FakeElement(EDITABLE, attrs={"role": "textbox"})

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        if self.clock() >= self.appear_at and self.late not in self.elements:
            self.add(self.late)
        return await super().query_selector_all(selector)


@pytest.mark.asyncio
async def test_scan_keeps_polling_for_late_render(clock) -> None:
    """An editable that appears after the strategies time out is still found."""
    start = clock()
    page = _LateComposerPage(clock, appear_at=start + 8.0)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is page.late
    assert 8.0 <= clock() - start <= 10.0


@pytest.mark.asyncio
async def test_scan_gives_up_at_budget_end(clock) -> None:
    """A render after the budget is not waited for."""
    start = clock()
    page = _LateComposerPage(clock, appear_at=start + 11.0)

    found = await _locator(page, clock).locate(TargetKind.MESSAGE_INPUT, 10000)

    assert found is None
    assert clock() - start == pytest.approx(10.0, abs=1e-3)


@pytest.mark.asyncio
async def test_exhausted_budget_skips_remaining_strategies(page, clock) -> None:
    """Once the strategy budget is gone no further selector is waited on."""
    found = await _locator(page, clock).locate(TargetKind.ADD_FRIEND_BUTTON, 1000)

    assert found is None
    assert sum(timeout for _, timeout in page.wait_calls) <= 1000 + 1e-6


# -- Scoring -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_score_candidate_levels() -> None:
    """Textbox/lexical > keyword label > anything else."""
    assert await score_candidate(FakeElement(attrs={"role": "textbox"}), MESSAGE_INPUT_KEYWORDS) == 3
    assert (
        await score_candidate(
            FakeElement(attrs={"data-lexical-editor": "true"}), MESSAGE_INPUT_KEYWORDS
        )
        == 3
    )
    assert await score_candidate(FakeElement(attrs={"aria-label": "پیام"}), MESSAGE_INPUT_KEYWORDS) == 2
    assert await score_candidate(FakeElement(attrs={"aria-label": "Comment"}), MESSAGE_INPUT_KEYWORDS) == 1
    assert await score_candidate(FakeElement(attrs={"aria-label": "Message"}), None) == 1
