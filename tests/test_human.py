"""Tests for HumanPacer typing rhythm, pointer drift and pauses.

Run: python -m pytest tests/test_human.py -v
"""

from __future__ import annotations

import random

import pytest

from fbpilot.session_manager.human import HumanPacer
from tests.fakes import FakeElement, FakePage, RecordingSleep


@pytest.mark.asyncio
async def test_type_into_handle_one_character_at_a_time() -> None:
    """Each character is typed separately with a 70-140 ms gap."""
    page = FakePage()
    box = FakeElement("#email")
    page.add(box)
    sleep = RecordingSleep()

    await HumanPacer(page, rng=random.Random(3), sleep=sleep).type_into(box, "hi there")

    assert box.typed == "hi there"
    assert len(sleep.calls) == len("hi there")
    assert all(0.07 <= s <= 0.14 for s in sleep.calls)


@pytest.mark.asyncio
async def test_type_into_selector_focuses_match() -> None:
    """A selector string is resolved against the page before typing."""
    page = FakePage()
    field = FakeElement("#pass")
    page.add(field)

    await HumanPacer(page, sleep=RecordingSleep()).type_into("#pass", "s3cret")

    assert page.focused is field
    assert field.typed == "s3cret"


@pytest.mark.asyncio
async def test_type_into_missing_selector_raises() -> None:
    """Typing into nothing is an error, not a silent no-op."""
    page = FakePage()

    with pytest.raises(LookupError):
        await HumanPacer(page, sleep=RecordingSleep()).type_into("#missing", "x")
    assert page.stray_typing == ""


def test_inverted_delay_bounds_rejected() -> None:
    """min_delay_ms above max_delay_ms is a configuration error."""
    with pytest.raises(ValueError):
        HumanPacer(FakePage(), min_delay_ms=200, max_delay_ms=100)


@pytest.mark.asyncio
async def test_small_move_stays_in_central_region() -> None:
    """Pointer lands in the middle 60% of the body box with 10 steps."""
    page = FakePage()
    pacer = HumanPacer(page, rng=random.Random(11), sleep=RecordingSleep())

    for _ in range(20):
        await pacer.small_move()

    assert len(page.mouse.moves) == 20
    for x, y, steps in page.mouse.moves:
        assert 256 <= x <= 1024
        assert 160 <= y <= 640
        assert steps == 10


@pytest.mark.asyncio
async def test_small_move_swallows_page_errors() -> None:
    """Cosmetic movement never fails the caller."""

    class ClosedPage(FakePage):
        async def evaluate(self, script, arg=None):
            raise RuntimeError("Target page, context or browser has been closed")

    page = ClosedPage()
    await HumanPacer(page, sleep=RecordingSleep()).small_move()

    assert page.mouse.moves == []


@pytest.mark.asyncio
async def test_pause_within_bounds() -> None:
    """pause() sleeps a duration inside the requested range and reports it."""
    sleep = RecordingSleep()
    pacer = HumanPacer(FakePage(), rng=random.Random(5), sleep=sleep)

    slept = await pacer.pause(1000, 3000)

    assert 1.0 <= slept <= 3.0
    assert sleep.calls == [slept]
