"""Tests for the friend-request workflow.

Run: python -m pytest tests/test_friend_request.py -v
"""

from __future__ import annotations

import pytest

from fbpilot.constants import ADD_FRIEND_SELECTORS, FACEBOOK_SEARCH_PEOPLE_URL, SELECTORS
from fbpilot.models.results import ErrorKind
from tests.conftest import SESSION_KEY
from tests.fakes import FakeElement, FakePage


def _results_page(page: FakePage, *extra: FakeElement, on_click=None) -> FakeElement:
    """People-search results with an 'Add friend' button."""
    button = FakeElement(ADD_FRIEND_SELECTORS[0], text="Add friend", on_click=on_click)

    def on_goto(url: str) -> None:
        if url.startswith(FACEBOOK_SEARCH_PEOPLE_URL):
            page.add(button, *extra)

    page.on_goto = on_goto
    return button


def _control(text: str, visible: bool = True) -> FakeElement:
    return FakeElement(SELECTORS["control_button"], text=text, visible=visible)


@pytest.mark.asyncio
async def test_request_sent_and_confirmed(page, store, make_controller) -> None:
    """Click, see 'Cancel request', report confirmed, persist the session."""
    button = _results_page(page, on_click=lambda: page.add(_control("Cancel request")))

    result = await make_controller().send_friend_request("Jane Doe")

    assert result.success is True
    assert result.confirmed is True
    assert result.detail == {"profile": "Jane Doe"}
    assert button.clicks == 1
    assert page.gotos == [f"{FACEBOOK_SEARCH_PEOPLE_URL}?q=Jane+Doe"]
    assert store.load(SESSION_KEY).ok is True


@pytest.mark.asyncio
async def test_request_sent_unconfirmed(page, make_controller) -> None:
    """No confirmation text still counts as success, flagged unconfirmed."""
    button = _results_page(page)

    result = await make_controller().send_friend_request("Jane Doe")

    assert result.success is True
    assert result.confirmed is False
    assert "unconfirmed" in result.message
    assert button.clicks == 1


@pytest.mark.asyncio
async def test_persian_confirmation(page, make_controller) -> None:
    """Confirmation phrases are matched in Persian too."""
    _results_page(page, on_click=lambda: page.add(_control("لغو درخواست")))

    result = await make_controller().send_friend_request("سارا")

    assert result.confirmed is True


@pytest.mark.asyncio
async def test_already_connected_short_circuits(page, store, make_controller) -> None:
    """A visible 'Friends' control means success without clicking."""
    button = _results_page(page, _control("Friends"))

    result = await make_controller().send_friend_request("Jane Doe")

    assert result.success is True
    assert result.confirmed is True
    assert result.detail["already_connected"] is True
    assert button.clicks == 0
    assert store.load(SESSION_KEY).ok is False


@pytest.mark.asyncio
async def test_hidden_connected_label_is_ignored(page, make_controller) -> None:
    """Only visible controls count as connection indicators."""
    button = _results_page(page, _control("Friends", visible=False))

    await make_controller().send_friend_request("Jane Doe")

    assert button.clicks == 1


@pytest.mark.asyncio
async def test_add_friends_label_is_not_a_connection(page, make_controller) -> None:
    """'Friends' must be the whole label, not part of 'Add Friends'."""
    button = _results_page(page, _control("Add Friends"))

    await make_controller().send_friend_request("Jane Doe")

    assert button.clicks == 1


@pytest.mark.asyncio
async def test_missing_button(page, make_controller) -> None:
    """No add control: no_add_friend_button with the profile and a screenshot."""
    result = await make_controller().send_friend_request("Jane Doe")

    assert result.success is False
    assert result.error == ErrorKind.NO_ADD_FRIEND_BUTTON
    assert result.detail == {"profile": "Jane Doe"}
    assert "no-add-friend" in result.screenshot


@pytest.mark.asyncio
async def test_fault_is_contained(page, make_controller) -> None:
    """Exceptions surface as internal_fault."""

    def crash(url: str) -> None:
        raise RuntimeError("net::ERR_CONNECTION_RESET")

    page.on_goto = crash

    result = await make_controller().send_friend_request("Jane Doe")

    assert result.error == ErrorKind.INTERNAL_FAULT
    assert "sendFriendRequest-exception" in result.screenshot


@pytest.mark.asyncio
async def test_friend_request_is_throttled_with_messages(page, clock, make_controller) -> None:
    """Actions of any kind share the session's spacing."""
    _results_page(page)
    controller = make_controller()

    await controller.send_friend_request("Jane Doe")
    await controller.send_friend_request("John Roe")

    assert clock.sleeps == [pytest.approx(10.0)]
