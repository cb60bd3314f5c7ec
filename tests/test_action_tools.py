"""Tests for the MCP tool functions that call the driver over HTTP.

Run: python -m pytest tests/test_action_tools.py -v
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from fbpilot.tools import action_tools
from fbpilot.tools.action_tools import (
    login,
    send_friend_request,
    send_message,
    session_status,
    start_session,
    stop_session,
)

BASE = action_tools.DRIVER_URL


@pytest.fixture(autouse=True)
def _token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(action_tools, "AUTH_TOKEN", "tok")


# -- Session tools -------------------------------------------------------------


@pytest.mark.asyncio
@respx.mock
async def test_start_session_sends_headless_and_token() -> None:
    """POST /start carries the flag and the bearer token."""
    route = respx.post(f"{BASE}/start").mock(
        return_value=httpx.Response(200, json={"state": "ready", "message": "Session 'default' restored."})
    )

    text = await start_session(headless=True)

    assert text == "Driver ready. Session 'default' restored."
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"headless": True}


@pytest.mark.asyncio
@respx.mock
async def test_session_status_renders_json() -> None:
    """Status is pretty-printed JSON."""
    respx.get(f"{BASE}/status").mock(
        return_value=httpx.Response(200, json={"is_running": True, "state": "ready"})
    )

    text = await session_status()

    assert json.loads(text) == {"is_running": True, "state": "ready"}


@pytest.mark.asyncio
@respx.mock
async def test_stop_session_message() -> None:
    respx.post(f"{BASE}/stop").mock(
        return_value=httpx.Response(200, json={"message": "Session saved and browser stopped."})
    )

    assert await stop_session() == "Session saved and browser stopped."


@pytest.mark.asyncio
@respx.mock
async def test_unreachable_driver() -> None:
    """Connection errors become a readable hint, not an exception."""
    respx.get(f"{BASE}/status").mock(side_effect=httpx.ConnectError("refused"))

    text = await session_status()

    assert text.startswith("Error: Driver is not reachable")


@pytest.mark.asyncio
@respx.mock
async def test_unauthorized() -> None:
    """A 401 surfaces the driver's error code."""
    respx.post(f"{BASE}/stop").mock(
        return_value=httpx.Response(401, json={"success": False, "error": "unauthorized"})
    )

    assert await stop_session() == "Error: unauthorized"


# -- Action tools --------------------------------------------------------------


@pytest.mark.asyncio
@respx.mock
async def test_login_already_logged_in() -> None:
    """The already-logged-in flag gets its own wording."""
    route = respx.post(f"{BASE}/login").mock(
        return_value=httpx.Response(
            200, json={"success": True, "error": None, "already_logged_in": True, "message": "Already logged in"}
        )
    )

    text = await login("a@b.c", "pw", max_retries=1)

    assert "Already logged in" in text
    assert json.loads(route.calls.last.request.content) == {
        "email": "a@b.c",
        "password": "pw",
        "maxRetries": 1,
    }


@pytest.mark.asyncio
@respx.mock
async def test_send_message_failure_includes_code_and_screenshot() -> None:
    """Failures show the error code, detail and screenshot path."""
    respx.post(f"{BASE}/send-message").mock(
        return_value=httpx.Response(
            400,
            json={
                "success": False,
                "error": "no_message_input",
                "screenshot": "/screenshots/2026-10-19/no-message-input-1.png",
            },
        )
    )

    text = await send_message("Jane Doe", "hi")

    assert text.startswith("Failed (no_message_input)")
    assert "/screenshots/2026-10-19/no-message-input-1.png" in text


@pytest.mark.asyncio
@respx.mock
async def test_send_friend_request_success() -> None:
    route = respx.post(f"{BASE}/friend-request").mock(
        return_value=httpx.Response(
            200,
            json={"success": True, "error": None, "message": "Friend request sent and confirmed", "confirmed": True},
        )
    )

    assert await send_friend_request("Jane Doe") == "Friend request sent and confirmed"
    assert json.loads(route.calls.last.request.content) == {"recipient": "Jane Doe"}


@pytest.mark.asyncio
@respx.mock
async def test_captcha_detail_is_rendered() -> None:
    """Structured detail is shown as JSON."""
    respx.post(f"{BASE}/login").mock(
        return_value=httpx.Response(
            400,
            json={
                "success": False,
                "error": "captcha_detected",
                "message": "Captcha persisted after maximum retries",
                "detail": {"detected": True, "method": "url"},
            },
        )
    )

    text = await login("a@b.c", "pw")

    assert "captcha_detected" in text
    assert '"method": "url"' in text
