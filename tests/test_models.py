"""Tests for result and session model invariants.

Run: python -m pytest tests/test_models.py -v
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fbpilot.models.results import ActionResult, CaptchaMethod, CaptchaResult, ErrorKind
from fbpilot.models.session import Cookie


def test_success_cannot_carry_error() -> None:
    with pytest.raises(ValidationError):
        ActionResult(success=True, error=ErrorKind.TIMEOUT)


def test_negative_captcha_cannot_carry_method() -> None:
    with pytest.raises(ValidationError):
        CaptchaResult(detected=False, method=CaptchaMethod.URL)


def test_wire_format_uses_codes_and_keeps_error_key() -> None:
    """Enums serialize to their codes; unset optionals are dropped."""
    ok = ActionResult.ok("Message sent").to_wire()
    failed = ActionResult.fail(ErrorKind.NO_CLICKABLE_ROW, screenshot="/screenshots/a.png").to_wire()

    assert ok == {"success": True, "error": None, "message": "Message sent"}
    assert failed["error"] == "no_clickable_row"
    assert failed["screenshot"] == "/screenshots/a.png"
    assert "detail" not in failed


def test_cookie_round_trips_playwright_names() -> None:
    """Cookies accept and emit Playwright's camelCase keys."""
    cookie = Cookie.model_validate(
        {"name": "xs", "value": "1", "httpOnly": True, "sameSite": "Lax", "domain": ".facebook.com"}
    )

    out = cookie.to_playwright()

    assert out["httpOnly"] is True
    assert out["sameSite"] == "Lax"
    assert "http_only" not in out
