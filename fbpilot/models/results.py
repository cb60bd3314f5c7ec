"""Pydantic models for detection results, login outcomes, and action envelopes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, model_validator


class ErrorKind(str, Enum):
    """Machine-readable failure codes returned to callers."""

    NOT_LOGGED_IN = "not_logged_in"
    CAPTCHA_DETECTED = "captcha_detected"
    INVALID_CREDENTIALS = "invalid_credentials"
    TIMEOUT = "timeout"
    NO_MESSAGE_INPUT = "no_message_input"
    NO_ADD_FRIEND_BUTTON = "no_add_friend_button"
    NO_CLICKABLE_ROW = "no_clickable_row"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    UNKNOWN_OUTCOME = "unknown_outcome"
    INTERNAL_FAULT = "internal_fault"
    # Raised by the command surface, never by the controller
    NOT_READY = "not_ready"
    INVALID_REQUEST = "invalid_request"


class CaptchaMethod(str, Enum):
    """Which detection tier produced a positive match."""

    URL = "url"
    FRAME_URL = "frame_url"
    FRAME_TEXT = "frame_text"
    SELECTOR = "selector"
    SELECTOR_TEXT = "selector_text"
    TEXT = "text"
    NONE = "none"


class CaptchaResult(BaseModel):
    """Outcome of one captcha/checkpoint inspection."""

    detected: bool = False
    method: CaptchaMethod = CaptchaMethod.NONE
    match: Optional[str] = None
    snippet: Optional[str] = None
    screenshot: Optional[str] = None

    @model_validator(mode="after")
    def _negative_has_no_match(self) -> "CaptchaResult":
        if not self.detected and (self.method != CaptchaMethod.NONE or self.match is not None):
            raise ValueError("a negative captcha result carries no method or match")
        return self

    @classmethod
    def not_detected(cls) -> "CaptchaResult":
        return cls()


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    ALREADY_LOGGED_IN = "already_logged_in"
    CAPTCHA = "captcha"
    INVALID_CREDENTIALS = "invalid_credentials"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class LoginOutcome(BaseModel):
    """Classification of the page after one login attempt.

    Only the field matching ``kind`` is populated: ``captcha`` for CAPTCHA,
    ``snippet`` for INVALID_CREDENTIALS, ``raw`` for UNKNOWN.
    """

    kind: OutcomeKind
    captcha: Optional[CaptchaResult] = None
    snippet: Optional[str] = None
    raw: Optional[Any] = None

    @classmethod
    def success(cls) -> "LoginOutcome":
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def already_logged_in(cls) -> "LoginOutcome":
        return cls(kind=OutcomeKind.ALREADY_LOGGED_IN)

    @classmethod
    def captcha_detected(cls, captcha: CaptchaResult) -> "LoginOutcome":
        return cls(kind=OutcomeKind.CAPTCHA, captcha=captcha)

    @classmethod
    def invalid_credentials(cls, snippet: str) -> "LoginOutcome":
        return cls(kind=OutcomeKind.INVALID_CREDENTIALS, snippet=snippet)

    @classmethod
    def timeout(cls) -> "LoginOutcome":
        return cls(kind=OutcomeKind.TIMEOUT)

    @classmethod
    def unknown(cls, raw: Any) -> "LoginOutcome":
        return cls(kind=OutcomeKind.UNKNOWN, raw=raw)


class ActionResult(BaseModel):
    """Uniform envelope returned by every public controller operation."""

    success: bool
    error: Optional[ErrorKind] = None
    detail: Optional[Any] = None
    screenshot: Optional[str] = None
    message: str = ""

    # Workflow-specific flags
    already_logged_in: Optional[bool] = None
    confirmed: Optional[bool] = None

    @model_validator(mode="after")
    def _success_has_no_error(self) -> "ActionResult":
        if self.success and self.error is not None:
            raise ValueError("a successful result carries no error")
        return self

    @classmethod
    def ok(cls, message: str = "", **fields: Any) -> "ActionResult":
        return cls(success=True, message=message, **fields)

    @classmethod
    def fail(
        cls,
        error: ErrorKind,
        detail: Any = None,
        screenshot: Optional[str] = None,
        message: str = "",
    ) -> "ActionResult":
        return cls(
            success=False, error=error, detail=detail, screenshot=screenshot, message=message
        )

    def to_wire(self) -> dict:
        """JSON-ready dict without unset optional fields (``error`` is always present)."""
        data = self.model_dump(mode="json", exclude_none=True)
        data["error"] = data.get("error")
        return data


class CaptureResult(BaseModel):
    """Result of a diagnostic screenshot attempt."""

    success: bool
    path: Optional[str] = None
    url_path: Optional[str] = None
    error: Optional[str] = None
