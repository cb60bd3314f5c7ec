"""Pydantic models for persisted session state and driver status."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Cookie(BaseModel):
    """One browser cookie, in Playwright's field naming on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float = -1
    http_only: bool = Field(default=False, alias="httpOnly")
    secure: bool = False
    same_site: Optional[str] = Field(default=None, alias="sameSite")

    def to_playwright(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SessionRecord(BaseModel):
    """Authentication state for one session key: cookies plus localStorage.

    Serialized as ``{"cookies": [...], "localStorage": {...}, "savedAt": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    cookies: list[Cookie] = Field(default_factory=list)
    local_storage: dict[str, str] = Field(default_factory=dict, alias="localStorage")
    saved_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias="savedAt"
    )

    def to_file_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LoadResult(BaseModel):
    """Structured outcome of SessionStore.load; never an exception."""

    ok: bool
    data: Optional[SessionRecord] = None
    error: Optional[str] = None
    file: Optional[str] = None


class DriverStatus(BaseModel):
    """Current state of the browser driver."""

    is_running: bool = False
    state: str = "not_running"  # not_running, ready, busy
    session_name: str = ""
    cookie_count: int = 0
    current_url: Optional[str] = None
    last_action_at: Optional[str] = None
    last_result: Optional[dict] = None
    message: str = ""
