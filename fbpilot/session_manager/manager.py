"""Driver HTTP/WebSocket service.

Runs as a lightweight local web server that exposes the session
controller to external callers (the MCP server, scripts, other hosts).

Endpoints:
    POST /start           - Launch browser, restore saved session
    POST /stop            - Save session, close browser
    GET  /status          - Driver state
    GET  /health          - Liveness (no auth)
    GET  /sessions        - Saved session keys
    POST /login           - {email, password, maxRetries?}
    POST /send-message    - {recipient, text}
    POST /friend-request  - {recipient | name}
    POST /upload-session  - {sessionName?, session}
    GET  /ws              - WebSocket command dispatch: {id, method, params}
    GET  /screenshots/... - Diagnostic screenshots

Every endpoint except /health requires the shared AUTH_TOKEN (if set),
as ``Authorization: Bearer <token>`` or ``?token=<token>``.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from aiohttp import WSMsgType, web
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..config import (
    AUTH_TOKEN,
    DRIVER_HOST,
    DRIVER_PORT,
    SCREENSHOTS_DIR,
    SESSION_NAME,
    SESSIONS_DIR,
    ensure_dirs,
)
from ..models.results import ActionResult, ErrorKind
from ..models.session import DriverStatus, SessionRecord
from .browser import BrowserSession
from .controller import SessionController
from .screenshots import ScreenshotCapture
from .store import SessionStore, restore_page
from .throttle import ActionThrottle

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

PUBLIC_PATHS = {"/health"}


class CommandError(Exception):
    """A command that cannot be dispatched (unknown method, bad params)."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INVALID_REQUEST):
        super().__init__(message)
        self.kind = kind


# ── Command payloads ─────────────────────────────────────────────────────────


class LoginParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    max_retries: Optional[int] = Field(default=None, alias="maxRetries", ge=0)


class SendMessageParams(BaseModel):
    recipient: str = Field(min_length=1, validation_alias=AliasChoices("recipient", "to"))
    text: str = Field(validation_alias=AliasChoices("text", "message"))


class FriendRequestParams(BaseModel):
    recipient: str = Field(
        min_length=1, validation_alias=AliasChoices("recipient", "name", "profileName")
    )


async def _cmd_login(controller: SessionController, params: dict) -> ActionResult:
    p = LoginParams.model_validate(params)
    return await controller.login(p.email, p.password, p.max_retries)


async def _cmd_send_message(controller: SessionController, params: dict) -> ActionResult:
    p = SendMessageParams.model_validate(params)
    return await controller.send_message(p.recipient, p.text)


async def _cmd_friend_request(controller: SessionController, params: dict) -> ActionResult:
    p = FriendRequestParams.model_validate(params)
    return await controller.send_friend_request(p.recipient)


COMMANDS = {
    "login": _cmd_login,
    "sendMessage": _cmd_send_message,
    "send_message": _cmd_send_message,
    "sendFriendRequest": _cmd_friend_request,
    "send_friend_request": _cmd_friend_request,
}


# ── Manager ──────────────────────────────────────────────────────────────────


class SessionManager:
    """Owns the browser and controller; serializes workflow calls."""

    def __init__(
        self,
        browser: Optional[BrowserSession] = None,
        store: Optional[SessionStore] = None,
        capture: Optional[ScreenshotCapture] = None,
        session_name: str = SESSION_NAME,
        throttle: Optional[ActionThrottle] = None,
    ):
        self.browser = browser or BrowserSession()
        self.store = store or SessionStore(SESSIONS_DIR)
        self.capture = capture or ScreenshotCapture(SCREENSHOTS_DIR)
        self.session_name = session_name
        # Outlives browser restarts so a restart cannot bypass the spacing
        self.throttle = throttle or ActionThrottle()
        self.controller: Optional[SessionController] = None
        self._lock = asyncio.Lock()
        self._last_action_at: Optional[str] = None
        self._last_result: Optional[dict] = None

    async def start(self, headless: Optional[bool] = None) -> dict:
        async with self._lock:
            if self.controller is not None:
                return {"state": "ready", "message": "Browser already running."}
            page = await self.browser.start(headless=headless)
            self.controller = SessionController(
                page,
                self.store,
                self.capture,
                session_name=self.session_name,
                throttle=self.throttle,
            )
            loaded = await self.controller.init_session()
        if loaded.ok:
            return {"state": "ready", "message": f"Session '{self.session_name}' restored."}
        return {"state": "ready", "message": f"Browser ready; no session restored ({loaded.error})."}

    async def stop(self) -> None:
        async with self._lock:
            if self.controller is not None:
                await self.controller.persist_session()
            self.controller = None
            await self.browser.stop()

    async def status(self) -> DriverStatus:
        if self.controller is None:
            state = "not_running"
        else:
            state = "busy" if self._lock.locked() else "ready"
        page = self.browser.page
        return DriverStatus(
            is_running=self.browser.is_running,
            state=state,
            session_name=self.session_name,
            cookie_count=await self.browser.cookie_count(),
            current_url=page.url if page is not None else None,
            last_action_at=self._last_action_at,
            last_result=self._last_result,
        )

    async def dispatch(self, method: str, params: Optional[dict]) -> ActionResult:
        """Route ``method`` to the controller. Raises CommandError for bad input."""
        command = COMMANDS.get(method)
        if command is None:
            raise CommandError(f"Unknown method: {method}")
        if params is not None and not isinstance(params, dict):
            raise CommandError("params must be an object")
        async with self._lock:
            # stop() may have cleared the controller while we waited for the lock
            controller = self.controller
            if controller is None:
                return ActionResult.fail(
                    ErrorKind.NOT_READY, message="Browser not started. Call /start first."
                )
            try:
                result = await command(controller, params or {})
            except ValidationError as e:
                raise CommandError(f"Invalid params for {method}: {e}") from e
        self._last_action_at = datetime.now(timezone.utc).isoformat()
        self._last_result = result.to_wire()
        return result

    async def upload_session(self, name: str, payload: dict) -> str:
        """Store an externally captured session; apply it if it is the live one."""
        try:
            record = SessionRecord.model_validate(payload)
            path = self.store.save(record, name)
        except (ValidationError, ValueError) as e:
            raise CommandError(f"Invalid session: {e}") from e
        if self.controller is not None and name == self.session_name:
            async with self._lock:
                await restore_page(self.controller.page, record)
        logger.info(f"Session '{name}' uploaded to {path}")
        return str(path)


# ── HTTP Handlers ────────────────────────────────────────────────────────────

MANAGER_KEY = web.AppKey("manager", SessionManager)


def _error(kind: ErrorKind, detail: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": kind.value, "detail": detail}, status=status)


async def _read_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CommandError(f"Malformed JSON: {e}") from e
    if not isinstance(body, dict):
        raise CommandError("Request body must be a JSON object")
    return body


def _status_for(result: ActionResult) -> int:
    if result.success:
        return 200
    return 503 if result.error == ErrorKind.NOT_READY else 400


async def _run_command(request: web.Request, method: str) -> web.Response:
    mgr = request.app[MANAGER_KEY]
    try:
        body = await _read_body(request)
        result = await mgr.dispatch(method, body)
    except CommandError as e:
        return _error(e.kind, str(e), 400)
    except Exception as e:
        logger.error(f"{method} failed: {e}", exc_info=True)
        return _error(ErrorKind.INTERNAL_FAULT, str(e), 500)
    return web.json_response(result.to_wire(), status=_status_for(result))


async def handle_login(request: web.Request) -> web.Response:
    return await _run_command(request, "login")


async def handle_send_message(request: web.Request) -> web.Response:
    return await _run_command(request, "sendMessage")


async def handle_friend_request(request: web.Request) -> web.Response:
    return await _run_command(request, "sendFriendRequest")


async def handle_start(request: web.Request) -> web.Response:
    mgr = request.app[MANAGER_KEY]
    try:
        body = await _read_body(request)
        result = await mgr.start(headless=body.get("headless"))
    except CommandError as e:
        return _error(e.kind, str(e), 400)
    except Exception as e:
        logger.error(f"Failed to start browser: {e}", exc_info=True)
        return web.json_response({"state": "error", "message": f"Failed to start browser: {e}"}, status=500)
    return web.json_response(result)


async def handle_stop(request: web.Request) -> web.Response:
    try:
        await request.app[MANAGER_KEY].stop()
    except Exception as e:
        logger.error(f"Failed to stop browser: {e}", exc_info=True)
        return _error(ErrorKind.INTERNAL_FAULT, str(e), 500)
    return web.json_response({"message": "Session saved and browser stopped."})


async def handle_status(request: web.Request) -> web.Response:
    try:
        status = await request.app[MANAGER_KEY].status()
    except Exception as e:
        logger.error(f"Status failed: {e}", exc_info=True)
        return _error(ErrorKind.INTERNAL_FAULT, str(e), 500)
    return web.json_response(status.model_dump(mode="json"))


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


async def handle_sessions(request: web.Request) -> web.Response:
    try:
        sessions = request.app[MANAGER_KEY].store.list_sessions()
    except OSError as e:
        logger.error(f"Could not list sessions: {e}")
        return _error(ErrorKind.INTERNAL_FAULT, str(e), 500)
    return web.json_response({"sessions": sessions})


async def handle_upload_session(request: web.Request) -> web.Response:
    mgr = request.app[MANAGER_KEY]
    try:
        body = await _read_body(request)
        session = body.get("session")
        if not isinstance(session, dict):
            raise CommandError("no_session")
        path = await mgr.upload_session(body.get("sessionName") or mgr.session_name, session)
    except CommandError as e:
        return _error(e.kind, str(e), 400)
    except Exception as e:
        logger.error(f"Session upload failed: {e}", exc_info=True)
        return _error(ErrorKind.INTERNAL_FAULT, str(e), 500)
    return web.json_response({"success": True, "file": path})


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    """Streaming dispatch: one JSON command per text frame, one reply per command."""
    mgr = request.app[MANAGER_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    async for msg in ws:
        if msg.type != WSMsgType.TEXT:
            continue
        msg_id = None
        try:
            payload = json.loads(msg.data)
            if not isinstance(payload, dict) or "method" not in payload:
                raise CommandError("Expected {id, method, params}")
            msg_id = payload.get("id")
            result = await mgr.dispatch(payload["method"], payload.get("params"))
        except json.JSONDecodeError as e:
            await ws.send_json({"id": None, "error": ErrorKind.INVALID_REQUEST.value, "detail": str(e)})
            continue
        except CommandError as e:
            await ws.send_json({"id": msg_id, "error": e.kind.value, "detail": str(e)})
            continue
        except Exception as e:
            logger.error(f"WebSocket command failed: {e}", exc_info=True)
            await ws.send_json({"id": msg_id, "error": ErrorKind.INTERNAL_FAULT.value, "detail": str(e)})
            continue

        if result.success:
            await ws.send_json({"id": msg_id, "result": result.to_wire()})
        else:
            await ws.send_json({"id": msg_id, "error": result.error.value, "result": result.to_wire()})

    return ws


# ── App Factory ──────────────────────────────────────────────────────────────


def token_middleware(token: str):
    """Shared-secret check; a blank token disables auth."""

    @web.middleware
    async def middleware(request: web.Request, handler):
        if token and request.path not in PUBLIC_PATHS:
            supplied = request.query.get("token", "")
            auth = request.headers.get("Authorization", "")
            if auth.startswith("Bearer "):
                supplied = auth[len("Bearer "):]
            if not hmac.compare_digest(supplied.encode(), token.encode()):
                return web.json_response({"success": False, "error": "unauthorized"}, status=401)
        return await handler(request)

    return middleware


async def on_cleanup(app: web.Application):
    await app[MANAGER_KEY].stop()
    logger.info("Driver stopped.")


def create_app(
    manager: Optional[SessionManager] = None, auth_token: str = AUTH_TOKEN
) -> web.Application:
    mgr = manager or SessionManager()
    app = web.Application(middlewares=[token_middleware(auth_token)])
    app[MANAGER_KEY] = mgr
    app.on_cleanup.append(on_cleanup)

    app.router.add_post("/start", handle_start)
    app.router.add_post("/stop", handle_stop)
    app.router.add_get("/status", handle_status)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/sessions", handle_sessions)
    app.router.add_post("/login", handle_login)
    app.router.add_post("/send-message", handle_send_message)
    app.router.add_post("/friend-request", handle_friend_request)
    app.router.add_post("/upload-session", handle_upload_session)
    app.router.add_get("/ws", handle_ws)

    mgr.capture.base_dir.mkdir(parents=True, exist_ok=True)
    app.router.add_static("/screenshots", mgr.capture.base_dir)

    return app


def main():
    """Run the driver as a standalone HTTP service."""
    ensure_dirs()
    app = create_app()
    logger.info(f"Driver listening on {DRIVER_HOST}:{DRIVER_PORT}")
    web.run_app(app, host=DRIVER_HOST, port=DRIVER_PORT)


if __name__ == "__main__":
    main()
