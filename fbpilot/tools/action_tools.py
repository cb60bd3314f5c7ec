"""MCP tools that drive the Facebook session through the driver service."""

from __future__ import annotations

import json

import httpx

from ..config import AUTH_TOKEN, DRIVER_URL


async def _call_driver(method: str, path: str, json_body: dict | None = None) -> dict:
    """Make a request to the driver HTTP service."""
    url = f"{DRIVER_URL}{path}"
    headers = {"Authorization": f"Bearer {AUTH_TOKEN}"} if AUTH_TOKEN else {}
    try:
        async with httpx.AsyncClient(timeout=180.0, headers=headers) as client:
            if method == "GET":
                resp = await client.get(url)
            else:
                resp = await client.post(url, json=json_body or {})

            try:
                data = resp.json()
            except ValueError:
                return {"error": f"HTTP {resp.status_code}"}
            if resp.status_code >= 400 and "error" not in data:
                data["error"] = f"HTTP {resp.status_code}"
            return data

    except httpx.ConnectError:
        return {
            "error": "Driver is not reachable at "
            f"{DRIVER_URL}. It should auto-start with the MCP server. "
            "If running standalone: python -m fbpilot.session_manager"
        }
    except httpx.TimeoutException:
        return {"error": "Driver timed out. The page may still be loading."}
    except Exception as e:
        return {"error": f"Failed to connect to driver: {e}"}


def _render(result: dict, success_text: str) -> str:
    """Turn an ActionResult payload into a short line for the assistant."""
    if result.get("success"):
        message = result.get("message") or success_text
        return message
    error = result.get("error") or "unknown_error"
    parts = [f"Failed ({error})"]
    if result.get("message"):
        parts.append(result["message"])
    detail = result.get("detail")
    if detail:
        parts.append(detail if isinstance(detail, str) else json.dumps(detail, ensure_ascii=False))
    if result.get("screenshot"):
        parts.append(f"Screenshot: {result['screenshot']}")
    return ". ".join(parts)


async def start_session(headless: bool = False) -> str:
    """Launch the browser and restore the saved session.

    Args:
        headless: If False (default), opens a visible browser window
                  so checkpoints can be solved by hand.

    Returns:
        Driver state message.
    """
    result = await _call_driver("POST", "/start", {"headless": headless})
    if "error" in result:
        return f"Error: {result['error']}"
    return f"Driver {result.get('state', 'unknown')}. {result.get('message', '')}".strip()


async def session_status() -> str:
    """Report whether the browser is running, cookie count and the last action."""
    result = await _call_driver("GET", "/status")
    if "error" in result:
        return f"Error: {result['error']}"
    return json.dumps(result, indent=2, ensure_ascii=False)


async def stop_session() -> str:
    """Save the session and close the browser."""
    result = await _call_driver("POST", "/stop")
    if "error" in result:
        return f"Error: {result['error']}"
    return result.get("message", "Session stopped.")


async def login(email: str, password: str, max_retries: int | None = None) -> str:
    """Log in with credentials, retrying through captcha interstitials."""
    body = {"email": email, "password": password}
    if max_retries is not None:
        body["maxRetries"] = max_retries
    result = await _call_driver("POST", "/login", body)
    if result.get("success") and result.get("already_logged_in"):
        return "Already logged in; no credentials were entered."
    return _render(result, "Login successful")


async def send_message(recipient: str, text: str) -> str:
    """Send a direct message to the person named ``recipient``."""
    result = await _call_driver("POST", "/send-message", {"recipient": recipient, "text": text})
    return _render(result, "Message sent")


async def send_friend_request(recipient: str) -> str:
    """Send a friend request to the first person matching ``recipient``."""
    result = await _call_driver("POST", "/friend-request", {"recipient": recipient})
    return _render(result, "Friend request sent")
