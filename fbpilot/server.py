"""MCP Server entry point for the Facebook automation driver.

Exposes 6 tools via the Model Context Protocol:
- Session management: start_session, session_status, stop_session
- Actions: login, send_message, send_friend_request

The driver HTTP service (aiohttp on localhost:3000) is auto-started
as part of the MCP server lifecycle, so no separate process is needed.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from aiohttp.web import AppRunner, TCPSite
from mcp.server.fastmcp import FastMCP

from .config import DRIVER_HOST, DRIVER_PORT, ensure_dirs
from .tools.action_tools import (
    login,
    send_friend_request,
    send_message,
    session_status,
    start_session,
    stop_session,
)

# Configure logging to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("fbpilot")

ensure_dirs()


# ── Lifespan: auto-start driver ──────────────────────────────────────────────


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Start the driver HTTP service alongside the MCP server."""
    from .session_manager.manager import create_app

    app = create_app()
    runner = AppRunner(app)
    await runner.setup()
    site = TCPSite(runner, DRIVER_HOST, DRIVER_PORT)
    managed = False
    try:
        await site.start()
        logger.info("Driver auto-started on %s:%s", DRIVER_HOST, DRIVER_PORT)
        managed = True
    except OSError:
        # Port busy: an instance started by hand is already serving
        logger.info("Driver already running on %s:%s", DRIVER_HOST, DRIVER_PORT)
        await runner.cleanup()

    try:
        yield {}
    finally:
        if managed:
            await runner.cleanup()
            logger.info("Driver stopped.")


# ── MCP Server ───────────────────────────────────────────────────────────────

mcp = FastMCP(
    "fbpilot",
    lifespan=lifespan,
    instructions=(
        "Facebook automation driver. The driver starts automatically with this server. "
        "Call start_session to launch the browser and restore the saved session, "
        "then login if needed. Use send_message and send_friend_request for actions; "
        "actions are spaced at least MIN_ACTION_INTERVAL_MS apart. "
        "Failures return an error code and a screenshot path for manual triage."
    ),
)


# ── Session Management Tools ─────────────────────────────────────────────────


@mcp.tool()
async def tool_start_session(headless: bool = False) -> str:
    """Launch the browser and restore the saved Facebook session.

    Args:
        headless: If False, opens a visible browser for solving checkpoints.
    """
    return await start_session(headless)


@mcp.tool()
async def tool_session_status() -> str:
    """Check whether the driver is running.

    Returns: state, cookie count, current URL, last action and its result.
    """
    return await session_status()


@mcp.tool()
async def tool_stop_session() -> str:
    """Save cookies and close the browser."""
    return await stop_session()


# ── Action Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
async def tool_login(email: str, password: str, max_retries: Optional[int] = None) -> str:
    """Log in to Facebook.

    Skips credential entry when the saved session is still valid. Retries
    with backoff when a captcha interstitial appears.

    Args:
        email: Account email or phone.
        password: Account password.
        max_retries: Retries after the first attempt (default from config).
    """
    return await login(email, password, max_retries)


@mcp.tool()
async def tool_send_message(recipient: str, text: str) -> str:
    """Send a direct message.

    Args:
        recipient: Display name of the person, as shown in search results.
        text: Message body.
    """
    return await send_message(recipient, text)


@mcp.tool()
async def tool_send_friend_request(recipient: str) -> str:
    """Send a friend request to the first person found for a name.

    Reports success without clicking when already connected.

    Args:
        recipient: Display name to search for.
    """
    return await send_friend_request(recipient)


# ── Entry Point ──────────────────────────────────────────────────────────────


def main():
    """Run the MCP server on STDIO transport."""
    logger.info("Starting fbpilot MCP server...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
