"""Application configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data"))
SESSIONS_DIR = DATA_DIR / "sessions"
SCREENSHOTS_DIR = DATA_DIR / "screenshots"
LOG_DIR = DATA_DIR / "logs"

# Command surface (HTTP + WebSocket)
DRIVER_HOST = os.getenv("DRIVER_HOST", "127.0.0.1")
DRIVER_PORT = int(os.getenv("DRIVER_PORT", "3000"))
DRIVER_URL = f"http://{DRIVER_HOST}:{DRIVER_PORT}"
AUTH_TOKEN = os.getenv("AUTH_TOKEN", "")
SESSION_NAME = os.getenv("SESSION_NAME", "default")

# Browser
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "false").lower() == "true"
BROWSER_TIMEOUT = int(os.getenv("BROWSER_TIMEOUT", "30000"))
BROWSER_LOCALE = os.getenv("BROWSER_LOCALE", "en-US")
VIEWPORT_WIDTH = int(os.getenv("VIEWPORT_WIDTH", "1280"))
VIEWPORT_HEIGHT = int(os.getenv("VIEWPORT_HEIGHT", "800"))

# Pacing
MIN_ACTION_INTERVAL_MS = int(os.getenv("MIN_ACTION_INTERVAL_MS", "10000"))
TYPING_MIN_DELAY_MS = int(os.getenv("TYPING_MIN_DELAY_MS", "70"))
TYPING_MAX_DELAY_MS = int(os.getenv("TYPING_MAX_DELAY_MS", "140"))
LOCATOR_TIMEOUT_MS = int(os.getenv("LOCATOR_TIMEOUT_MS", "10000"))

# Login
LOGIN_MAX_RETRIES = int(os.getenv("LOGIN_MAX_RETRIES", "2"))
LOGIN_OUTCOME_TIMEOUT_MS = int(os.getenv("LOGIN_OUTCOME_TIMEOUT_MS", "20000"))
LOGIN_POLL_INTERVAL_MS = int(os.getenv("LOGIN_POLL_INTERVAL_MS", "700"))
LOGIN_FIELD_TIMEOUT_MS = 10000
CAPTCHA_BACKOFF_BASE_MS = int(os.getenv("CAPTCHA_BACKOFF_BASE_MS", "1000"))
CAPTCHA_BACKOFF_CAP_MS = int(os.getenv("CAPTCHA_BACKOFF_CAP_MS", "15000"))
CAPTCHA_BACKOFF_JITTER_MS = int(os.getenv("CAPTCHA_BACKOFF_JITTER_MS", "1000"))


def ensure_dirs():
    """Create required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    SESSIONS_DIR.mkdir(parents=True, exist_ok=True)
    SCREENSHOTS_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
