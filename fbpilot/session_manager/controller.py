"""Session controller: login, send-message and friend-request workflows.

Drives the single long-lived page. Every public coroutine is a failure
boundary and returns an ActionResult; nothing here is allowed to raise
into the host process.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from ..config import (
    CAPTCHA_BACKOFF_BASE_MS,
    CAPTCHA_BACKOFF_CAP_MS,
    CAPTCHA_BACKOFF_JITTER_MS,
    LOCATOR_TIMEOUT_MS,
    LOGIN_FIELD_TIMEOUT_MS,
    LOGIN_MAX_RETRIES,
    LOGIN_OUTCOME_TIMEOUT_MS,
    LOGIN_POLL_INTERVAL_MS,
    SESSION_NAME,
)
from ..constants import (
    CONNECTED_LABELS,
    CONNECTED_PHRASES_EN,
    CONNECTED_PHRASES_FA,
    FACEBOOK_LOGIN_URL,
    FACEBOOK_MESSAGES_URL,
    FACEBOOK_SEARCH_PEOPLE_URL,
    FACEBOOK_SEARCH_TOP_URL,
    INVALID_CREDENTIALS_EN,
    INVALID_CREDENTIALS_FA,
    MESSAGE_ACTION_KEYWORDS_EN,
    MESSAGE_ACTION_KEYWORDS_FA,
    MESSAGE_LINK_PATTERN,
    REQUEST_SENT_PHRASES_EN,
    REQUEST_SENT_PHRASES_FA,
    SELECTORS,
)
from ..models.results import (
    ActionResult,
    CaptchaResult,
    ErrorKind,
    LoginOutcome,
    OutcomeKind,
)
from ..models.session import LoadResult
from . import dom
from .captcha import CaptchaDetector
from .human import HumanPacer
from .locator import ElementLocator, TargetKind
from .screenshots import ScreenshotCapture
from .store import SessionStore, restore_page, snapshot_page
from .throttle import ActionThrottle

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

INVALID_SNIPPET_LIMIT = 800
MESSENGER_READY_TIMEOUT_MS = 15000
SEARCH_BOX_TIMEOUT_MS = 5000

CLEAR_STORAGE_JS = """() => {
  try { localStorage.clear(); sessionStorage.clear(); } catch (e) {}
}"""


class LoginPolicy(BaseModel):
    """Polling and retry knobs for login()."""

    max_retries: int = LOGIN_MAX_RETRIES
    outcome_timeout_ms: int = LOGIN_OUTCOME_TIMEOUT_MS
    poll_interval_ms: int = LOGIN_POLL_INTERVAL_MS
    field_timeout_ms: int = LOGIN_FIELD_TIMEOUT_MS
    backoff_base_ms: int = CAPTCHA_BACKOFF_BASE_MS
    backoff_cap_ms: int = CAPTCHA_BACKOFF_CAP_MS
    backoff_jitter_ms: int = CAPTCHA_BACKOFF_JITTER_MS

    def captcha_backoff_ms(self, attempt: int, rng: random.Random) -> int:
        """min(cap, base * 2^attempt) plus uniform jitter."""
        return min(self.backoff_cap_ms, self.backoff_base_ms * 2**attempt) + rng.randint(
            0, self.backoff_jitter_ms
        )


@dataclass(frozen=True)
class PageSnapshot:
    """What one tick of the login poll saw."""

    logged_in: bool
    captcha: CaptchaResult
    body_text: str = ""


def classify_outcome(snapshot: PageSnapshot) -> Optional[LoginOutcome]:
    """Success marker, then captcha, then invalid-credential text. None = undecided."""
    if snapshot.logged_in:
        return LoginOutcome.success()
    if snapshot.captcha.detected:
        return LoginOutcome.captcha_detected(snapshot.captcha)
    if dom.find_phrase(snapshot.body_text, INVALID_CREDENTIALS_EN, INVALID_CREDENTIALS_FA):
        return LoginOutcome.invalid_credentials(snapshot.body_text[:INVALID_SNIPPET_LIMIT])
    return None


class SessionController:
    """Automates one Facebook account through one page.

    Calls must not overlap: the page belongs to the in-flight workflow.
    """

    def __init__(
        self,
        page,
        store: SessionStore,
        capture: Optional[ScreenshotCapture] = None,
        *,
        session_name: str = SESSION_NAME,
        throttle: Optional[ActionThrottle] = None,
        pacer: Optional[HumanPacer] = None,
        detector: Optional[CaptchaDetector] = None,
        locator: Optional[ElementLocator] = None,
        policy: Optional[LoginPolicy] = None,
        locator_timeout_ms: int = LOCATOR_TIMEOUT_MS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if page is None or not callable(getattr(page, "goto", None)):
            raise TypeError("SessionController requires a page with goto()")
        self.page = page
        self.store = store
        self.capture = capture
        self.session_name = session_name
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self.throttle = throttle or ActionThrottle(clock=clock, sleep=sleep)
        self.pacer = pacer or HumanPacer(page, rng=self._rng, sleep=sleep)
        self.detector = detector or CaptchaDetector(capture)
        self.locator = locator or ElementLocator(page, clock=clock, sleep=sleep)
        self.policy = policy or LoginPolicy()
        self.locator_timeout_ms = locator_timeout_ms

    # ── Session checkpoints ──────────────────────────────────────────────────

    async def init_session(self) -> LoadResult:
        """Restore saved cookies/localStorage into the page, if any."""
        loaded = self.store.load(self.session_name)
        if loaded.ok:
            await restore_page(self.page, loaded.data)
            logger.info(f"Session '{self.session_name}' restored from {loaded.file}")
        else:
            logger.info(f"No session restored: {loaded.error}")
        return loaded

    async def persist_session(self) -> Optional[str]:
        """Save cookies and localStorage under the session key; None on failure."""
        try:
            record = await snapshot_page(self.page)
            path = self.store.save(record, self.session_name)
        except Exception as e:
            logger.warning(f"Session save failed: {e}")
            return None
        logger.info(f"Session saved to {path}")
        return str(path)

    # ── Login ────────────────────────────────────────────────────────────────

    async def login(
        self, email: str, password: str, max_retries: Optional[int] = None
    ) -> ActionResult:
        """Log in with credentials, retrying captcha and timeout outcomes up to ``max_retries``."""
        retries = self.policy.max_retries if max_retries is None else max_retries
        attempt = 0
        try:
            while True:
                logger.info(f"Attempting login... (try {attempt + 1})")
                outcome = await self._login_once(email, password)

                if outcome.kind in (OutcomeKind.SUCCESS, OutcomeKind.ALREADY_LOGGED_IN):
                    already = outcome.kind == OutcomeKind.ALREADY_LOGGED_IN
                    await self.persist_session()
                    logger.info("Already logged in" if already else "Login successful")
                    return ActionResult.ok(
                        "Already logged in" if already else "Login successful",
                        already_logged_in=already,
                    )

                if outcome.kind == OutcomeKind.INVALID_CREDENTIALS:
                    logger.error(f"Invalid credentials on attempt {attempt + 1}")
                    return ActionResult.fail(ErrorKind.INVALID_CREDENTIALS, detail=outcome.snippet)

                if outcome.kind == OutcomeKind.CAPTCHA:
                    screenshot = await self._screenshot(f"login-captcha-{attempt}")
                    logger.warning(
                        f"Captcha detected during login (attempt {attempt + 1}): "
                        f"{outcome.captcha.method.value}"
                    )
                    if attempt >= retries:
                        logger.error("Max captcha retries reached. Giving up.")
                        return ActionResult.fail(
                            ErrorKind.CAPTCHA_DETECTED,
                            detail=outcome.captcha.model_dump(mode="json"),
                            screenshot=screenshot,
                            message="Captcha persisted after maximum retries",
                        )
                    attempt += 1
                    backoff_ms = self.policy.captcha_backoff_ms(attempt, self._rng)
                    logger.info(f"Retrying login after captcha (sleep {backoff_ms}ms)")
                    await self._sleep(backoff_ms / 1000)
                    await self._reset_client_state()
                    continue

                if outcome.kind == OutcomeKind.TIMEOUT:
                    logger.warning(f"Login attempt {attempt + 1} timed out without clear outcome")
                    if attempt >= retries:
                        return ActionResult.fail(
                            ErrorKind.MAX_RETRIES_EXCEEDED,
                            detail="timeout",
                            screenshot=await self._screenshot("login-timeout"),
                        )
                    attempt += 1
                    await self._sleep(self._rng.uniform(1000, 2000) / 1000)
                    continue

                logger.error(f"Unknown login outcome: {outcome.raw}")
                return ActionResult.fail(
                    ErrorKind.UNKNOWN_OUTCOME,
                    detail=outcome.raw,
                    screenshot=await self._screenshot("login-unknown"),
                )
        except Exception as e:
            logger.error(f"Login failed with exception: {e}", exc_info=True)
            return ActionResult.fail(
                ErrorKind.INTERNAL_FAULT,
                detail=str(e),
                screenshot=await self._screenshot("login-exception"),
            )

    async def _login_once(self, email: str, password: str) -> LoginOutcome:
        logger.info("Navigating to login page...")
        await self.page.goto(FACEBOOK_LOGIN_URL, wait_until="domcontentloaded")

        if await self._logged_in():
            logger.info("Already logged in, skipping credential entry.")
            return LoginOutcome.already_logged_in()

        try:
            for key in ("login_email", "login_password"):
                await self.page.wait_for_selector(
                    SELECTORS[key], timeout=self.policy.field_timeout_ms
                )
        except PlaywrightTimeoutError:
            captcha = await self.detector.detect(self.page)
            if captcha.detected:
                return LoginOutcome.captcha_detected(captcha)
            return LoginOutcome.unknown({"url": self.page.url, "reason": "login fields not found"})

        await self.pacer.type_into(SELECTORS["login_email"], email)
        await self.pacer.type_into(SELECTORS["login_password"], password)
        await self.pacer.small_move()
        await self.page.click(SELECTORS["login_submit"])

        return await self._await_login_outcome()

    async def _await_login_outcome(self) -> LoginOutcome:
        deadline = self._clock() + self.policy.outcome_timeout_ms / 1000
        while self._clock() < deadline:
            outcome = classify_outcome(await self._snapshot())
            if outcome is not None:
                return outcome
            await self._sleep(self.policy.poll_interval_ms / 1000)
        return LoginOutcome.timeout()

    async def _snapshot(self) -> PageSnapshot:
        if await self._logged_in():
            return PageSnapshot(logged_in=True, captcha=CaptchaResult.not_detected())
        captcha = await self.detector.detect(self.page)
        if captcha.detected:
            return PageSnapshot(logged_in=False, captcha=captcha)
        try:
            text = await dom.body_text(self.page)
        except Exception:
            text = ""
        return PageSnapshot(logged_in=False, captcha=captcha, body_text=text)

    async def _logged_in(self) -> bool:
        try:
            marker = await self.page.query_selector(SELECTORS["logged_in_marker"])
        except PlaywrightError:
            return False
        return marker is not None and await dom.is_visible(marker)

    async def _reset_client_state(self) -> None:
        """Drop storage and cookies so the next attempt looks like a fresh visitor."""
        try:
            await self.page.evaluate(CLEAR_STORAGE_JS)
        except Exception as e:
            logger.debug(f"Could not clear storage: {e}")
        try:
            await self.page.context.clear_cookies()
        except Exception as e:
            logger.debug(f"Could not clear cookies: {e}")

    # ── Send message ─────────────────────────────────────────────────────────

    async def send_message(self, recipient: str, text: str) -> ActionResult:
        """Open a chat with ``recipient`` and send ``text``."""
        try:
            return await self._send_message(recipient, text)
        except Exception as e:
            logger.error(f"sendMessage exception: {e}", exc_info=True)
            return await self._fail(ErrorKind.INTERNAL_FAULT, "sendMessage-exception", detail=str(e))

    async def _send_message(self, recipient: str, text: str) -> ActionResult:
        logger.info(f"sendMessage start: {recipient!r}")
        await self.pacer.pause(1000, 3000)
        await self.throttle.throttle(self.session_name)

        await self.page.goto(FACEBOOK_MESSAGES_URL, wait_until="domcontentloaded")
        # Must run before anything is typed
        if await self._login_form_present():
            logger.warning("Not logged in - login fields detected after visiting messenger")
            return await self._fail(ErrorKind.NOT_LOGGED_IN, "not-logged-in")

        try:
            await self.page.wait_for_selector(
                SELECTORS["messenger_container"], timeout=MESSENGER_READY_TIMEOUT_MS
            )
        except PlaywrightError:
            logger.debug("Messenger container not found, continuing")

        await self._open_chat_via_search(recipient)

        if not await self._message_input_present():
            logger.debug("Message input not present yet; trying global search")
            if not await self._open_chat_via_global_search(recipient):
                logger.warning("No clickable 'Message' control in global search results")
                return await self._fail(ErrorKind.NO_CLICKABLE_ROW, "no-clickable-row")
            await self.pacer.pause(800, 2000)

        handle = await self.locator.locate(TargetKind.MESSAGE_INPUT, self.locator_timeout_ms)
        if handle is None:
            logger.error("Message input not found after opening chat")
            return await self._fail(ErrorKind.NO_MESSAGE_INPUT, "no-message-input")

        await handle.focus()
        await self.pacer.small_move()
        await self.pacer.type_into(handle, text)
        await self.page.keyboard.press("Enter")
        await self.pacer.pause(400, 1100)
        logger.info("Message typed and sent")

        await self.persist_session()
        return ActionResult.ok("Message sent")

    async def _login_form_present(self) -> bool:
        return await self.page.query_selector(SELECTORS["login_form"]) is not None

    async def _message_input_present(self) -> bool:
        return await self.page.query_selector(SELECTORS["message_input_present"]) is not None

    async def _open_chat_via_search(self, recipient: str) -> bool:
        """Search inside messenger and click the first row naming ``recipient``."""
        search = await self.locator.locate(TargetKind.SEARCH_BOX, SEARCH_BOX_TIMEOUT_MS)
        if search is None:
            logger.debug("No messenger search input; will try global search")
            return False

        try:
            await search.click(click_count=3)
        except PlaywrightError:
            pass
        await self.page.keyboard.press("Backspace")
        await self.pacer.type_into(search, recipient)
        await self.page.keyboard.press("Enter")
        await self.pacer.pause(1200, 3400)

        wanted = dom.normalize(recipient)
        for span in await self.page.query_selector_all(SELECTORS["result_row_text"]):
            if wanted not in await dom.element_text(span):
                continue
            target = span
            try:
                ancestor = (await span.evaluate_handle(dom.CLICKABLE_ANCESTOR_JS)).as_element()
                if ancestor is not None:
                    target = ancestor
                await target.click()
            except PlaywrightError as e:
                logger.debug(f"Click on messenger result failed: {e}")
                continue
            logger.info("Opened chat via messenger result")
            return True

        logger.debug("No messenger result row matched the recipient")
        return False

    async def _open_chat_via_global_search(self, recipient: str) -> bool:
        """Open site search for ``recipient`` and click a 'Message' control on a result."""
        url = f"{FACEBOOK_SEARCH_TOP_URL}?{urlencode({'q': recipient})}"
        try:
            await self.page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.debug(f"Global search navigation failed: {e}")
        await self.pacer.pause(1200, 2800)

        wanted = dom.normalize(recipient)
        cards = await self.page.query_selector_all(SELECTORS["result_card"])
        logger.debug(f"Scanning {len(cards)} result cards")
        for card in cards:
            if wanted not in await dom.element_text(card):
                continue
            for control in await card.query_selector_all(SELECTORS["card_action"]):
                if not await self._is_message_control(control):
                    continue
                try:
                    await control.click()
                except PlaywrightError as e:
                    logger.debug(f"Click on message control failed: {e}")
                    continue
                logger.info("Clicked 'Message' on a search result")
                return True
        return False

    @staticmethod
    async def _is_message_control(control) -> bool:
        text = await dom.element_text(control)
        if dom.find_phrase(text, MESSAGE_ACTION_KEYWORDS_EN, MESSAGE_ACTION_KEYWORDS_FA):
            return True
        try:
            href = await control.get_attribute("href") or ""
        except PlaywrightError:
            return False
        return bool(MESSAGE_LINK_PATTERN.search(href))

    # ── Friend request ───────────────────────────────────────────────────────

    async def send_friend_request(self, profile_name: str) -> ActionResult:
        """Send a friend request to the first people-search result for ``profile_name``."""
        try:
            return await self._send_friend_request(profile_name)
        except Exception as e:
            logger.error(f"sendFriendRequest exception: {e}", exc_info=True)
            return await self._fail(
                ErrorKind.INTERNAL_FAULT,
                "sendFriendRequest-exception",
                detail=str(e),
                message="Exception while sending friend request",
            )

    async def _send_friend_request(self, profile_name: str) -> ActionResult:
        logger.info(f"sendFriendRequest start: {profile_name!r}")
        await self.pacer.pause(1000, 3000)
        await self.throttle.throttle(self.session_name)

        url = f"{FACEBOOK_SEARCH_PEOPLE_URL}?{urlencode({'q': profile_name})}"
        await self.page.goto(url, wait_until="domcontentloaded")
        await self.pacer.pause(1500, 3000)

        button = await self.locator.locate(TargetKind.ADD_FRIEND_BUTTON, self.locator_timeout_ms)
        if button is None:
            logger.warning("No 'Add friend' button found")
            return await self._fail(
                ErrorKind.NO_ADD_FRIEND_BUTTON,
                "no-add-friend",
                detail={"profile": profile_name},
                message="No 'Add friend' button found",
            )

        if await self._controls_mention(
            CONNECTED_PHRASES_EN, CONNECTED_PHRASES_FA, exact_labels=CONNECTED_LABELS
        ):
            logger.info(f"Already friends with {profile_name!r}")
            return ActionResult.ok(
                "Already friends with this user",
                confirmed=True,
                detail={"profile": profile_name, "already_connected": True},
            )

        await button.click()
        logger.info("Clicked 'Add friend' button")
        await self.pacer.pause(1000, 2500)

        try:
            confirmed = await self._controls_mention(
                REQUEST_SENT_PHRASES_EN, REQUEST_SENT_PHRASES_FA
            )
        except Exception as e:
            logger.debug(f"Could not confirm request visually: {e}")
            confirmed = False

        await self.persist_session()
        return ActionResult.ok(
            "Friend request sent and confirmed" if confirmed else "Friend request sent (unconfirmed)",
            confirmed=confirmed,
            detail={"profile": profile_name},
        )

    async def _controls_mention(self, *phrase_lists, exact_labels=()) -> bool:
        """True if any visible button's text contains a phrase or equals a label."""
        labels = {dom.normalize(label) for label in exact_labels}
        for control in await self.page.query_selector_all(SELECTORS["control_button"]):
            if not await dom.is_visible(control):
                continue
            text = await dom.element_text(control)
            if text and (text in labels or dom.find_phrase(text, *phrase_lists)):
                return True
        return False

    # ── Diagnostics ──────────────────────────────────────────────────────────

    async def _screenshot(self, label: str) -> Optional[str]:
        if self.capture is None:
            return None
        shot = await self.capture.capture(self.page, label)
        return shot.url_path if shot.success else None

    async def _fail(
        self, error: ErrorKind, label: str, detail=None, message: str = ""
    ) -> ActionResult:
        return ActionResult.fail(
            error, detail=detail, screenshot=await self._screenshot(label), message=message
        )
